# services/challenge_service/errors.py
"""
Error taxonomy for the timed-challenge backend.

Nothing here is fatal: network failures degrade to local-only state and
validation errors are reported back to the caller before any grading happens.
"""


class ChallengeError(Exception):
    """Base class for every error raised by the challenge service."""

    status_code = 400


class ValidationError(ChallengeError):
    """Play data that cannot be graded (e.g. zero questions)."""

    status_code = 400


class ChallengeNotFound(ChallengeError):
    status_code = 404


class SessionNotFound(ChallengeError):
    status_code = 404


class SessionStateError(ChallengeError):
    """Operation not allowed in the session's current state."""

    status_code = 409


class TransientNetworkError(ChallengeError):
    """A fetch or write against the remote store failed."""

    status_code = 503
