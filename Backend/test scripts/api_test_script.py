# api_test_script.py
"""
Smoke test for a running backend: plays one guest challenge end to end.

    BACKEND_URL=http://localhost:5001 python "Backend/test scripts/api_test_script.py"

Set FIREBASE_ID_TOKEN to also exercise the signed-in endpoints.
"""
import json
import os
import time

import requests

BACKEND_URL = os.getenv("BACKEND_URL", "http://localhost:5001")
ID_TOKEN = os.getenv("FIREBASE_ID_TOKEN")


class BackendTester:
    def __init__(self, base_url):
        self.base_url = base_url
        self.results = []

    def test(self, name, method, endpoint, expect=None, **kwargs):
        """Send one request, print it and record pass/fail. Returns the JSON body (or None)."""
        print(f"\nTesting: {name}")
        url = f"{self.base_url}{endpoint}"

        try:
            start = time.time()
            response = requests.request(method, url, timeout=15, **kwargs)
            elapsed = time.time() - start
        except requests.RequestException as e:
            print(f"    ERROR: {e}")
            self.results.append({"name": name, "status": "error", "elapsed": "0s", "success": False})
            return None

        if expect is None:
            success = 200 <= response.status_code < 300
        else:
            success = response.status_code == expect

        try:
            data = response.json()
        except ValueError:
            data = None

        if success:
            print(f"   SUCCESS (Status: {response.status_code}, Time: {elapsed:.3f}s)")
        else:
            print(f"   FAILED (Status: {response.status_code})")
        print(f"   Response: {json.dumps(data, indent=6)[:600] if data is not None else response.text[:200]}")

        self.results.append({
            "name": name,
            "status": response.status_code,
            "elapsed": f"{elapsed:.3f}s",
            "success": success,
        })
        return data

    def summary(self):
        print("\n" + "=" * 60)
        print("TEST SUMMARY")
        print("=" * 60)

        for result in self.results:
            status_icon = "GOOD" if result["success"] else "BAD"
            print(f"{status_icon} {result['name']:<40} {result['status']!s:<10} {result['elapsed']}")

        total = len(self.results)
        passed = sum(1 for r in self.results if r["success"])

        print("=" * 60)
        print(f"Total: {total} | Passed: {passed} | Failed: {total - passed}")
        print("=" * 60)


def play(tester, challenge_id, headers):
    started = tester.test(f"Start {challenge_id}", "POST", f"/api/challenges/{challenge_id}/start",
                          json={}, headers=headers)
    if not started:
        return None
    headers = dict(headers)
    if started.get("guest_id"):
        headers["X-Guest-Id"] = started["guest_id"]

    body = started
    for i in range(started["total_questions"]):
        body = tester.test(f"Answer #{i + 1}", "POST", f"/api/challenges/sessions/{started['session_id']}/answer",
                           json={"selected_index": 0}, headers=headers)
        if not body or body.get("state") != "active":
            break
    return headers


if __name__ == "__main__":
    print("=" * 60)
    print("TIMED CHALLENGE API SMOKE TEST")
    print(f"Testing: {BACKEND_URL}")
    print("=" * 60)

    tester = BackendTester(BACKEND_URL)

    tester.test("Health Check (Public)", "GET", "/api/health")
    tester.test("Challenge Catalog", "GET", "/api/challenges/")

    # Guest run: nothing should reach Firestore
    guest_headers = play(tester, "speed-5", {})
    if guest_headers:
        tester.test("Guest Personal Bests", "GET", "/api/challenges/personal-bests", headers=guest_headers)
        tester.test("End Guest", "POST", "/api/challenges/guest/end", headers=guest_headers)

    print("\nTesting Security (should fail without auth)...")
    tester.test("Sign-in (Unauthorized)", "POST", "/api/challenges/sign-in", expect=401)

    if ID_TOKEN:
        auth = {"Authorization": f"Bearer {ID_TOKEN}"}
        tester.test("Sign-in + Sync", "POST", "/api/challenges/sign-in", headers=auth)
        play(tester, "lightning-10", auth)
        tester.test("Personal Bests", "GET", "/api/challenges/personal-bests", headers=auth)
        tester.test("Achievements", "GET", "/api/challenges/achievements", headers=auth)
        tester.test("Streak", "GET", "/api/challenges/streak", headers=auth)
        tester.test("Leaderboard", "GET", "/api/challenges/leaderboard/lightning-10")
        tester.test("History", "GET", "/api/challenges/history", headers=auth)
        tester.test("Sign-out", "POST", "/api/challenges/sign-out", headers=auth)
    else:
        print("\nFIREBASE_ID_TOKEN not set; skipping signed-in endpoints")

    tester.summary()
