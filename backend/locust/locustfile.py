"""
Locust Load Test Suite

Tokens normally come from the society auth service; here they are minted
with the shared SECRET_KEY for users that already exist in the directory.

Environment:
  LOAD_USER_IDS       comma separated resident ids, e.g. "2,3,4,5"
  LOAD_ADMIN_ID       administrator id used to create the contested resource
  SECRET_KEY          must match the API's SECRET_KEY

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Test double booking
  locust -f locustfile.py --tags throughput   # Test catalog cache / availability
  locust -f locustfile.py --tags edge         # Test bad input
  locust -f locustfile.py                     # All tests
"""

import os
import random
from datetime import date, datetime, timedelta, timezone

import jwt
from locust import HttpUser, between, events, tag, task

SECRET_KEY = os.getenv("SECRET_KEY", "super-secret-key-change-in-production")
USER_IDS = [int(i) for i in os.getenv("LOAD_USER_IDS", "2,3,4,5,6,7,8,9,10,11").split(",") if i]
ADMIN_ID = int(os.getenv("LOAD_ADMIN_ID", "1"))

# Shared state
RESOURCE_IDS = []
CONTESTED_RESOURCE_ID = None
CONTESTED_DAY = (date.today() + timedelta(days=7)).isoformat()


def token_headers(user_id: int) -> dict:
    now = datetime.now(timezone.utc)
    token = jwt.encode(
        {"sub": str(user_id), "iat": now, "exp": now + timedelta(hours=2)},
        SECRET_KEY,
        algorithm="HS256",
    )
    return {"Authorization": f"Bearer {token}"}


def random_day() -> str:
    return (date.today() + timedelta(days=random.randint(1, 60))).isoformat()


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "=" * 60)
    print(f"SETUP: contested day {CONTESTED_DAY}, {len(USER_IDS)} residents")
    print("=" * 60)


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - many residents, one guest parking slot, one day

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT COUNT(*) FROM reservations
      WHERE resource_id = X AND booking_date = 'D' AND status IN ('pending', 'confirmed');
    Should be 1 (the slot is booked for the full day)
    """

    wait_time = between(0, 0.1)

    def on_start(self):
        self.headers = token_headers(random.choice(USER_IDS))

        if CONTESTED_RESOURCE_ID is None:
            resp = self.client.post(
                "/api/v1/resources/",
                json={
                    "name": f"Load Test Parking {random.randint(1000, 9999)}",
                    "category": "guest_parking",
                    "location": "Load test",
                },
                headers=token_headers(ADMIN_ID),
            )
            if resp.status_code == 201:
                globals()["CONTESTED_RESOURCE_ID"] = resp.json()["id"]
                print(f"\n✓ Created guest parking resource {CONTESTED_RESOURCE_ID}\n")

    @tag("concurrency")
    @task
    def book_contested_slot(self):
        """All users fight for the same full-day slot."""
        if CONTESTED_RESOURCE_ID is None:
            return

        with self.client.post(
            "/api/v1/reservations/",
            json={
                "resource_id": CONTESTED_RESOURCE_ID,
                "booking_date": CONTESTED_DAY,
                "start_time": "00:00",
                "end_time": "23:59",
            },
            headers=self.headers,
            name="/api/v1/reservations/ [contested]",
            catch_response=True,
        ) as resp:
            if resp.status_code in (201, 409):
                resp.success()  # 409: slot taken, expected for all but one
            elif resp.status_code == 503:
                resp.success()  # gate timeout under burst, client should retry
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    TEST 2: Throughput - catalog cache and availability reads

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: Stop Redis, run again

    Compare:
      - Avg response time
      - Requests/sec
      - P95/P99 latency
    """

    wait_time = between(0.1, 0.5)

    def on_start(self):
        self.headers = token_headers(random.choice(USER_IDS))

    @tag("throughput", "read")
    @task(10)
    def list_resources_cached(self):
        resp = self.client.get("/api/v1/resources/", headers=self.headers, name="/api/v1/resources/ [cached]")
        if resp.status_code == 200:
            for resource in resp.json().get("resources", []):
                if resource["id"] not in RESOURCE_IDS:
                    RESOURCE_IDS.append(resource["id"])

    @tag("throughput", "read")
    @task(5)
    def availability(self):
        if RESOURCE_IDS:
            self.client.get(
                f"/api/v1/resources/{random.choice(RESOURCE_IDS)}/availability?date={random_day()}",
                headers=self.headers,
                name="/api/v1/resources/{id}/availability",
            )

    @tag("throughput")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """

    wait_time = between(0.5, 1.5)

    def on_start(self):
        self.headers = token_headers(random.choice(USER_IDS))

    def _expect(self, payload, allowed, headers=None):
        with self.client.post(
            "/api/v1/reservations/",
            json=payload,
            headers=self.headers if headers is None else headers,
            catch_response=True,
        ) as resp:
            if resp.status_code in allowed:
                resp.success()
            else:
                resp.failure(f"Expected {allowed}, got {resp.status_code}")

    @tag("edge")
    @task
    def unknown_resource(self):
        self._expect(
            {"resource_id": 999999, "booking_date": random_day(), "start_time": "10:00", "end_time": "11:00"},
            (400,),
        )

    @tag("edge")
    @task
    def zero_length_interval(self):
        self._expect(
            {"resource_id": 1, "booking_date": random_day(), "start_time": "10:00", "end_time": "10:00"},
            (400,),
        )

    @tag("edge")
    @task
    def overnight_interval(self):
        self._expect(
            {"resource_id": 1, "booking_date": random_day(), "start_time": "22:00", "end_time": "02:00"},
            (400,),
        )

    @tag("edge")
    @task
    def malformed_time(self):
        self._expect(
            {"resource_id": 1, "booking_date": random_day(), "start_time": "25:61", "end_time": "26:00"},
            (422,),
        )

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post(
            "/api/v1/reservations/",
            data="not json at all",
            headers=self.headers,
            catch_response=True,
        ) as resp:
            if resp.status_code in (400, 422):
                resp.success()
            else:
                resp.failure(f"Expected 400/422, got {resp.status_code}")

    @tag("edge")
    @task
    def missing_auth(self):
        self._expect(
            {"resource_id": 1, "booking_date": random_day(), "start_time": "10:00", "end_time": "11:00"},
            (401,),
            headers={},
        )


class RealisticUser(HttpUser):
    """
    TEST 4: Realistic mixed workload

    Run: locust -f locustfile.py -u 200 -r 20 --run-time 120s

    Simulates real traffic:
      - Mostly browsing and availability (75%)
      - Some reservations (20%)
      - Occasional cancellations (5%)
    """

    wait_time = between(1, 3)

    def on_start(self):
        self.headers = token_headers(random.choice(USER_IDS))
        self.reservation_ids = []

    @task(40)
    def browse_resources(self):
        resp = self.client.get("/api/v1/resources/", headers=self.headers)
        if resp.status_code == 200:
            for resource in resp.json().get("resources", []):
                if resource["id"] not in RESOURCE_IDS:
                    RESOURCE_IDS.append(resource["id"])

    @task(35)
    def check_availability(self):
        if RESOURCE_IDS:
            self.client.get(
                f"/api/v1/resources/{random.choice(RESOURCE_IDS)}/availability?date={random_day()}",
                headers=self.headers,
                name="/api/v1/resources/{id}/availability",
            )

    @task(20)
    def reserve(self):
        if not RESOURCE_IDS:
            return
        hour = random.randint(6, 20)
        with self.client.post(
            "/api/v1/reservations/",
            json={
                "resource_id": random.choice(RESOURCE_IDS),
                "booking_date": random_day(),
                "start_time": f"{hour:02d}:00",
                "end_time": f"{hour + 1:02d}:00",
            },
            headers=self.headers,
            catch_response=True,
        ) as resp:
            if resp.status_code == 201:
                self.reservation_ids.append(resp.json()["id"])
                resp.success()
            elif resp.status_code in (400, 409):
                resp.success()  # daily or consecutive-day limits, taken slots
            else:
                resp.failure(f"Unexpected: {resp.status_code}")

    @task(5)
    def cancel(self):
        if self.reservation_ids:
            reservation_id = self.reservation_ids.pop()
            self.client.patch(
                f"/api/v1/reservations/{reservation_id}",
                json={"action": "cancel", "reason": "Plans changed"},
                headers=self.headers,
                name="/api/v1/reservations/{id} [cancel]",
            )
