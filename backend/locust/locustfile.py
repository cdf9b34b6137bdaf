"""
Locust Load Test Suite

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Many buyers, few tickets
  locust -f locustfile.py --tags seats        # Many buyers, same seat labels
  locust -f locustfile.py --tags throughput   # Cached listings
  locust -f locustfile.py --tags edge         # Bad input
  locust -f locustfile.py                     # All tests

After a concurrency run, verify nothing was oversold:
  SELECT SUM(quantity) FROM bookings WHERE event_id = X AND status = 'confirmed';
Should be <= the event capacity.
"""

import random
import string
from datetime import datetime, timezone, timedelta

from locust import HttpUser, task, between, tag

PASSWORD = "test123"

# Shared state
EVENT_IDS = []
CONCURRENCY_EVENT_ID = None
SEATED_EVENT_ID = None
SEAT_LABELS = [f"{row}{n}" for row in "AB" for n in range(1, 6)]


def random_email():
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=10))
    return f"load_{suffix}@test.com"


def event_payload(name, capacity, price=50):
    future = (datetime.now(timezone.utc) + timedelta(days=random.randint(1, 90))).isoformat()
    return {
        "name": name,
        "type": random.choice(["Movie", "Sports", "Concert", "Family"]),
        "category": "Load Test",
        "date": future,
        "time": "19:30",
        "venue": "Test Arena",
        "ticketPrice": price,
        "capacity": capacity,
    }


def sign_up(client, role="user"):
    """Register a fresh account and return auth headers, or {} on failure."""
    resp = client.post("/api/v1/auth/register", json={
        "email": random_email(),
        "name": "Load Tester",
        "password": PASSWORD,
        "role": role,
    })
    if resp.status_code != 201:
        return {}
    return {"Authorization": f"Bearer {resp.json()['data']['token']}"}


def expect(resp, *codes):
    if resp.status_code in codes:
        resp.success()
    else:
        resp.failure(f"Expected {codes}, got {resp.status_code}")


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - 100 users -> 10 general-admission tickets

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.headers = sign_up(self.client)
        if not CONCURRENCY_EVENT_ID:
            organizer = sign_up(self.client, role="organizer")
            resp = self.client.post(
                "/api/v1/events/",
                json=event_payload("Concurrency Test Event", capacity=10),
                headers=organizer,
            )
            if resp.status_code == 201:
                globals()["CONCURRENCY_EVENT_ID"] = resp.json()["data"]["id"]

    @tag("concurrency")
    @task
    def book_limited_tickets(self):
        """All users fight for the same 10 tickets."""
        if not CONCURRENCY_EVENT_ID or not self.headers:
            return

        with self.client.post(
            "/api/v1/bookings/",
            json={"eventId": CONCURRENCY_EVENT_ID, "quantity": 1},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            # 409 is sold out, 503 is the busy signal after retries
            expect(resp, 201, 409, 503)


class SeatRaceUser(HttpUser):
    """
    TEST 2: Seat contention - every user wants one of 10 labelled seats

    Run: locust -f locustfile.py --tags seats -u 100 -r 50 --run-time 30s

    Verify: SELECT label, COUNT(*) FROM booking_seats GROUP BY label HAVING COUNT(*) > 1;
    Should return no rows.
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.headers = sign_up(self.client)
        if not SEATED_EVENT_ID:
            organizer = sign_up(self.client, role="organizer")
            resp = self.client.post(
                "/api/v1/events/",
                json=event_payload("Seat Race Event", capacity=100),
                headers=organizer,
            )
            if resp.status_code == 201:
                globals()["SEATED_EVENT_ID"] = resp.json()["data"]["id"]

    @tag("seats")
    @task
    def book_random_seat(self):
        if not SEATED_EVENT_ID or not self.headers:
            return

        with self.client.post(
            "/api/v1/bookings/",
            json={"eventId": SEATED_EVENT_ID, "seats": [random.choice(SEAT_LABELS)]},
            headers=self.headers,
            catch_response=True,
            name="/api/v1/bookings/ [seat]",
        ) as resp:
            expect(resp, 201, 409, 503)


class ThroughputUser(HttpUser):
    """
    TEST 3: Throughput - Cache effectiveness

    Run twice, with REDIS_ENABLED=true and =false, and compare latency.
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def list_events_cached(self):
        resp = self.client.get("/api/v1/events/", name="/api/v1/events/ [cached]")
        if resp.status_code == 200:
            for event in resp.json()["data"]:
                if event["id"] not in EVENT_IDS:
                    EVENT_IDS.append(event["id"])

    @tag("throughput", "read")
    @task(3)
    def list_events_filtered(self):
        event_type = random.choice(["Movie", "Sports", "Concert", "Family"])
        self.client.get(f"/api/v1/events/?type={event_type}", name="/api/v1/events/?type=")

    @tag("throughput", "read")
    @task(3)
    def get_event_detail(self):
        if EVENT_IDS:
            self.client.get(f"/api/v1/events/{random.choice(EVENT_IDS)}", name="/api/v1/events/{id}")

    @tag("throughput")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 4: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, and must answer with the mapped error codes.
    """
    wait_time = between(0.5, 1.5)

    def on_start(self):
        self.headers = sign_up(self.client)

    def _book(self, payload, *codes, headers=None):
        with self.client.post(
            "/api/v1/bookings/",
            json=payload,
            headers=self.headers if headers is None else headers,
            catch_response=True,
        ) as resp:
            expect(resp, *codes)

    @tag("edge")
    @task
    def invalid_event_id(self):
        self._book({"eventId": 999999, "quantity": 1}, 404)

    @tag("edge")
    @task
    def negative_quantity(self):
        self._book({"eventId": 1, "quantity": -5}, 422)

    @tag("edge")
    @task
    def zero_quantity(self):
        self._book({"eventId": 1, "quantity": 0}, 422)

    @tag("edge")
    @task
    def seat_count_mismatch(self):
        self._book({"eventId": 1, "seats": ["A1", "A2"], "quantity": 3}, 422)

    @tag("edge")
    @task
    def huge_quantity(self):
        self._book({"eventId": 1, "quantity": 999999}, 404, 409)

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post(
            "/api/v1/bookings/",
            data="not json at all",
            headers=self.headers,
            catch_response=True,
        ) as resp:
            expect(resp, 422)

    @tag("edge")
    @task
    def missing_auth(self):
        self._book({"eventId": 1, "quantity": 1}, 401, headers={})


class RealisticUser(HttpUser):
    """
    TEST 5: Realistic mixed workload

    Run: locust -f locustfile.py -u 200 -r 20 --run-time 120s
    """
    wait_time = between(1, 3)

    def on_start(self):
        self.headers = sign_up(self.client)
        self.organizer = sign_up(self.client, role="organizer")

    @task(50)
    def browse_events(self):
        resp = self.client.get("/api/v1/events/")
        if resp.status_code == 200:
            for event in resp.json()["data"]:
                if event["id"] not in EVENT_IDS:
                    EVENT_IDS.append(event["id"])

    @task(20)
    def view_event(self):
        if EVENT_IDS:
            self.client.get(f"/api/v1/events/{random.choice(EVENT_IDS)}", name="/api/v1/events/{id}")

    @task(10)
    def book_tickets(self):
        if EVENT_IDS and self.headers:
            self.client.post(
                "/api/v1/bookings/",
                json={"eventId": random.choice(EVENT_IDS), "quantity": random.randint(1, 3)},
                headers=self.headers,
            )

    @task(5)
    def my_bookings(self):
        if self.headers:
            self.client.get("/api/v1/bookings/", headers=self.headers)

    @task(3)
    def create_event(self):
        if self.organizer:
            resp = self.client.post(
                "/api/v1/events/",
                json=event_payload(f"Event {random.randint(1, 10000)}", random.randint(10, 500)),
                headers=self.organizer,
            )
            if resp.status_code == 201:
                EVENT_IDS.append(resp.json()["data"]["id"])
