"""
Locust Load Test Suite

Needs an event and a ticket type seeded in the database:
  EVENT_ID=1 TICKET_TYPE_ID=1 locust -f locustfile.py --host http://localhost:8000

Run scenarios:
  locust -f locustfile.py --tags contention   # Test overselling
  locust -f locustfile.py --tags throughput   # Test availability cache
  locust -f locustfile.py --tags edge         # Test bad input
  locust -f locustfile.py                     # All tests
"""

import os
import random

from locust import HttpUser, between, events, tag, task

EVENT_ID = int(os.environ.get("EVENT_ID", "1"))
TICKET_TYPE_ID = int(os.environ.get("TICKET_TYPE_ID", "1"))

HOLDS_URL = f"/api/v1/events/{EVENT_ID}/holds"
AVAILABILITY_URL = f"/api/v1/ticket-types/{TICKET_TYPE_ID}/availability"


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "=" * 60)
    print(f"Target: event {EVENT_ID}, ticket type {TICKET_TYPE_ID}")
    print("=" * 60)


@events.test_stop.add_listener
def on_test_stop(environment, **kwargs):
    print("\nVerify no oversell:")
    print(f"  SELECT capacity, sold, held FROM ticket_types WHERE id = {TICKET_TYPE_ID};")
    print("  sold + held must be <= capacity")


class ContentionUser(HttpUser):
    """
    TEST 1: Contention - many buyers, one category

    Run: locust -f locustfile.py --tags contention -u 200 -r 100 --run-time 60s

    Each buyer holds 1-2 tickets, then pays or walks away.
    409 is an expected answer once the category is sold out.
    """
    wait_time = between(0, 0.1)

    @tag("contention")
    @task
    def hold_then_checkout(self):
        with self.client.post(
            HOLDS_URL,
            json={"ticketTypeId": TICKET_TYPE_ID, "quantity": random.randint(1, 2)},
            name="/api/v1/events/{id}/holds",
            catch_response=True,
        ) as resp:
            if resp.status_code == 201:
                resp.success()
            elif resp.status_code == 409:
                resp.success()  # Expected: sold out
                return
            else:
                resp.failure(f"Unexpected: {resp.status_code}")
                return
            hold_id = resp.json()["id"]

        if random.random() < 0.7:
            with self.client.post(
                f"/api/v1/holds/{hold_id}/commit",
                name="/api/v1/holds/{id}/commit",
                catch_response=True,
            ) as resp:
                if resp.status_code in [200, 409]:
                    resp.success()
                else:
                    resp.failure(f"Unexpected: {resp.status_code}")
        else:
            self.client.delete(f"/api/v1/holds/{hold_id}", name="/api/v1/holds/{id}")


class ThroughputUser(HttpUser):
    """
    TEST 2: Throughput - Availability cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. With REDIS_ENABLED=false on the API, run again

    Compare:
      - Avg response time
      - Requests/sec
      - P95/P99 latency
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def availability(self):
        self.client.get(AVAILABILITY_URL, name="/api/v1/ticket-types/{id}/availability")

    @tag("throughput", "read")
    @task(3)
    def inventory_report(self):
        self.client.get(f"/api/v1/events/{EVENT_ID}/inventory", name="/api/v1/events/{id}/inventory")

    @tag("throughput")
    @task(3)
    def price_cart(self):
        self.client.post(
            "/api/v1/pricing/cart",
            json={"lines": [{"ticketTypeId": TICKET_TYPE_ID, "quantity": random.randint(1, 4)}]},
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

    def _expect(self, resp, allowed):
        if resp.status_code in allowed:
            resp.success()
        else:
            resp.failure(f"Expected {allowed}, got {resp.status_code}")

    @tag("edge")
    @task
    def unknown_event(self):
        with self.client.post(
            "/api/v1/events/999999/holds",
            json={"ticketTypeId": TICKET_TYPE_ID, "quantity": 1},
            name="/api/v1/events/[unknown]/holds",
            catch_response=True,
        ) as resp:
            self._expect(resp, [404])

    @tag("edge")
    @task
    def zero_quantity(self):
        with self.client.post(
            HOLDS_URL,
            json={"ticketTypeId": TICKET_TYPE_ID, "quantity": 0},
            name="/api/v1/events/{id}/holds [zero]",
            catch_response=True,
        ) as resp:
            self._expect(resp, [422])

    @tag("edge")
    @task
    def huge_quantity(self):
        with self.client.post(
            HOLDS_URL,
            json={"ticketTypeId": TICKET_TYPE_ID, "quantity": 999999},
            name="/api/v1/events/{id}/holds [huge]",
            catch_response=True,
        ) as resp:
            self._expect(resp, [409, 422])

    @tag("edge")
    @task
    def commit_unknown_hold(self):
        with self.client.post(
            "/api/v1/holds/999999999/commit",
            name="/api/v1/holds/[unknown]/commit",
            catch_response=True,
        ) as resp:
            self._expect(resp, [404])

    @tag("edge")
    @task
    def bad_promo(self):
        with self.client.post(
            "/api/v1/pricing/cart",
            json={"lines": [{"ticketTypeId": TICKET_TYPE_ID, "quantity": 1}], "promoCode": "NOT-A-CODE"},
            name="/api/v1/pricing/cart [bad promo]",
            catch_response=True,
        ) as resp:
            self._expect(resp, [400])

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post(
            HOLDS_URL,
            data="not json at all",
            name="/api/v1/events/{id}/holds [malformed]",
            catch_response=True,
        ) as resp:
            self._expect(resp, [400, 422])
