import unittest

from fastapi.testclient import TestClient

from datapusher.main import app
from datapusher.api.ingest import get_storage_service
from datapusher.core.ratelimit import RateLimiter, get_rate_limiter
from fakes import InMemoryStorage


class TestDeliveryLogs(unittest.TestCase):
    def setUp(self):
        self.client = TestClient(app)
        self.storage = InMemoryStorage()
        app.dependency_overrides[get_storage_service] = lambda: self.storage
        app.dependency_overrides[get_rate_limiter] = lambda: RateLimiter(
            max_requests=10_000, window_seconds=60.0
        )

        self.acme = self.storage.add_account("Acme", token="secret-acme")
        self.storage.add_destination(self.acme, "https://one.example.com")
        self.storage.add_destination(self.acme, "https://two.example.com")
        other = self.storage.add_account("Other", token="secret-other")
        self.storage.add_destination(other, "https://other.example.com")

        for token, event_id in (
            ("secret-acme", "evt-1"),
            ("secret-acme", "evt-2"),
            ("secret-other", "evt-1"),
        ):
            self.client.post(
                "/server/incoming_data",
                json={"event": event_id},
                headers={"cl-x-token": token, "cl-x-event-id": event_id},
            )

    def tearDown(self):
        app.dependency_overrides.clear()

    def test_lists_only_own_records(self):
        res = self.client.get("/logs", headers={"cl-x-token": "secret-acme"})

        self.assertEqual(res.status_code, 200)
        rows = res.json()
        self.assertEqual(len(rows), 4)
        self.assertTrue(all(r["account_id"] == str(self.acme.id) for r in rows))

    def test_filter_by_event_and_limit(self):
        res = self.client.get(
            "/logs", params={"event_id": "evt-2"}, headers={"cl-x-token": "secret-acme"}
        )
        self.assertEqual({r["event_id"] for r in res.json()}, {"evt-2"})
        self.assertEqual(len(res.json()), 2)

        res = self.client.get("/logs", params={"limit": 1}, headers={"cl-x-token": "secret-acme"})
        self.assertEqual(len(res.json()), 1)

    def test_limit_bounds(self):
        res = self.client.get("/logs", params={"limit": 5000}, headers={"cl-x-token": "secret-acme"})
        self.assertEqual(res.status_code, 422)

    def test_missing_and_invalid_token(self):
        res = self.client.get("/logs")
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.json(), {"success": False, "message": "Missing headers"})

        res = self.client.get("/logs", headers={"cl-x-token": "nope"})
        self.assertEqual(res.status_code, 401)
        self.assertEqual(res.json(), {"success": False, "message": "Invalid token"})


class TestHealth(unittest.TestCase):
    def setUp(self):
        self.client = TestClient(app)

    def test_root(self):
        res = self.client.get("/")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json(), {"message": "Data Pusher API Running..."})

    def test_health_reports_db_status_without_querying(self):
        res = self.client.get("/health")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["status"], "ok")
        self.assertIn("db", res.json())


if __name__ == "__main__":
    unittest.main()
