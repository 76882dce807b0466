import asyncio
import unittest

import httpx

from datapusher.main import app
from datapusher.api.ingest import get_storage_service
from datapusher.core.ratelimit import RateLimiter, get_rate_limiter
from fakes import InMemoryStorage


class TestConcurrentIngestion(unittest.TestCase):
    def setUp(self):
        self.loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self.loop)
        self.storage = InMemoryStorage()
        app.dependency_overrides[get_storage_service] = lambda: self.storage
        app.dependency_overrides[get_rate_limiter] = lambda: RateLimiter(
            max_requests=10_000, window_seconds=60.0
        )

    def tearDown(self):
        app.dependency_overrides.clear()
        self.loop.close()

    async def _post_all(self, requests):
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            return await asyncio.gather(
                *[
                    client.post(
                        "/server/incoming_data",
                        json=body,
                        headers={"cl-x-token": token, "cl-x-event-id": event_id},
                    )
                    for token, event_id, body in requests
                ]
            )

    def test_disjoint_tenants_produce_exact_record_counts(self):
        expected = {}
        requests = []
        for i in range(8):
            tenant = self.storage.add_account(f"tenant-{i}", token=f"secret-{i}")
            for d in range(i % 4 + 1):
                self.storage.add_destination(tenant, f"https://t{i}.example.com/{d}")
            event_id = f"evt-{i}"
            expected[event_id] = i % 4 + 1
            requests.append((f"secret-{i}", event_id, {"tenant": i}))

        responses = self.loop.run_until_complete(self._post_all(requests))

        self.assertTrue(all(r.status_code == 200 for r in responses))
        self.assertTrue(all(r.json()["message"] == "Data Received" for r in responses))
        self.assertEqual(len(self.storage.logs), sum(expected.values()))
        for event_id, count in expected.items():
            records = self.storage.logs_for(event_id)
            self.assertEqual(len(records), count)
            self.assertEqual(len({r.destination_id for r in records}), count)

    def test_repeated_event_across_concurrent_requests(self):
        tenant = self.storage.add_account("Acme", token="secret-acme")
        for d in range(3):
            self.storage.add_destination(tenant, f"https://acme.example.com/{d}")

        requests = [("secret-acme", "evt-same", {"n": n}) for n in range(5)]
        self.loop.run_until_complete(self._post_all(requests))

        self.assertEqual(len(self.storage.logs_for("evt-same")), 15)


if __name__ == "__main__":
    unittest.main()
