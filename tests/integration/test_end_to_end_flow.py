"""
End-to-end integration tests for the repository cache layer.
"""

import pytest
from fastapi.testclient import TestClient

from shared.test_helpers import InMemoryDocumentStore, ManualClock, RecordingLogger, TestDataFactory
from service_repository.app import operations as ops
from service_repository.app.caching.adapters import MemoryCacheAdapter
from service_repository.app.main import create_app


class TestEndToEndFlow:
    """Reads, writes, invalidation, transactions and metrics working together."""

    @pytest.fixture
    def clock(self):
        return ManualClock()

    @pytest.fixture
    def repository(self, clock):
        """Wire store, cache and logger the way an application would."""
        store = InMemoryDocumentStore({
            "users": TestDataFactory.create_test_users(),
            "orders": TestDataFactory.create_test_orders(),
        })
        cache = MemoryCacheAdapter(clock=clock)
        sink = RecordingLogger()

        ops.set_store(store)
        ops.set_cache(cache)
        ops.set_logger(sink)
        return store, cache, sink

    @pytest.fixture
    def client(self):
        return TestClient(create_app())

    @pytest.mark.asyncio
    async def test_read_write_invalidate_cycle(self, repository):
        store, cache, sink = repository
        cache_opts = {"ttl": "1m"}

        first = await ops.get_many("users", {"role": "user"}, cache_opts=cache_opts)
        again = await ops.get_many("users", {"role": "user"}, cache_opts=cache_opts)
        assert again == first
        assert store.calls_to("find_many") == 1

        await ops.create_one("users", {"id": 4, "name": "Barbara", "role": "user"}, {
            "invalidatePrefixes": ["get_many:users:"],
        })

        refreshed = await ops.get_many("users", {"role": "user"}, cache_opts=cache_opts)
        assert len(refreshed.data) == len(first.data) + 1
        assert store.calls_to("find_many") == 2
        assert sink.calls == []

    @pytest.mark.asyncio
    async def test_cached_reads_expire(self, repository, clock):
        store, _, _ = repository

        await ops.count_documents("orders", cache_opts={"ttl": "30s"})
        clock.advance(29)
        await ops.count_documents("orders", cache_opts={"ttl": "30s"})
        assert store.calls_to("count") == 1

        clock.advance(2)
        await ops.count_documents("orders", cache_opts={"ttl": "30s"})
        assert store.calls_to("count") == 2

    @pytest.mark.asyncio
    async def test_transaction_retries_whole_body(self, repository):
        store, _, _ = repository
        attempts = []

        async def transfer(session):
            attempts.append(session)
            await ops.update_one("orders", {"order_id": "O-2"}, {"$set": {"status": "paid"}}, {"session": session})
            await ops.create_one("orders", {"order_id": "O-4", "user_id": 2, "total": 75.5}, {"session": session})
            if len(attempts) == 1:
                raise RuntimeError("TransientTransactionError")
            return "transferred"

        result = await ops.with_transaction(transfer, {"maxCommitRetries": 3, "readConcern": "snapshot"})

        assert result.status is True
        assert result.data == "transferred"
        assert len(attempts) == 2
        orders = store.collections["orders"]
        assert [o["order_id"] for o in orders].count("O-4") == 1
        assert store.sessions[0].ended is True

    @pytest.mark.asyncio
    async def test_failures_reach_logger_and_never_raise(self, repository):
        _, _, sink = repository

        missing = await ops.get_one("invoices", {"id": 1})
        bad = await ops.safe_query("get_one", 42)

        assert missing.status is False
        assert bad.status is False
        assert sink.contexts == ["get_one", "get_one"]

    @pytest.mark.asyncio
    async def test_admin_service_reflects_activity(self, repository, client):
        await ops.get_one("users", {"id": 1}, cache_opts={"key": "user:1"})
        await ops.get_one("users", {"id": 1}, cache_opts={"key": "user:1"})

        snapshot = client.get("/metrics/snapshot").json()
        assert snapshot["cache"] == {"hits": 1, "misses": 1, "puts": 1, "invalidations": 0}
        assert snapshot["db"]["perOp"]["get_one:users"]["count"] == 1

        response = client.post("/cache/invalidate", json={"keys": "user:1"})
        assert response.json() == {"invalidated": 1}

        client.post("/metrics/reset")
        assert client.get("/metrics/snapshot").json()["db"]["perOp"] == {}
