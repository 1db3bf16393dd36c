"""
Unit tests for the bounded-retry transaction wrapper.
"""

import pytest
from unittest.mock import AsyncMock

from shared.config import reset_config
from shared.errors import ResolutionError, RetryLimitExceeded, TransactionError, ValidationError
from shared.retry import RetryConfig
from shared.test_helpers import FlakyWork
from service_repository.app.context import get_context
from service_repository.app.transactions import TransactionOptions, with_transaction


class TestWithTransaction:
    """Test cases for with_transaction."""

    @pytest.mark.asyncio
    async def test_success_returns_work_result(self, store):
        work = FlakyWork(failures=0, result={"id": 7})

        result = await with_transaction(work)

        assert result.status is True
        assert result.data == {"id": 7}
        assert work.calls == 1
        assert store.sessions[0].ended is True

    @pytest.mark.asyncio
    async def test_configured_retries_then_original_error(self, store, recording_logger):
        """maxCommitRetries=2 means one attempt plus two retries."""
        work = FlakyWork()

        result = await with_transaction(work, {"maxCommitRetries": 2})

        assert result.status is False
        assert isinstance(result.data, RuntimeError)
        assert work.calls == 3
        assert recording_logger.contexts == ["with_transaction"]

    @pytest.mark.asyncio
    async def test_no_retries_by_default(self, store):
        work = FlakyWork()

        result = await with_transaction(work)

        assert result.status is False
        assert work.calls == 1

    @pytest.mark.asyncio
    async def test_recovers_within_retry_budget(self, store):
        work = FlakyWork(failures=2)

        result = await with_transaction(work, {"max_commit_retries": 5})

        assert result.status is True
        assert result.data == "committed"
        assert work.calls == 3

    @pytest.mark.asyncio
    async def test_hard_attempt_ceiling(self, store):
        """A huge maxCommitRetries never exceeds ten attempts."""
        work = FlakyWork()

        result = await with_transaction(work, {"maxCommitRetries": 1000})

        assert result.status is False
        assert isinstance(result.data, RetryLimitExceeded)
        assert result.data.attempts == 10
        assert isinstance(result.data.__cause__, RuntimeError)
        assert work.calls == 10

    @pytest.mark.asyncio
    async def test_wall_clock_deadline(self, store, clock):
        work = FlakyWork(on_call=lambda call: clock.advance(10.0))

        result = await with_transaction(
            work,
            {"maxCommitRetries": 1000},
            retry_config=RetryConfig(max_attempts=10, deadline_ms=30_000),
            clock=clock
        )

        assert isinstance(result.data, RetryLimitExceeded)
        assert work.calls == 3
        assert result.data.elapsed_ms == pytest.approx(30_000)

    @pytest.mark.asyncio
    async def test_ceiling_comes_from_settings(self, store, monkeypatch):
        monkeypatch.setenv("REPO_TX_MAX_ATTEMPTS", "3")
        reset_config()
        work = FlakyWork()

        result = await with_transaction(work, {"maxCommitRetries": 50})

        assert isinstance(result.data, RetryLimitExceeded)
        assert work.calls == 3

    @pytest.mark.asyncio
    async def test_failed_attempts_roll_back(self, store):
        """Every retry reruns the whole body against a clean transaction."""
        async def work(session):
            await store.insert_one("orders", {"order_id": "O-9"})
            if len(store.sessions[0].transaction_options) < 2:
                raise RuntimeError("write conflict")
            return "ok"

        result = await with_transaction(work, {"maxCommitRetries": 1})

        assert result.status is True
        assert [d["order_id"] for d in store.collections["orders"]].count("O-9") == 1

    @pytest.mark.asyncio
    async def test_session_always_ended(self, store):
        await with_transaction(FlakyWork(), {"maxCommitRetries": 1})

        assert len(store.sessions) == 1
        assert store.sessions[0].ended is True

    @pytest.mark.asyncio
    async def test_end_session_failure_keeps_result(self, store):
        session = await store.start_session()
        session.end_session = AsyncMock(side_effect=RuntimeError("already closed"))
        store.start_session = AsyncMock(return_value=session)

        result = await with_transaction(FlakyWork(failures=0))

        assert result.status is True
        session.end_session.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_scope_options_pass_through(self, store):
        await with_transaction(FlakyWork(failures=0), {
            "readConcern": "snapshot",
            "writeConcern": {"w": "majority"},
            "readPreference": "primary",
        })

        assert store.sessions[0].transaction_options == [{
            "read_concern": {"level": "snapshot"},
            "write_concern": {"w": "majority"},
            "read_preference": "primary",
        }]

    @pytest.mark.asyncio
    async def test_sync_work_is_supported(self, store):
        result = await with_transaction(lambda session: "sync-result")

        assert result.data == "sync-result"

    @pytest.mark.asyncio
    async def test_records_timing(self, store):
        await with_transaction(FlakyWork(failures=0))

        per_op = get_context().metrics.snapshot()["db"]["perOp"]
        assert per_op["with_transaction"]["count"] == 1

    @pytest.mark.asyncio
    async def test_requires_store(self):
        result = await with_transaction(FlakyWork(failures=0))

        assert result.status is False
        assert isinstance(result.data, ResolutionError)

    @pytest.mark.asyncio
    async def test_session_start_failure(self, store):
        store.start_session = AsyncMock(side_effect=ConnectionError("no replica set"))

        result = await with_transaction(FlakyWork(failures=0))

        assert isinstance(result.data, TransactionError)
        assert isinstance(result.data.__cause__, ConnectionError)

    @pytest.mark.asyncio
    async def test_session_without_transaction_support(self, store):
        store.start_session = AsyncMock(return_value=object())
        work = FlakyWork(failures=0)

        result = await with_transaction(work)

        assert isinstance(result.data, TransactionError)
        assert result.data.details == {"type": "object"}
        assert work.calls == 0

    @pytest.mark.asyncio
    async def test_work_must_be_callable(self, store):
        result = await with_transaction("not callable")

        assert isinstance(result.data, ValidationError)
        assert store.sessions == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("options_key", ["tx_options", "txOptions"])
    async def test_single_mapping_argument(self, store, options_key):
        work = FlakyWork(failures=1)

        result = await with_transaction({"work": work, options_key: {"maxCommitRetries": 1}})

        assert result.status is True
        assert result.data == "committed"
        assert work.calls == 2

    @pytest.mark.asyncio
    async def test_single_mapping_without_options(self, store):
        result = await with_transaction({"work": FlakyWork(failures=0)})

        assert result.status is True
        assert result.data == "committed"

    @pytest.mark.asyncio
    async def test_single_mapping_rejects_unknown_fields(self, store):
        result = await with_transaction({"work": FlakyWork(failures=0), "retries": 3})

        assert result.status is False
        assert isinstance(result.data, ValidationError)
        assert result.data.details == {"fields": ["retries"]}
        assert store.sessions == []


class TestTransactionOptions:
    """Test cases for TransactionOptions."""

    def test_defaults(self):
        options = TransactionOptions.coerce(None)

        assert options.max_commit_retries == 0
        assert options.scope_options() == {}

    def test_negative_retries_rejected(self):
        with pytest.raises(Exception):
            TransactionOptions.coerce({"maxCommitRetries": -1})

    def test_non_mapping_rejected(self):
        with pytest.raises(ValidationError):
            TransactionOptions.coerce("snapshot")
