"""
Bounded-retry transaction wrapper.

Each attempt reruns the whole work callback inside a fresh transaction from
the store session. Retries stop at the caller's ``max_commit_retries`` or at
the hard ceiling (attempt count / wall-clock deadline), whichever comes first.
The session is always ended.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from shared.errors import TransactionError, ValidationError
from shared.logging import get_logger
from shared.retry import RetryBudget, RetryConfig
from .awaitables import maybe_await
from .context import get_context
from .envelope import Result, fail, ok
from .store import TransactionSession, get_store

logger = get_logger("repository.transactions")

OP_NAME = "with_transaction"

Work = Callable[[Any], Union[Any, Awaitable[Any]]]


class TransactionOptions(BaseModel):
    """Options passed through to the store's transactional scope."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    read_concern: Optional[str] = Field(default=None, alias="readConcern")
    write_concern: Any = Field(default=None, alias="writeConcern")
    read_preference: Any = Field(default=None, alias="readPreference")
    max_commit_retries: int = Field(default=0, ge=0, alias="maxCommitRetries")

    @classmethod
    def coerce(cls, value: Any) -> "TransactionOptions":
        if value is None:
            return cls()
        if isinstance(value, TransactionOptions):
            return value
        if isinstance(value, Mapping):
            return cls.model_validate(dict(value))
        raise ValidationError(
            "Transaction options must be a mapping",
            {"type": type(value).__name__}
        )

    def scope_options(self) -> Dict[str, Any]:
        options: Dict[str, Any] = {}
        if self.read_concern:
            options["read_concern"] = {"level": self.read_concern}
        if self.write_concern:
            options["write_concern"] = self.write_concern
        if self.read_preference:
            options["read_preference"] = self.read_preference
        return options


def _unpack_named_args(args: Mapping[str, Any]):
    """Split ``{"work": ..., "tx_options": ...}`` into positional form."""
    named = dict(args)
    work = named.pop("work", None)
    tx_options = named.pop("tx_options", None)
    camel = named.pop("txOptions", None)
    if named:
        raise ValidationError(
            "Unexpected transaction arguments",
            {"fields": sorted(str(k) for k in named)}
        )
    return work, tx_options if tx_options is not None else camel


async def _run_attempt(session: Any, work: Work, options: TransactionOptions) -> Any:
    outcome: Dict[str, Any] = {}

    async def callback(scope_session: Any) -> None:
        outcome["result"] = await maybe_await(work(scope_session))

    await maybe_await(session.with_transaction(callback, options.scope_options()))
    return outcome.get("result")


async def with_transaction(
    work: Work,
    tx_options: Any = None,
    *,
    retry_config: Optional[RetryConfig] = None,
    clock: Optional[Callable[[], float]] = None
) -> Result:
    """Run ``work(session)`` in a transaction, retrying the whole body on failure."""
    context = get_context()
    try:
        if tx_options is None and isinstance(work, Mapping):
            work, tx_options = _unpack_named_args(work)
        if not callable(work):
            raise ValidationError("Transaction work must be callable", {"type": type(work).__name__})
        options = TransactionOptions.coerce(tx_options)
        store = get_store()
    except Exception as exc:
        return fail(exc, OP_NAME)

    try:
        session = await maybe_await(store.start_session())
    except Exception as exc:
        error = TransactionError("Could not start transaction session", {"error": str(exc)})
        error.__cause__ = exc
        return fail(error, OP_NAME)

    if not isinstance(session, TransactionSession):
        return fail(
            TransactionError("Store session does not support transactions", {"type": type(session).__name__}),
            OP_NAME
        )

    budget = RetryBudget(retry_config or RetryConfig.from_settings(), clock=clock)
    start = context.metrics.start_timer()
    try:
        while True:
            attempt = budget.begin_attempt()
            try:
                result = await _run_attempt(session, work, options)
                context.metrics.record_timing(OP_NAME, start)
                if attempt > 1:
                    logger.info("Transaction succeeded after retry", attempt=attempt)
                return ok(result)

            except Exception as exc:
                if attempt - 1 >= options.max_commit_retries:
                    logger.error(
                        "Transaction failed",
                        attempt=attempt,
                        max_commit_retries=options.max_commit_retries,
                        error=str(exc)
                    )
                    return fail(exc, OP_NAME)

                if budget.exhausted():
                    limit_error = budget.limit_error(exc)
                    limit_error.__cause__ = exc
                    logger.error(
                        "Transaction retry ceiling reached",
                        attempt=attempt,
                        elapsed_ms=round(budget.elapsed_ms, 3),
                        error=str(exc)
                    )
                    return fail(limit_error, OP_NAME)

                delay = budget.next_delay()
                logger.warning(
                    "Transaction attempt failed, retrying",
                    attempt=attempt,
                    delay=delay,
                    error=str(exc)
                )
                if delay:
                    await asyncio.sleep(delay)
    finally:
        try:
            await maybe_await(session.end_session())
        except Exception as exc:
            logger.warning("Failed to end transaction session", error=str(exc))
