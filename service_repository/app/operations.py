"""
Public repository operations.

Every operation accepts either positional arguments or a single mapping of
named fields (``get_one("users", {"id": 1})`` or
``get_one({"entity": "users", "filter": {"id": 1}})``). Arguments are
normalized into a parameter model before any logic runs. Operations never
raise: they return a ``Result`` envelope and notify the logger collaborator
on failure.
"""

from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Type, TypeVar, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from shared.errors import ValidationError
from shared.logging import set_operation
from .awaitables import maybe_await
from .caching.invalidation import invalidate_cache
from .caching.orchestrator import CacheOptions, with_cache
from .context import get_context
from .envelope import Result, fail, ok, safe_call
from .store import DocumentStore, get_store, resolve_entity
from .transactions import with_transaction
from .write_args import WriteArgs, parse_write_arg

DEFAULT_SORT = {"created_at": -1}
DEFAULT_LIMIT = 100

P = TypeVar("P", bound="OperationParams")


def _alias(*names: str) -> AliasChoices:
    return AliasChoices(*names)


class OperationParams(BaseModel):
    """Canonical argument record shared by all operations."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid", arbitrary_types_allowed=True)

    entity: str = Field(validation_alias=_alias("entity", "model"))

    @field_validator("filter", mode="before", check_fields=False)
    @classmethod
    def _default_filter(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("select", mode="before", check_fields=False)
    @classmethod
    def _split_select(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [field for field in value.replace(",", " ").split() if field]
        return value

    @field_validator("sort", mode="before", check_fields=False)
    @classmethod
    def _default_sort(cls, value: Any) -> Any:
        return dict(DEFAULT_SORT) if value is None else value


class GetOneParams(OperationParams):
    filter: Dict[str, Any] = Field(default_factory=dict)
    select: Optional[List[str]] = None
    cache_opts: Optional[CacheOptions] = Field(default=None, validation_alias=_alias("cache_opts", "cacheOpts"))


class GetManyParams(OperationParams):
    filter: Dict[str, Any] = Field(default_factory=dict)
    select: Optional[List[str]] = None
    sort: Dict[str, int] = Field(default_factory=lambda: dict(DEFAULT_SORT))
    cache_opts: Optional[CacheOptions] = Field(default=None, validation_alias=_alias("cache_opts", "cacheOpts"))


class GetManyWithLimitParams(OperationParams):
    filter: Dict[str, Any] = Field(default_factory=dict)
    select: Optional[List[str]] = None
    sort: Dict[str, int] = Field(default_factory=lambda: dict(DEFAULT_SORT))
    limit: int = Field(default=DEFAULT_LIMIT, ge=1)
    cache_opts: Optional[CacheOptions] = Field(default=None, validation_alias=_alias("cache_opts", "cacheOpts"))


class GetManyWithPaginationParams(OperationParams):
    filter: Dict[str, Any] = Field(default_factory=dict)
    select: Optional[List[str]] = None
    sort: Dict[str, int] = Field(default_factory=lambda: dict(DEFAULT_SORT))
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=DEFAULT_LIMIT, ge=1)
    cache_opts: Optional[CacheOptions] = Field(default=None, validation_alias=_alias("cache_opts", "cacheOpts"))


class CountParams(OperationParams):
    filter: Dict[str, Any] = Field(default_factory=dict)
    cache_opts: Optional[CacheOptions] = Field(default=None, validation_alias=_alias("cache_opts", "cacheOpts"))


class AggregateParams(OperationParams):
    pipeline: List[Dict[str, Any]] = Field(default_factory=list)
    cache_opts: Optional[CacheOptions] = Field(default=None, validation_alias=_alias("cache_opts", "cacheOpts"))


class CreateOneParams(OperationParams):
    payload: Dict[str, Any]
    write_arg: Any = Field(default=None, validation_alias=_alias("write_arg", "writeArg"))


class CreateManyParams(OperationParams):
    docs: Union[List[Dict[str, Any]], Dict[str, Any]]
    write_arg: Any = Field(default=None, validation_alias=_alias("write_arg", "writeArg"))

    @field_validator("docs", mode="after")
    @classmethod
    def _as_list(cls, value: Any) -> List[Dict[str, Any]]:
        return [value] if isinstance(value, dict) else value


class UpdateParams(OperationParams):
    filter: Dict[str, Any] = Field(default_factory=dict)
    data: Dict[str, Any]
    write_arg: Any = Field(default=None, validation_alias=_alias("write_arg", "writeArg"))


class DeleteParams(OperationParams):
    filter: Dict[str, Any] = Field(default_factory=dict)
    write_arg: Any = Field(default=None, validation_alias=_alias("write_arg", "writeArg"))


def normalize_params(params_cls: Type[P], args: Tuple[Any, ...], kwargs: Dict[str, Any]) -> P:
    """Build one canonical parameter record from positional or named input."""
    if len(args) == 1 and not kwargs and isinstance(args[0], Mapping):
        data = dict(args[0])
    else:
        names = list(params_cls.model_fields)
        if len(args) > len(names):
            raise ValidationError(
                f"Too many arguments: expected at most {len(names)}",
                {"expected": names, "received": len(args)}
            )
        data = dict(zip(names, args))
        duplicated = set(data).intersection(kwargs)
        if duplicated:
            raise ValidationError("Arguments given twice", {"fields": sorted(duplicated)})
        data.update(kwargs)

    try:
        return params_cls.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(
            f"Invalid arguments for {params_cls.__name__}",
            {"errors": exc.errors(include_url=False, include_context=False, include_input=False)}
        ) from exc


async def _read(
    op: str,
    key_args: Sequence[Any],
    cache_opts: Optional[CacheOptions],
    run: Callable[[], Any]
) -> Result:
    if cache_opts is not None and cache_opts.enabled:
        return await with_cache(op, key_args, cache_opts, run)
    return await run()


async def _write(op: str, entity: str, write_arg: Any, call: Callable[[Any, str, Optional[Dict[str, Any]]], Any]) -> Result:
    store = get_store()
    resolved = await resolve_entity(entity, store)
    metrics = get_context().metrics
    start = metrics.start_timer()

    parsed: WriteArgs = parse_write_arg(write_arg)
    result = await maybe_await(call(store, resolved, parsed.options))

    if parsed.has_invalidation:
        await invalidate_cache({"keys": parsed.invalidate_keys, "prefixes": parsed.invalidate_prefixes})

    metrics.record_timing(f"{op}:{resolved}", start)
    return ok(result)


def _timed_reader(op_name: str, fetch: Callable[[], Any]) -> Callable[[], Any]:
    metrics = get_context().metrics
    start = metrics.start_timer()

    async def run() -> Result:
        data = await fetch()
        metrics.record_timing(op_name, start)
        return ok(data)

    return run


# ---------------------------------------------------------------- reads


async def get_one(*args: Any, **kwargs: Any) -> Result:
    """Find a single document."""
    set_operation("get_one")
    try:
        params = normalize_params(GetOneParams, args, kwargs)
        store = get_store()
        entity = await resolve_entity(params.entity, store)

        async def fetch() -> Any:
            return await maybe_await(store.find_one(entity, params.filter, params.select))

        return await _read(
            "get_one",
            [entity, params.filter, params.select],
            params.cache_opts,
            _timed_reader(f"get_one:{entity}", fetch)
        )
    except Exception as exc:
        return fail(exc, "get_one")


async def get_many(*args: Any, **kwargs: Any) -> Result:
    """Find documents matching a filter, sorted (newest first by default)."""
    set_operation("get_many")
    try:
        params = normalize_params(GetManyParams, args, kwargs)
        store = get_store()
        entity = await resolve_entity(params.entity, store)

        async def fetch() -> Any:
            return await maybe_await(store.find_many(entity, params.filter, params.select, params.sort))

        return await _read(
            "get_many",
            [entity, params.filter, params.select, params.sort],
            params.cache_opts,
            _timed_reader(f"get_many:{entity}", fetch)
        )
    except Exception as exc:
        return fail(exc, "get_many")


async def get_many_with_limit(*args: Any, **kwargs: Any) -> Result:
    set_operation("get_many_with_limit")
    try:
        params = normalize_params(GetManyWithLimitParams, args, kwargs)
        store = get_store()
        entity = await resolve_entity(params.entity, store)

        async def fetch() -> Any:
            return await maybe_await(
                store.find_many(entity, params.filter, params.select, params.sort, 0, params.limit)
            )

        return await _read(
            "get_many_with_limit",
            [entity, params.filter, params.select, params.sort, params.limit],
            params.cache_opts,
            _timed_reader(f"get_many_with_limit:{entity}", fetch)
        )
    except Exception as exc:
        return fail(exc, "get_many_with_limit")


async def get_many_with_pagination(*args: Any, **kwargs: Any) -> Result:
    """Page through documents; data is ``{data, total, page, limit}``."""
    set_operation("get_many_with_pagination")
    try:
        params = normalize_params(GetManyWithPaginationParams, args, kwargs)
        store = get_store()
        entity = await resolve_entity(params.entity, store)

        async def fetch() -> Any:
            total = await maybe_await(store.count(entity, params.filter))
            docs = await maybe_await(store.find_many(
                entity,
                params.filter,
                params.select,
                params.sort,
                (params.page - 1) * params.limit,
                params.limit
            ))
            return {"data": docs, "total": total, "page": params.page, "limit": params.limit}

        return await _read(
            "get_many_with_pagination",
            [entity, params.filter, params.select, params.sort, params.page, params.limit],
            params.cache_opts,
            _timed_reader(f"get_many_with_pagination:{entity}", fetch)
        )
    except Exception as exc:
        return fail(exc, "get_many_with_pagination")


async def count_documents(*args: Any, **kwargs: Any) -> Result:
    set_operation("count_documents")
    try:
        params = normalize_params(CountParams, args, kwargs)
        store = get_store()
        entity = await resolve_entity(params.entity, store)

        async def fetch() -> Any:
            return await maybe_await(store.count(entity, params.filter))

        return await _read(
            "count_documents",
            [entity, params.filter],
            params.cache_opts,
            _timed_reader(f"count_documents:{entity}", fetch)
        )
    except Exception as exc:
        return fail(exc, "count_documents")


async def aggregate(*args: Any, **kwargs: Any) -> Result:
    """Run an aggregation pipeline."""
    set_operation("aggregate")
    try:
        params = normalize_params(AggregateParams, args, kwargs)
        store = get_store()
        entity = await resolve_entity(params.entity, store)

        async def fetch() -> Any:
            return await maybe_await(store.aggregate(entity, params.pipeline))

        return await _read(
            "aggregate",
            [entity, params.pipeline],
            params.cache_opts,
            _timed_reader(f"aggregate:{entity}", fetch)
        )
    except Exception as exc:
        return fail(exc, "aggregate")


# ---------------------------------------------------------------- writes


async def create_one(*args: Any, **kwargs: Any) -> Result:
    set_operation("create_one")
    try:
        params = normalize_params(CreateOneParams, args, kwargs)
        return await _write(
            "create_one",
            params.entity,
            params.write_arg,
            lambda store, entity, options: store.insert_one(entity, params.payload, options)
        )
    except Exception as exc:
        return fail(exc, "create_one")


async def create_many(*args: Any, **kwargs: Any) -> Result:
    """Bulk insert; a single document is accepted. ``ordered`` defaults to True."""
    set_operation("create_many")
    try:
        params = normalize_params(CreateManyParams, args, kwargs)
        return await _write(
            "create_many",
            params.entity,
            params.write_arg,
            lambda store, entity, options: store.insert_many(
                entity, params.docs, {"ordered": True, **(options or {})}
            )
        )
    except Exception as exc:
        return fail(exc, "create_many")


async def update_one(*args: Any, **kwargs: Any) -> Result:
    set_operation("update_one")
    try:
        params = normalize_params(UpdateParams, args, kwargs)
        return await _write(
            "update_one",
            params.entity,
            params.write_arg,
            lambda store, entity, options: store.update_one(entity, params.filter, params.data, options)
        )
    except Exception as exc:
        return fail(exc, "update_one")


async def update_many(*args: Any, **kwargs: Any) -> Result:
    set_operation("update_many")
    try:
        params = normalize_params(UpdateParams, args, kwargs)
        return await _write(
            "update_many",
            params.entity,
            params.write_arg,
            lambda store, entity, options: store.update_many(entity, params.filter, params.data, options)
        )
    except Exception as exc:
        return fail(exc, "update_many")


async def upsert_one(*args: Any, **kwargs: Any) -> Result:
    """Update one document, inserting it when nothing matches. Callers cannot turn ``upsert`` off."""
    set_operation("upsert_one")
    try:
        params = normalize_params(UpdateParams, args, kwargs)
        return await _write(
            "upsert_one",
            params.entity,
            params.write_arg,
            lambda store, entity, options: store.update_one(
                entity, params.filter, params.data, {**(options or {}), "upsert": True}
            )
        )
    except Exception as exc:
        return fail(exc, "upsert_one")


async def delete_one(*args: Any, **kwargs: Any) -> Result:
    set_operation("delete_one")
    try:
        params = normalize_params(DeleteParams, args, kwargs)
        return await _write(
            "delete_one",
            params.entity,
            params.write_arg,
            lambda store, entity, options: store.delete_one(entity, params.filter, options)
        )
    except Exception as exc:
        return fail(exc, "delete_one")


async def delete_many(*args: Any, **kwargs: Any) -> Result:
    set_operation("delete_many")
    try:
        params = normalize_params(DeleteParams, args, kwargs)
        return await _write(
            "delete_many",
            params.entity,
            params.write_arg,
            lambda store, entity, options: store.delete_many(entity, params.filter, options)
        )
    except Exception as exc:
        return fail(exc, "delete_many")


# ---------------------------------------------------------------- configuration and utilities


def set_cache(adapter: Any) -> Result:
    installed = get_context().set_cache(adapter)
    return ok({"message": f"Cache set to {type(installed).__name__}"})


def set_logger(sink: Any) -> Result:
    get_context().set_logger(sink)
    return ok({"message": "Logger set"})


def set_store(store: Any) -> Result:
    if store is not None and not isinstance(store, DocumentStore):
        return fail(
            ValidationError("Store does not implement the document store interface", {"type": type(store).__name__}),
            "set_store"
        )
    get_context().set_store(store)
    return ok({"message": f"Store set to {type(store).__name__}"})


def get_metrics() -> Result:
    return ok(get_context().metrics.snapshot())


def reset_metrics() -> Result:
    get_context().metrics.reset()
    return ok({"message": "Metrics reset"})


async def safe_query(fn: Union[str, Callable[..., Any]], *args: Any, **kwargs: Any) -> Result:
    """Run ``fn`` or the operation named ``fn``; always returns an envelope."""
    return await safe_call(fn, *args, operations=OPERATIONS, **kwargs)


OPERATIONS: Dict[str, Callable[..., Any]] = {
    "create_one": create_one,
    "create_many": create_many,
    "get_one": get_one,
    "get_many": get_many,
    "get_many_with_limit": get_many_with_limit,
    "get_many_with_pagination": get_many_with_pagination,
    "count_documents": count_documents,
    "aggregate": aggregate,
    "update_one": update_one,
    "update_many": update_many,
    "upsert_one": upsert_one,
    "delete_one": delete_one,
    "delete_many": delete_many,
    "with_transaction": with_transaction,
    "invalidate_cache": invalidate_cache,
    "get_metrics": get_metrics,
    "reset_metrics": reset_metrics,
}
