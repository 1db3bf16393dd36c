"""
Document store boundary.

The repository layer never implements query semantics itself; it calls a
store collaborator keyed by entity name. Methods may be sync or async.
"""

from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable

from shared.errors import ResolutionError, ValidationError
from .awaitables import maybe_await
from .context import get_context


@runtime_checkable
class TransactionSession(Protocol):
    """Transactional scope handed to transaction work callbacks."""

    def with_transaction(self, callback: Any, options: Dict[str, Any]) -> Any: ...

    def end_session(self) -> Any: ...


@runtime_checkable
class DocumentStore(Protocol):
    """Capability set of the underlying document store."""

    def has_entity(self, entity: str) -> Any: ...

    def find_one(self, entity: str, filter: Dict[str, Any], projection: Optional[Sequence[str]] = None) -> Any: ...

    def find_many(
        self,
        entity: str,
        filter: Dict[str, Any],
        projection: Optional[Sequence[str]] = None,
        sort: Optional[Dict[str, int]] = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> Any: ...

    def count(self, entity: str, filter: Dict[str, Any]) -> Any: ...

    def insert_one(self, entity: str, document: Dict[str, Any], options: Optional[Dict[str, Any]] = None) -> Any: ...

    def insert_many(self, entity: str, documents: List[Dict[str, Any]], options: Optional[Dict[str, Any]] = None) -> Any: ...

    def update_one(self, entity: str, filter: Dict[str, Any], update: Dict[str, Any], options: Optional[Dict[str, Any]] = None) -> Any: ...

    def update_many(self, entity: str, filter: Dict[str, Any], update: Dict[str, Any], options: Optional[Dict[str, Any]] = None) -> Any: ...

    def delete_one(self, entity: str, filter: Dict[str, Any], options: Optional[Dict[str, Any]] = None) -> Any: ...

    def delete_many(self, entity: str, filter: Dict[str, Any], options: Optional[Dict[str, Any]] = None) -> Any: ...

    def aggregate(self, entity: str, pipeline: List[Dict[str, Any]]) -> Any: ...

    def start_session(self) -> Any: ...


def get_store() -> DocumentStore:
    store = get_context().store
    if store is None:
        raise ResolutionError("<store>", "No document store configured; call set_store() first")
    return store


async def resolve_entity(entity: Any, store: Any = None) -> str:
    """Resolve ``entity`` to a registered entity name.

    Accepts the exact name or its singular form (``"user"`` -> ``"users"``).
    """
    if not isinstance(entity, str) or not entity:
        raise ValidationError(
            "Entity must be a non-empty string",
            {"type": type(entity).__name__}
        )

    store = store or get_store()
    if await maybe_await(store.has_entity(entity)):
        return entity

    plural = entity if entity.endswith("s") else f"{entity}s"
    if plural != entity and await maybe_await(store.has_entity(plural)):
        return plural

    raise ResolutionError(entity)
