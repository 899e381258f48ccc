"""Contract of the table-oriented persistence service.

Both backends (`RestPersistenceClient`, `SqlPersistence`) implement
`PersistenceService`. Callers describe filters with `Condition` values built
by the helpers below, so no backend-specific query syntax leaks into the
feed core.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from soulspeak.core.errors import RemoteFailure

OPERATORS = frozenset({"eq", "neq", "gt", "gte", "lt", "lte", "in"})


class PersistenceError(RemoteFailure):
    """Raised when the persistence service rejects or fails a call."""

    def __init__(self, description: str, *, status_code: int | None = None) -> None:
        super().__init__(description)
        self.status_code = status_code


@dataclass(frozen=True)
class Condition:
    """A single `column <op> value` predicate; conditions are AND-ed."""

    column: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.op!r}")


@dataclass(frozen=True)
class Order:
    column: str
    descending: bool = True


def eq(column: str, value: Any) -> Condition:
    return Condition(column, "eq", value)


def neq(column: str, value: Any) -> Condition:
    return Condition(column, "neq", value)


def gt(column: str, value: Any) -> Condition:
    return Condition(column, "gt", value)


def gte(column: str, value: Any) -> Condition:
    return Condition(column, "gte", value)


def lt(column: str, value: Any) -> Condition:
    return Condition(column, "lt", value)


def lte(column: str, value: Any) -> Condition:
    return Condition(column, "lte", value)


def in_(column: str, values: Iterable[Any]) -> Condition:
    return Condition(column, "in", tuple(values))


def require_filters(filters: Sequence[Condition], action: str) -> None:
    """Refuse unfiltered bulk writes."""
    if not filters:
        raise ValueError(f"Refusing to {action} without a filter")


@runtime_checkable
class PersistenceService(Protocol):
    """Async table store with blob storage."""

    async def insert(self, table: str, row: Mapping[str, Any]) -> dict[str, Any]:
        """Insert `row` and return the stored representation."""
        ...

    async def update(
        self, table: str, patch: Mapping[str, Any], filters: Sequence[Condition]
    ) -> None:
        ...

    async def delete(self, table: str, filters: Sequence[Condition]) -> None:
        ...

    async def select(
        self,
        table: str,
        columns: str = "*",
        filters: Sequence[Condition] = (),
        order: Order | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        ...

    async def count(self, table: str, filters: Sequence[Condition] = ()) -> int:
        ...

    async def upload_blob(
        self, bucket: str, path: str, data: bytes, content_type: str | None = None
    ) -> None:
        ...

    async def delete_blob(self, bucket: str, path: str) -> None:
        """Remove a stored blob; a missing blob is not an error."""
        ...

    def get_public_url(self, bucket: str, path: str) -> str:
        ...

    async def close(self) -> None:
        ...
