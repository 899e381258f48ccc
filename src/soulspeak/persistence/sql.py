"""SQLAlchemy-backed persistence service.

Runs the synchronous SQLAlchemy engine through `asyncio.to_thread` so callers
stay non-blocking. A lock serializes access because in-memory SQLite shares
one connection across threads. Blobs are written below a local directory and
served from `public_base_url`.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import Any, TypeVar

from sqlalchemy import Engine, Table, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.sql.elements import ColumnElement

from soulspeak.db.session import Base, create_tables, new_id
from soulspeak.db.time import ensure_utc
from soulspeak.persistence.base import Condition, Order, PersistenceError, require_filters

logger = logging.getLogger(__name__)

T = TypeVar("T")

HTTP_BAD_REQUEST = 400
HTTP_NOT_FOUND = 404
HTTP_CONFLICT = 409


def _row_to_dict(mapping: Mapping[str, Any]) -> dict[str, Any]:
    row: dict[str, Any] = {}
    for key, value in mapping.items():
        if isinstance(value, datetime):
            value = ensure_utc(value)
        row[key] = value
    return row


class SqlPersistence:
    """Persistence service over the ORM table metadata."""

    def __init__(
        self,
        engine: Engine,
        *,
        blob_root: str | Path = "./blobs",
        public_base_url: str = "http://localhost:8000/blobs",
        create_schema: bool = True,
    ) -> None:
        self.engine = engine
        self.blob_root = Path(blob_root)
        self.public_base_url = public_base_url.rstrip("/")
        self._lock = threading.Lock()
        if create_schema:
            create_tables(engine)

    def _table(self, name: str) -> Table:
        table = Base.metadata.tables.get(name)
        if table is None:
            raise PersistenceError(f"Unknown table {name!r}", status_code=HTTP_NOT_FOUND)
        return table

    def _clause(self, table: Table, condition: Condition) -> ColumnElement[bool]:
        if condition.column not in table.c:
            raise PersistenceError(
                f"Unknown column {condition.column!r} on {table.name!r}",
                status_code=HTTP_BAD_REQUEST,
            )
        column = table.c[condition.column]
        value = condition.value
        if condition.op == "eq":
            return column.is_(None) if value is None else column == value
        if condition.op == "neq":
            return column.is_not(None) if value is None else column != value
        if condition.op == "gt":
            return column > value
        if condition.op == "gte":
            return column >= value
        if condition.op == "lt":
            return column < value
        if condition.op == "lte":
            return column <= value
        return column.in_(list(value))

    def _where(self, table: Table, filters: Sequence[Condition]) -> list[ColumnElement[bool]]:
        return [self._clause(table, condition) for condition in filters]

    def _columns(self, table: Table, columns: str) -> list[Any]:
        names = [name.strip() for name in columns.split(",") if name.strip()]
        if not names or names == ["*"]:
            return list(table.c)
        unknown = [name for name in names if name not in table.c]
        if unknown:
            raise PersistenceError(
                f"Unknown column(s) {unknown} on {table.name!r}",
                status_code=HTTP_BAD_REQUEST,
            )
        return [table.c[name] for name in names]

    async def _run(self, operation: Callable[[], T]) -> T:
        def _locked() -> T:
            with self._lock:
                return operation()

        try:
            return await asyncio.to_thread(_locked)
        except PersistenceError:
            raise
        except IntegrityError as exc:
            raise PersistenceError(
                f"Constraint violated: {exc.orig}", status_code=HTTP_CONFLICT
            ) from exc
        except SQLAlchemyError as exc:
            logger.warning("SQL persistence call failed: %s", exc)
            raise PersistenceError(f"Database request failed: {exc}") from exc

    async def insert(self, table: str, row: Mapping[str, Any]) -> dict[str, Any]:
        target = self._table(table)
        values = dict(row)
        if "id" in target.c and values.get("id") is None:
            values["id"] = new_id()

        def _insert() -> dict[str, Any]:
            with self.engine.begin() as conn:
                conn.execute(target.insert().values(**values))
                stored = conn.execute(select(target).where(target.c.id == values["id"])).first()
            return _row_to_dict(stored._mapping) if stored is not None else values

        return await self._run(_insert)

    async def update(
        self, table: str, patch: Mapping[str, Any], filters: Sequence[Condition]
    ) -> None:
        require_filters(filters, "update")
        target = self._table(table)
        clauses = self._where(target, filters)

        def _update() -> None:
            with self.engine.begin() as conn:
                conn.execute(target.update().where(*clauses).values(**dict(patch)))

        await self._run(_update)

    async def delete(self, table: str, filters: Sequence[Condition]) -> None:
        require_filters(filters, "delete")
        target = self._table(table)
        clauses = self._where(target, filters)

        def _delete() -> None:
            with self.engine.begin() as conn:
                conn.execute(target.delete().where(*clauses))

        await self._run(_delete)

    async def select(
        self,
        table: str,
        columns: str = "*",
        filters: Sequence[Condition] = (),
        order: Order | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        target = self._table(table)
        stmt = select(*self._columns(target, columns)).where(*self._where(target, filters))
        if order is not None:
            column = self._columns(target, order.column)[0]
            stmt = stmt.order_by(column.desc() if order.descending else column.asc())
        if limit is not None:
            stmt = stmt.limit(limit)

        def _select() -> list[dict[str, Any]]:
            with self.engine.connect() as conn:
                return [_row_to_dict(row._mapping) for row in conn.execute(stmt)]

        return await self._run(_select)

    async def count(self, table: str, filters: Sequence[Condition] = ()) -> int:
        target = self._table(table)
        stmt = select(func.count()).select_from(target).where(*self._where(target, filters))

        def _count() -> int:
            with self.engine.connect() as conn:
                return int(conn.execute(stmt).scalar_one())

        return await self._run(_count)

    def _blob_path(self, bucket: str, path: str) -> Path:
        relative = PurePosixPath(path)
        if relative.is_absolute() or ".." in relative.parts:
            raise PersistenceError(f"Invalid blob path {path!r}", status_code=HTTP_BAD_REQUEST)
        return self.blob_root / bucket / Path(*relative.parts)

    async def upload_blob(
        self, bucket: str, path: str, data: bytes, content_type: str | None = None
    ) -> None:
        destination = self._blob_path(bucket, path)
        if destination.exists():
            raise PersistenceError(f"Blob {bucket}/{path} already exists", status_code=HTTP_CONFLICT)

        def _write() -> None:
            destination.parent.mkdir(parents=True, exist_ok=True)
            destination.write_bytes(data)

        try:
            await asyncio.to_thread(_write)
        except OSError as exc:
            raise PersistenceError(f"Blob upload failed: {exc}") from exc
        logger.debug("Stored blob %s/%s (%s, %d bytes)", bucket, path, content_type, len(data))

    async def delete_blob(self, bucket: str, path: str) -> None:
        target = self._blob_path(bucket, path)
        try:
            await asyncio.to_thread(target.unlink, missing_ok=True)
        except OSError as exc:
            raise PersistenceError(f"Blob delete failed: {exc}") from exc

    def get_public_url(self, bucket: str, path: str) -> str:
        return f"{self.public_base_url}/{bucket}/{path.lstrip('/')}"

    async def close(self) -> None:
        await asyncio.to_thread(self.engine.dispose)
