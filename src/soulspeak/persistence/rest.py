"""HTTP persistence client for a PostgREST-style table and storage service.

This module provides the RestPersistenceClient class that handles all
communication with the remote store. It includes:

- Table operations under `/rest/v1/<table>` with PostgREST filter syntax
- Blob uploads under `/storage/v1/object/<bucket>/<path>`
- `apikey` and bearer authentication headers
- A circuit breaker that stops hammering an unavailable service
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any
from urllib.parse import quote

import httpx

from soulspeak.core.settings import Settings, settings
from soulspeak.persistence.base import Condition, Order, PersistenceError, require_filters

logger = logging.getLogger(__name__)

HTTP_BAD_REQUEST = 400
HTTP_INTERNAL_SERVER_ERROR = 500

# Characters that force a value inside an `in.(...)` list to be quoted.
_RESERVED_LIST_CHARS = set(',()"\\ ')


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"        # Normal operation - requests allowed
    OPEN = "open"            # Requests blocked until the recovery timeout passes
    HALF_OPEN = "half_open"  # One probe allowed through


@dataclass
class CircuitBreaker:
    """Trips open after consecutive server or network failures."""

    failure_threshold: int = 5
    recovery_timeout: float = 30.0

    _state: CircuitState = CircuitState.CLOSED
    _failure_count: int = 0
    _opened_at: float = 0.0

    def is_open(self) -> bool:
        if self._state is CircuitState.OPEN:
            if time.monotonic() - self._opened_at >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
            return self._state is CircuitState.OPEN
        return False

    def record_success(self) -> None:
        self._state = CircuitState.CLOSED
        self._failure_count = 0

    def record_failure(self) -> None:
        self._failure_count += 1
        if self._state is CircuitState.HALF_OPEN or self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN
            self._opened_at = time.monotonic()

    @property
    def state(self) -> CircuitState:
        return self._state


@dataclass(frozen=True)
class RestConfig:
    """Immutable configuration for the REST persistence client."""

    base_url: str
    api_key: str
    access_token: str | None
    timeout_seconds: float
    failure_threshold: int
    recovery_timeout: float


def load_rest_config(source: Settings | None = None) -> RestConfig:
    """Build configuration object from settings."""
    cfg = source or settings
    if not cfg.rest_enabled:
        raise PersistenceError("SOULSPEAK_STORE_URL and SOULSPEAK_STORE_API_KEY must be set")
    return RestConfig(
        base_url=str(cfg.store_url).rstrip("/"),
        api_key=str(cfg.store_api_key),
        access_token=cfg.access_token,
        timeout_seconds=float(cfg.store_timeout_seconds),
        failure_threshold=cfg.circuit_failure_threshold,
        recovery_timeout=cfg.circuit_recovery_seconds,
    )


def encode_value(value: Any) -> str:
    """Render a filter value the way PostgREST expects it."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def encode_condition(condition: Condition) -> tuple[str, str]:
    """Translate a condition into a `(column, "op.value")` query parameter."""
    if condition.op == "in":
        items = []
        for item in condition.value:
            text = encode_value(item)
            if any(char in _RESERVED_LIST_CHARS for char in text):
                text = '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'
            items.append(text)
        return condition.column, f"in.({','.join(items)})"
    if condition.value is None and condition.op in ("eq", "neq"):
        return condition.column, "is.null" if condition.op == "eq" else "not.is.null"
    return condition.column, f"{condition.op}.{encode_value(condition.value)}"


def parse_content_range(header: str | None) -> int:
    """Return the total from a `Content-Range: 0-9/42` header."""
    if not header or "/" not in header:
        raise PersistenceError("Count response is missing a Content-Range total")
    total = header.rsplit("/", 1)[1]
    if total == "*":
        raise PersistenceError("Count response did not include an exact total")
    try:
        return int(total)
    except ValueError as exc:
        raise PersistenceError(f"Malformed Content-Range header: {header!r}") from exc


def _jsonable(row: Mapping[str, Any]) -> dict[str, Any]:
    return {
        key: value.isoformat() if isinstance(value, datetime) else value
        for key, value in row.items()
    }


class RestPersistenceClient:
    """HTTP client wrapper implementing `PersistenceService`."""

    def __init__(
        self,
        config: RestConfig | None = None,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or load_rest_config()
        self._client = client
        self._owns_client = client is None
        self._client_lock = asyncio.Lock()
        self._circuit_breaker = CircuitBreaker(
            failure_threshold=self.config.failure_threshold,
            recovery_timeout=self.config.recovery_timeout,
        )

    @property
    def circuit_state(self) -> CircuitState:
        return self._circuit_breaker.state

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    base_url=self.config.base_url,
                    timeout=httpx.Timeout(self.config.timeout_seconds),
                )
        return self._client

    def _headers(self, extra: Mapping[str, str] | None = None) -> dict[str, str]:
        headers = {
            "apikey": self.config.api_key,
            "Authorization": f"Bearer {self.config.access_token or self.config.api_key}",
        }
        if extra:
            headers.update(extra)
        return headers

    @dataclass
    class RequestParams:
        """Parameters for HTTP requests."""
        method: str
        path: str
        json_data: Any | None = None
        content: bytes | None = None
        params: Sequence[tuple[str, str]] | None = None
        headers: dict[str, str] | None = None

    async def _request(self, params: RequestParams) -> httpx.Response:
        if self._circuit_breaker.is_open():
            raise PersistenceError("Persistence service circuit breaker is open - service unavailable")

        client = await self._ensure_client()
        endpoint = f"{params.method} {params.path}"
        try:
            response = await client.request(
                params.method,
                params.path,
                json=params.json_data,
                content=params.content,
                params=list(params.params or ()),
                headers=self._headers(params.headers),
            )
        except httpx.HTTPError as exc:
            self._circuit_breaker.record_failure()
            logger.warning("Persistence request %s failed: %s", endpoint, exc)
            raise PersistenceError(f"Persistence request failed: {exc}") from exc

        if response.status_code >= HTTP_INTERNAL_SERVER_ERROR:
            self._circuit_breaker.record_failure()
        else:
            self._circuit_breaker.record_success()

        if response.status_code >= HTTP_BAD_REQUEST:
            detail = self._error_detail(response)
            logger.warning("Persistence request %s returned %s: %s", endpoint, response.status_code, detail)
            raise PersistenceError(detail, status_code=response.status_code)
        return response

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or f"HTTP {response.status_code}"
        if isinstance(body, Mapping):
            return str(body.get("message") or body.get("error") or body)
        return str(body)

    @staticmethod
    def _json(response: httpx.Response, table: str) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            logger.warning("Non-JSON body from %s: %s", table, response.text[:200])
            raise PersistenceError(f"Malformed response from {table!r}") from exc

    @staticmethod
    def _row(item: Any, table: str) -> dict[str, Any]:
        if not isinstance(item, Mapping):
            raise PersistenceError(f"Unexpected row payload from {table!r}")
        return dict(item)

    @staticmethod
    def _table_path(table: str) -> str:
        return f"/rest/v1/{table}"

    async def insert(self, table: str, row: Mapping[str, Any]) -> dict[str, Any]:
        response = await self._request(
            self.RequestParams(
                method="POST",
                path=self._table_path(table),
                json_data=_jsonable(row),
                headers={"Prefer": "return=representation"},
            )
        )
        body = self._json(response, table)
        if isinstance(body, list):
            if not body:
                raise PersistenceError(f"Insert into {table!r} returned no representation")
            return self._row(body[0], table)
        return self._row(body, table)

    async def update(
        self, table: str, patch: Mapping[str, Any], filters: Sequence[Condition]
    ) -> None:
        require_filters(filters, "update")
        await self._request(
            self.RequestParams(
                method="PATCH",
                path=self._table_path(table),
                json_data=_jsonable(patch),
                params=[encode_condition(condition) for condition in filters],
                headers={"Prefer": "return=minimal"},
            )
        )

    async def delete(self, table: str, filters: Sequence[Condition]) -> None:
        require_filters(filters, "delete")
        await self._request(
            self.RequestParams(
                method="DELETE",
                path=self._table_path(table),
                params=[encode_condition(condition) for condition in filters],
            )
        )

    async def select(
        self,
        table: str,
        columns: str = "*",
        filters: Sequence[Condition] = (),
        order: Order | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        query = [("select", columns.replace(" ", ""))]
        query.extend(encode_condition(condition) for condition in filters)
        if order is not None:
            query.append(("order", f"{order.column}.{'desc' if order.descending else 'asc'}"))
        if limit is not None:
            query.append(("limit", str(limit)))

        response = await self._request(
            self.RequestParams(method="GET", path=self._table_path(table), params=query)
        )
        body = self._json(response, table)
        if not isinstance(body, list):
            raise PersistenceError(f"Unexpected select payload for {table!r}")
        return [self._row(item, table) for item in body]

    async def count(self, table: str, filters: Sequence[Condition] = ()) -> int:
        query = [("select", "*")]
        query.extend(encode_condition(condition) for condition in filters)
        response = await self._request(
            self.RequestParams(
                method="HEAD",
                path=self._table_path(table),
                params=query,
                headers={"Prefer": "count=exact"},
            )
        )
        return parse_content_range(response.headers.get("content-range"))

    async def upload_blob(
        self, bucket: str, path: str, data: bytes, content_type: str | None = None
    ) -> None:
        await self._request(
            self.RequestParams(
                method="POST",
                path=f"/storage/v1/object/{bucket}/{quote(path.lstrip('/'))}",
                content=data,
                headers={
                    "Content-Type": content_type or "application/octet-stream",
                    "x-upsert": "false",
                },
            )
        )

    async def delete_blob(self, bucket: str, path: str) -> None:
        await self._request(
            self.RequestParams(
                method="DELETE",
                path=f"/storage/v1/object/{bucket}/{quote(path.lstrip('/'))}",
            )
        )

    def get_public_url(self, bucket: str, path: str) -> str:
        return f"{self.config.base_url}/storage/v1/object/public/{bucket}/{quote(path.lstrip('/'))}"

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None
