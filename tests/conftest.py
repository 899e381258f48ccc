# tests/conftest.py
from __future__ import annotations

import asyncio
import inspect
import time
from collections import defaultdict
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from itertools import count
from pathlib import Path
from typing import Any

import pytest
from jose import jwt
from sqlalchemy.engine import Engine

from soulspeak.core.notices import NoticeBoard
from soulspeak.core.settings import Settings
from soulspeak.db.session import create_sql_engine
from soulspeak.db.time import utcnow
from soulspeak.identity import CurrentUser
from soulspeak.persistence.sql import SqlPersistence
from soulspeak.services.media import MediaUploader
from soulspeak.services.moods import color_for

TEST_DB_URL = "sqlite://"
JWT_SECRET = "test-secret"
VIEWER_ID = "viewer-0001"
AUTHOR_ID = "author-0001"
OTHER_ID = "author-0002"

_POST_COUNTER = count(1)
_STATUS_COUNTER = count(1)


@pytest.fixture()
def engine() -> Iterator[Engine]:
    engine = create_sql_engine(TEST_DB_URL)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def blob_root(tmp_path: Path) -> Path:
    return tmp_path / "blobs"


@pytest.fixture()
def store(engine: Engine, blob_root: Path) -> SqlPersistence:
    return SqlPersistence(engine, blob_root=blob_root, public_base_url="http://blobs.test")


@pytest.fixture()
def notices() -> NoticeBoard:
    return NoticeBoard()


@pytest.fixture()
def uploader(store: SqlPersistence) -> MediaUploader:
    return MediaUploader(store, bucket="media", max_bytes=1024)


@pytest.fixture()
def test_settings(tmp_path: Path) -> Settings:
    """Settings pointing at an isolated in-memory SQL backend."""
    return Settings(
        SOULSPEAK_PERSISTENCE_BACKEND="sql",
        DATABASE_URL=TEST_DB_URL,
        SOULSPEAK_BLOB_ROOT=str(tmp_path / "blobs"),
        SOULSPEAK_ACCESS_TOKEN=None,
        SOULSPEAK_JWT_SECRET=JWT_SECRET,
    )


@pytest.fixture()
def make_token() -> Callable[..., str]:
    def _make(
        sub: str | None = VIEWER_ID,
        *,
        email: str | None = "viewer@example.com",
        expires_in: int = 3600,
        secret: str = JWT_SECRET,
        audience: str | None = "authenticated",
    ) -> str:
        claims: dict[str, Any] = {"exp": int(time.time()) + expires_in}
        if sub is not None:
            claims["sub"] = sub
        if email is not None:
            claims["email"] = email
        if audience is not None:
            claims["aud"] = audience
        return jwt.encode(claims, secret, algorithm="HS256")

    return _make


class StaticIdentity:
    """Identity provider stand-in with a fixed viewer."""

    def __init__(self, user: CurrentUser | None) -> None:
        self.user = user
        self.signed_out = False

    async def current_user(self) -> CurrentUser | None:
        return self.user

    async def sign_out(self) -> None:
        self.signed_out = True
        self.user = None


@pytest.fixture()
def viewer_identity() -> StaticIdentity:
    return StaticIdentity(CurrentUser(id=VIEWER_ID, email="viewer@example.com"))


# --------------------------------------------------------------------- rows


@pytest.fixture()
def make_profile(store: SqlPersistence) -> Callable[..., Awaitable[dict[str, Any]]]:
    async def _make(user_id: str, username: str | None = None, avatar_url: str | None = None):
        return await store.insert(
            "profiles", {"id": user_id, "username": username, "avatar_url": avatar_url}
        )

    return _make


@pytest.fixture()
def make_post(store: SqlPersistence) -> Callable[..., Awaitable[dict[str, Any]]]:
    async def _make(
        *,
        user_id: str = AUTHOR_ID,
        content: str | None = None,
        mood: str = "love",
        anonymous: bool = False,
        like_count: int = 0,
        created_at: datetime | None = None,
    ):
        number = next(_POST_COUNTER)
        return await store.insert(
            "posts",
            {
                "user_id": user_id,
                "content": content or f"post {number}",
                "mood": mood,
                "color": color_for(mood),
                "is_anonymous": anonymous,
                "like_count": like_count,
                "created_at": created_at or utcnow() - timedelta(hours=1) + timedelta(seconds=number),
            },
        )

    return _make


@pytest.fixture()
def make_status(store: SqlPersistence) -> Callable[..., Awaitable[dict[str, Any]]]:
    async def _make(
        *,
        user_id: str = AUTHOR_ID,
        content: str | None = "hi",
        mood: str = "joy",
        created_at: datetime | None = None,
        expires_at: datetime | None = None,
        like_count: int = 0,
    ):
        number = next(_STATUS_COUNTER)
        created = created_at or utcnow() - timedelta(hours=1) + timedelta(seconds=number)
        return await store.insert(
            "status_updates",
            {
                "user_id": user_id,
                "content": content,
                "mood": mood,
                "color": color_for(mood),
                "emoji": "😊",
                "like_count": like_count,
                "created_at": created,
                "expires_at": expires_at or created + timedelta(hours=24),
            },
        )

    return _make


# ----------------------------------------------------------------- gating


@dataclass
class Gate:
    """Holds one store call until released."""

    entered: asyncio.Event = field(default_factory=asyncio.Event)
    released: asyncio.Event = field(default_factory=asyncio.Event)

    def release(self) -> None:
        self.released.set()


class GatedStore:
    """Wraps a persistence service so tests can pause chosen calls mid-flight."""

    def __init__(self, inner: Any) -> None:
        self._inner = inner
        self._gates: dict[str, list[Gate]] = defaultdict(list)
        self.calls: list[tuple[str, Any]] = []

    def hold(self, method: str) -> Gate:
        """Pause the next call to `method` until the returned gate is released."""
        gate = Gate()
        self._gates[method].append(gate)
        return gate

    def __getattr__(self, name: str) -> Any:
        target = getattr(self._inner, name)
        if not inspect.iscoroutinefunction(target):
            return target

        async def _gated(*args: Any, **kwargs: Any) -> Any:
            self.calls.append((name, args[0] if args else None))
            if self._gates[name]:
                gate = self._gates[name].pop(0)
                gate.entered.set()
                await gate.released.wait()
            return await target(*args, **kwargs)

        return _gated


@pytest.fixture()
def gated(store: SqlPersistence) -> GatedStore:
    return GatedStore(store)
