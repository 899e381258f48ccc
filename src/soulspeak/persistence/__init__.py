"""Persistence service contract and backends."""

from __future__ import annotations

from soulspeak.core.settings import Settings, settings
from soulspeak.persistence.base import (
    Condition,
    Order,
    PersistenceError,
    PersistenceService,
    eq,
    gt,
    gte,
    in_,
    lt,
    lte,
    neq,
)
from soulspeak.persistence.rest import RestPersistenceClient, load_rest_config
from soulspeak.persistence.sql import SqlPersistence


def build_store(source: Settings | None = None) -> PersistenceService:
    """Return the backend selected by `SOULSPEAK_PERSISTENCE_BACKEND`."""
    cfg = source or settings
    if cfg.persistence_backend == "sql":
        from soulspeak.db.session import create_sql_engine

        engine = create_sql_engine(cfg.database_url, echo=cfg.sql_debug)
        return SqlPersistence(
            engine,
            blob_root=cfg.blob_root,
            public_base_url=cfg.public_blob_base_url,
        )
    return RestPersistenceClient(load_rest_config(cfg))


__all__ = [
    "Condition",
    "Order",
    "PersistenceError",
    "PersistenceService",
    "RestPersistenceClient",
    "SqlPersistence",
    "build_store",
    "eq",
    "gt",
    "gte",
    "in_",
    "lt",
    "lte",
    "neq",
]
