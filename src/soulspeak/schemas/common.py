"""Shared Pydantic types for rows read from the persistence service."""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated

from pydantic import AfterValidator

from soulspeak.db.time import ensure_utc

# Rows arrive as ISO strings from the REST backend and as naive datetimes
# from SQLite; both are normalized to aware UTC.
UtcDatetime = Annotated[datetime, AfterValidator(ensure_utc)]

UNKNOWN_AUTHOR = "Unknown User"


class SyncState(str, Enum):
    """Whether a locally held item is known to exist in the persistence service."""

    PERSISTED = "persisted"
    LOCAL_ONLY = "local_only"
