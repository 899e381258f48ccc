"""Bulk identity enrichment shared by the post feed and the status strip."""
from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from pydantic import ValidationError

from soulspeak.persistence.base import PersistenceError, PersistenceService, in_
from soulspeak.schemas.common import UNKNOWN_AUTHOR
from soulspeak.schemas.profile import ProfileOut

logger = logging.getLogger(__name__)

PROFILES_TABLE = "profiles"
PROFILE_COLUMNS = "id, username, avatar_url"


@dataclass
class IdentityLookup:
    """Profiles resolved for one batch of rows.

    `complete` is False when the lookup itself failed; rows are then rendered
    with the placeholder label instead of failing the whole batch.
    """

    profiles: dict[str, ProfileOut] = field(default_factory=dict)
    complete: bool = True

    def author_name(self, user_id: str) -> str:
        profile = self.profiles.get(user_id)
        if profile is None or not profile.username:
            return UNKNOWN_AUTHOR
        return profile.username

    def avatar_url(self, user_id: str) -> str | None:
        profile = self.profiles.get(user_id)
        return profile.avatar_url if profile else None


async def enrich_with_identities(
    store: PersistenceService, owner_ids: Iterable[str]
) -> IdentityLookup:
    """Fetch identities for the distinct `owner_ids` in a single call.

    Callers pass only ids that may be shown: anonymous authors must be left
    out before calling. An empty id set skips the remote call entirely.
    """
    distinct = sorted(set(owner_ids))
    if not distinct:
        return IdentityLookup()

    try:
        rows = await store.select(PROFILES_TABLE, PROFILE_COLUMNS, [in_("id", distinct)])
    except PersistenceError as exc:
        logger.warning("Identity lookup failed for %d author(s): %s", len(distinct), exc)
        return IdentityLookup(complete=False)

    profiles: dict[str, ProfileOut] = {}
    for row in rows:
        try:
            profile = ProfileOut.model_validate(row)
        except ValidationError as exc:
            logger.warning("Skipping malformed profile row: %s", exc)
            continue
        profiles[profile.id] = profile

    missing = len(set(distinct) - profiles.keys())
    if missing:
        logger.debug("%d author(s) have no profile; using placeholder", missing)
    return IdentityLookup(profiles=profiles)
