"""Identity-related Pydantic schemas."""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class ProfileOut(BaseModel):
    """Public identity record joined onto feed rows."""

    id: str
    username: str | None = None
    avatar_url: str | None = None

    model_config = ConfigDict(extra="ignore")


class FollowStats(BaseModel):
    """Follower counts for a profile page."""

    user_id: str
    followers: int = 0
    following: int = 0
