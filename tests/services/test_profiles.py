# tests/services/test_profiles.py
import pytest

from soulspeak.persistence.base import PersistenceError
from soulspeak.services.profiles import ProfileService
from tests.conftest import AUTHOR_ID, OTHER_ID, VIEWER_ID


@pytest.mark.asyncio
async def test_save_profile_inserts_then_updates(store, notices):
    profiles = ProfileService(store, VIEWER_ID, notices)

    created = await profiles.save_profile(username="  River ", avatar_url=None)
    assert created.username == "River"
    assert await store.count("profiles") == 1

    await profiles.save_profile(username="Rivers", avatar_url="https://img.test/r.png")

    fetched = await profiles.get_profile(VIEWER_ID)
    assert fetched.username == "Rivers"
    assert fetched.avatar_url == "https://img.test/r.png"
    assert await store.count("profiles") == 1
    assert notices.latest.title == "Profile updated!"


@pytest.mark.asyncio
async def test_get_missing_profile(store, notices):
    assert await ProfileService(store, VIEWER_ID, notices).get_profile("ghost") is None


@pytest.mark.asyncio
async def test_signed_out_viewer_cannot_save(store, notices):
    assert await ProfileService(store, None, notices).save_profile(username="x", avatar_url=None) is None
    assert notices.latest.title == "Sign in required"


@pytest.mark.asyncio
async def test_follow_stats(store, notices):
    await store.insert("user_follows", {"follower_id": VIEWER_ID, "following_id": AUTHOR_ID})
    await store.insert("user_follows", {"follower_id": OTHER_ID, "following_id": AUTHOR_ID})
    await store.insert("user_follows", {"follower_id": AUTHOR_ID, "following_id": VIEWER_ID})
    profiles = ProfileService(store, VIEWER_ID, notices)

    stats = await profiles.follow_stats(AUTHOR_ID)

    assert (stats.followers, stats.following) == (2, 1)


@pytest.mark.asyncio
async def test_follow_stats_failure_returns_zeros(store, notices, mocker):
    mocker.patch.object(store, "count", side_effect=PersistenceError("down"))

    stats = await ProfileService(store, VIEWER_ID, notices).follow_stats(AUTHOR_ID)

    assert (stats.followers, stats.following) == (0, 0)
    assert notices.latest.is_error
