# tests/test_session.py
"""End-to-end behaviour of a viewer session over the SQL backend."""

from unittest.mock import AsyncMock

import pytest

from soulspeak.core.errors import IdentityError
from soulspeak.session import SessionNotStarted, ViewerSession
from tests.conftest import AUTHOR_ID, VIEWER_ID, StaticIdentity


class SilentAudio:
    def __init__(self, url, on_ended):
        self.current_time = 0.0
        self.playing = False

    def play(self):
        self.playing = True

    def pause(self):
        self.playing = False


@pytest.mark.asyncio
async def test_start_seeds_engagement_and_loads_content(
    store, viewer_identity, test_settings, make_post, make_status, make_profile
):
    await make_profile(AUTHOR_ID, "Alice")
    post = await make_post(user_id=AUTHOR_ID, like_count=1)
    await make_status(user_id=AUTHOR_ID)
    await store.insert("post_likes", {"post_id": post["id"], "user_id": VIEWER_ID})
    await store.insert("user_follows", {"follower_id": VIEWER_ID, "following_id": AUTHOR_ID})

    async with ViewerSession(store, viewer_identity, config=test_settings) as session:
        assert session.viewer_id == VIEWER_ID
        assert [item.author for item in session.feed.posts] == ["Alice"]
        assert len(session.statuses.visible_statuses()) == 1
        assert session.tracker.is_liked(post["id"])
        assert session.tracker.is_following(AUTHOR_ID)
        assert session.tracker.like_count(post["id"]) == 1


def test_components_require_start(store, viewer_identity, test_settings):
    session = ViewerSession(store, viewer_identity, config=test_settings)

    with pytest.raises(SessionNotStarted):
        session.feed


@pytest.mark.asyncio
async def test_new_post_reloads_feed_with_current_mood(store, viewer_identity, test_settings, make_post):
    await make_post(mood="joy")
    session = await ViewerSession(store, viewer_identity, config=test_settings).start()
    session.set_mood("love")
    assert session.feed.visible("love") == []

    await session.posts.create_post("thinking of you", "love")

    assert [post.content for post in session.feed.visible("love")] == ["thinking of you"]
    assert len(session.feed.posts) == 2
    await session.close()


@pytest.mark.asyncio
async def test_sign_out_resets_viewer_state(store, viewer_identity, test_settings, make_post):
    post = await make_post()
    await store.insert("post_likes", {"post_id": post["id"], "user_id": VIEWER_ID})
    session = await ViewerSession(store, viewer_identity, config=test_settings).start()
    assert session.tracker.is_liked(post["id"])

    await session.sign_out()

    assert viewer_identity.signed_out
    assert session.viewer is None
    assert not session.tracker.is_authenticated
    assert not session.tracker.is_liked(post["id"])
    assert await session.posts.create_post("hi", "love") is None
    assert session.notices.latest.title == "Authentication required"


@pytest.mark.asyncio
async def test_remote_sign_out_failure_is_surfaced(store, test_settings):
    identity = StaticIdentity(None)
    identity.sign_out = AsyncMock(side_effect=IdentityError("auth service unreachable"))
    session = await ViewerSession(store, identity, config=test_settings).start(load=False)

    await session.sign_out()

    assert session.notices.latest.description == "auth service unreachable"
    assert session.viewer is None


@pytest.mark.asyncio
async def test_close_stops_audio_and_leaves_borrowed_store_open(
    store, viewer_identity, test_settings, make_post
):
    session = ViewerSession(
        store, viewer_identity, config=test_settings, audio_factory=SilentAudio
    )
    await session.start()
    session.playback.toggle("s1", "http://blobs.test/a.mp3")
    element = session.playback.element("s1")

    await session.close()

    assert not element.playing
    assert session.playback.playing is None
    assert session.tracker.viewer_id is None
    await make_post()
    assert await store.count("posts") == 1


@pytest.mark.asyncio
async def test_session_builds_its_own_store_from_settings(test_settings, mocker):
    session = ViewerSession(identity=StaticIdentity(None), config=test_settings)
    closed = mocker.spy(session.store, "close")

    async with session:
        assert session.viewer_id is None
        assert session.feed.posts == []

    closed.assert_called_once()
