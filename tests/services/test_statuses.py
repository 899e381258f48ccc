# tests/services/test_statuses.py
"""Ephemeral statuses: expiry, bounded listing, authoring and deletion."""

from datetime import timedelta

import pytest

from soulspeak.db.time import utcnow
from soulspeak.persistence.base import PersistenceError, eq
from soulspeak.schemas.status import StatusState
from soulspeak.services.engagement import EngagementTracker
from soulspeak.services.media import MediaFile
from soulspeak.services.statuses import StatusManager, status_state
from tests.conftest import AUTHOR_ID, OTHER_ID, VIEWER_ID


@pytest.fixture()
def manager(store, notices, uploader):
    tracker = EngagementTracker(store, VIEWER_ID, notices)
    return StatusManager(store, tracker, notices, uploader)


@pytest.fixture()
def anonymous_manager(store, notices, uploader):
    tracker = EngagementTracker(store, None, notices)
    return StatusManager(store, tracker, notices, uploader)


class TestListing:
    @pytest.mark.asyncio
    async def test_only_unexpired_statuses_are_listed(self, manager, make_status, make_profile):
        now = utcnow()
        await make_profile(AUTHOR_ID, "Alice")
        await make_status(created_at=now - timedelta(hours=25), expires_at=now - timedelta(hours=1))
        live = await make_status(created_at=now - timedelta(hours=2))

        statuses = await manager.list_active_statuses(now)

        assert [status.id for status in statuses] == [live["id"]]
        assert statuses[0].author == "Alice"

    @pytest.mark.asyncio
    async def test_status_expiring_exactly_now_is_expired(self, manager, make_status):
        now = utcnow()
        await make_status(created_at=now - timedelta(hours=24), expires_at=now)

        assert await manager.list_active_statuses(now) == []

    @pytest.mark.asyncio
    async def test_listing_is_bounded_and_newest_first(self, store, notices, uploader, make_status):
        now = utcnow()
        for minute in range(5):
            await make_status(created_at=now - timedelta(minutes=30 - minute))
        manager = StatusManager(
            store, EngagementTracker(store, VIEWER_ID, notices), notices, uploader, limit=3
        )

        statuses = await manager.list_active_statuses(now)

        assert len(statuses) == 3
        stamps = [status.created_at for status in statuses]
        assert stamps == sorted(stamps, reverse=True)

    @pytest.mark.asyncio
    async def test_expired_status_never_reappears(self, manager, make_status):
        now = utcnow()
        status = await make_status(
            created_at=now - timedelta(hours=23), expires_at=now + timedelta(minutes=30)
        )
        assert [item.id for item in await manager.list_active_statuses(now)] == [status["id"]]

        later = now + timedelta(hours=1)
        assert manager.visible_statuses(later) == []
        assert await manager.list_active_statuses(later) == []
        assert manager.visible_statuses(now) == []

    @pytest.mark.asyncio
    async def test_missing_owner_profile_uses_placeholder(self, manager, make_status):
        await make_status(user_id=OTHER_ID)

        (status,) = await manager.list_active_statuses()

        assert status.author == "Unknown User"

    @pytest.mark.asyncio
    async def test_fetch_failure_clears_list_with_notice(self, manager, store, notices, make_status, mocker):
        await make_status()
        await manager.list_active_statuses()
        mocker.patch.object(store, "select", side_effect=PersistenceError("down", status_code=503))

        assert await manager.list_active_statuses() == []
        assert notices.latest.title == "Couldn't load statuses"

    def test_status_state_classification(self):
        assert status_state(None) is StatusState.DELETED


class TestAuthoring:
    @pytest.mark.asyncio
    async def test_create_sets_expiry_and_mood_defaults(self, manager, notices, store):
        now = utcnow()

        created = await manager.create_status(content="  calm  ", mood="love", now=now)

        assert created is not None
        assert created.content == "calm"
        assert created.user_id == VIEWER_ID
        assert created.emoji == "💖"
        assert created.color == "bg-pink-100"
        assert created.expires_at == now + timedelta(hours=24)
        assert status_state(created, now) is StatusState.ACTIVE
        assert status_state(created, now + timedelta(hours=24)) is StatusState.EXPIRED
        assert notices.latest.title == "Status shared!"
        assert [status.id for status in manager.visible_statuses(now)] == [created.id]

    @pytest.mark.asyncio
    async def test_content_longer_than_limit_is_rejected(self, manager, notices, store):
        created = await manager.create_status(content="x" * 11)

        assert created is None
        assert notices.latest.title == "Status too long"
        assert await store.count("status_updates") == 0

    @pytest.mark.asyncio
    async def test_empty_status_is_rejected(self, manager, notices):
        assert await manager.create_status(content="   ") is None
        assert notices.latest.title == "Empty status"

    @pytest.mark.asyncio
    async def test_emoji_alone_is_enough(self, manager):
        created = await manager.create_status(emoji="🌙", mood="melancholy")

        assert created is not None
        assert created.content is None
        assert created.emoji == "🌙"

    @pytest.mark.asyncio
    async def test_signed_out_viewer_cannot_share(self, anonymous_manager, notices):
        assert await anonymous_manager.create_status(content="hi") is None
        assert notices.latest.title == "Authentication required"

    @pytest.mark.asyncio
    async def test_audio_is_uploaded_and_attached(self, manager, blob_root):
        clip = MediaFile("voice.mp3", "audio/mpeg", b"ID3-audio")

        created = await manager.create_status(audio=clip)

        assert created is not None
        assert created.audio_url.startswith(f"http://blobs.test/media/{VIEWER_ID}/")
        assert created.audio_url.endswith(".mp3")
        stored = list((blob_root / "media" / VIEWER_ID).iterdir())
        assert [path.read_bytes() for path in stored] == [b"ID3-audio"]

    @pytest.mark.asyncio
    async def test_failed_insert_removes_uploaded_audio(self, manager, store, notices, blob_root, mocker):
        clip = MediaFile("voice.mp3", "audio/mpeg", b"ID3-audio")
        mocker.patch.object(store, "insert", side_effect=PersistenceError("down", status_code=503))

        assert await manager.create_status(audio=clip) is None

        assert notices.latest.description == "Failed to share status. Please try again."
        assert list((blob_root / "media" / VIEWER_ID).iterdir()) == []

    @pytest.mark.asyncio
    async def test_non_audio_attachment_is_rejected(self, manager, notices, store):
        image = MediaFile("pic.png", "image/png", b"png")

        assert await manager.create_status(content="hi", audio=image) is None
        assert notices.latest.title == "Invalid file type"
        assert await store.count("status_updates") == 0


class TestDeletion:
    @pytest.mark.asyncio
    async def test_owner_can_delete(self, manager, store, make_status):
        own = await make_status(user_id=VIEWER_ID)
        await manager.list_active_statuses()

        assert await manager.delete_status(own["id"])
        assert manager.visible_statuses() == []
        assert await store.count("status_updates", [eq("id", own["id"])]) == 0
        assert status_state(None) is StatusState.DELETED

    @pytest.mark.asyncio
    async def test_other_viewers_status_is_not_deleted(self, manager, store, notices, make_status):
        other = await make_status(user_id=AUTHOR_ID)
        await manager.list_active_statuses()

        assert not await manager.delete_status(other["id"])
        assert notices.latest.is_error
        assert await store.count("status_updates") == 1

    @pytest.mark.asyncio
    async def test_uncached_foreign_status_is_protected_by_owner_filter(self, manager, store, make_status):
        other = await make_status(user_id=AUTHOR_ID)

        await manager.delete_status(other["id"])

        assert await store.count("status_updates") == 1


@pytest.mark.asyncio
async def test_status_likes_go_through_the_shared_tracker(manager, make_status):
    status = await make_status(like_count=2)
    await manager.list_active_statuses()

    result = await manager.toggle_like(status["id"])

    assert result.applied
    assert manager.is_liked(status["id"])
    assert manager.like_count(status["id"]) == 3
