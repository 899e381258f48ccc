"""Validated media uploads to blob storage."""
from __future__ import annotations

import logging
import time
from collections.abc import Collection
from dataclasses import dataclass

from soulspeak.core.errors import RemoteFailure, UnauthenticatedError, ValidationFailure
from soulspeak.persistence.base import PersistenceError, PersistenceService
from soulspeak.schemas.post import MediaAttachment, MediaKind

logger = logging.getLogger(__name__)

DEFAULT_MAX_BYTES = 50 * 1024 * 1024


@dataclass(frozen=True)
class MediaFile:
    """A file picked by the viewer, fully read into memory."""

    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        if "." in self.filename:
            return self.filename.rsplit(".", 1)[1].lower() or "bin"
        return "bin"


def media_kind_of(content_type: str) -> MediaKind | None:
    """Map a MIME type onto a media kind, or None when it is not accepted."""
    major = content_type.split("/", 1)[0].strip().lower()
    try:
        return MediaKind(major)
    except ValueError:
        return None


class MediaUploader:
    """Uploads viewer media into the public media bucket."""

    def __init__(
        self,
        store: PersistenceService,
        *,
        bucket: str = "media",
        max_bytes: int = DEFAULT_MAX_BYTES,
    ) -> None:
        self._store = store
        self.bucket = bucket
        self.max_bytes = max_bytes

    def validate(
        self, media: MediaFile, allowed: Collection[MediaKind] = tuple(MediaKind)
    ) -> MediaKind:
        """Reject bad files before any remote call; return the media kind."""
        kind = media_kind_of(media.content_type)
        if kind is None or kind not in allowed:
            accepted = ", ".join(sorted(k.value for k in allowed))
            raise ValidationFailure(
                f"Please upload a file of type: {accepted}", title="Invalid file type"
            )
        if media.size > self.max_bytes:
            limit_mb = self.max_bytes // (1024 * 1024)
            raise ValidationFailure(
                f"Please upload a file smaller than {limit_mb}MB", title="File too large"
            )
        return kind

    async def upload(
        self,
        user_id: str | None,
        media: MediaFile,
        allowed: Collection[MediaKind] = tuple(MediaKind),
    ) -> MediaAttachment:
        """Validate and upload `media`, returning its public reference.

        Raises:
            UnauthenticatedError: No viewer to own the upload.
            ValidationFailure: Wrong MIME type or too large.
            RemoteFailure: The storage call failed.
        """
        if user_id is None:
            raise UnauthenticatedError("Please sign in to upload media")
        kind = self.validate(media, allowed)

        path = f"{user_id}/{int(time.time() * 1000)}.{media.extension}"
        try:
            await self._store.upload_blob(self.bucket, path, media.data, media.content_type)
        except PersistenceError as exc:
            logger.warning("Upload of %s to %s failed: %s", path, self.bucket, exc)
            if "bucket not found" in str(exc).lower():
                raise RemoteFailure(
                    "The media storage bucket has not been created yet.",
                    title="Storage not set up",
                ) from exc
            raise RemoteFailure(
                "Failed to upload media. Please try again.", title="Upload failed"
            ) from exc

        return MediaAttachment(
            url=self._store.get_public_url(self.bucket, path), kind=kind, path=path
        )

    async def discard(self, attachment: MediaAttachment) -> None:
        """Best-effort removal of an upload whose owning row was never written."""
        if attachment.path is None:
            return
        try:
            await self._store.delete_blob(self.bucket, attachment.path)
        except PersistenceError as exc:
            logger.warning(
                "Orphaned upload %s/%s left behind: %s", self.bucket, attachment.path, exc
            )
