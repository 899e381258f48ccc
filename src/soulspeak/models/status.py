"""SQLAlchemy models for ephemeral status updates and their likes."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from soulspeak.db.session import Base, new_id
from soulspeak.db.time import utcnow


class StatusUpdate(Base):
    """Short-lived mood status, listed only while `expires_at` is in the future."""

    __tablename__ = "status_updates"
    __table_args__ = (
        Index("ix_status_updates_expires_at", "expires_at"),
        Index("ix_status_updates_created_at", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    mood: Mapped[str] = mapped_column(String(32), nullable=False)
    color: Mapped[str] = mapped_column(String(32), nullable=False)
    emoji: Mapped[str | None] = mapped_column(String(16), nullable=True)
    audio_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    like_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class StatusLike(Base):
    """A single viewer's like on a status."""

    __tablename__ = "status_likes"
    __table_args__ = (
        UniqueConstraint("status_id", "user_id", name="uq_status_likes_status_user"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    status_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("status_updates.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
