"""Print the feed and the active statuses as the configured viewer sees them."""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from soulspeak.core.errors import SoulSpeakError
from soulspeak.core.settings import Settings, settings
from soulspeak.services.moods import ALL_MOODS, format_time_ago, mood_emoji
from soulspeak.session import ViewerSession


def _configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def show(mood: str, include_statuses: bool, config: Settings | None = None) -> None:
    async with ViewerSession(config=config or settings) as session:
        print(f"[feed] viewer: {session.viewer_id or 'anonymous'}")
        if include_statuses:
            for status in session.statuses.visible_statuses():
                label = status.content or ""
                print(f"[status] {status.emoji or ''} {status.author}: {label}")

        for post in session.set_mood(mood):
            author = "Anonymous" if post.is_anonymous else post.author
            likes = session.tracker.like_count(post.id)
            print(
                f"[post] {mood_emoji(post.mood)} {author} · {format_time_ago(post.created_at)}"
                f" · {likes} like(s)\n    {post.content}"
            )

        for notice in session.notices.drain():
            print(f"[notice] {notice.title}: {notice.description}")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Show the SoulSpeak feed")
    parser.add_argument("--mood", default=ALL_MOODS, help="Only show posts with this mood")
    parser.add_argument(
        "--statuses",
        action="store_true",
        help="Also list active statuses above the feed.",
    )
    args = parser.parse_args(argv)

    _configure_logging()
    try:
        asyncio.run(show(args.mood, args.statuses))
    except SoulSpeakError as exc:
        print(f"[feed] ERROR: {exc.description}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
