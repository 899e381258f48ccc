"""Utility script to create or reset the local SQL schema."""
from __future__ import annotations

import argparse
import sys

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError

from soulspeak.core.settings import settings
from soulspeak.db.session import Base, create_sql_engine, create_tables, drop_tables


def ensure_schema(db_url: str, *, drop: bool = False) -> list[str]:
    """Create every table that is missing; return the names that were created."""
    engine = create_sql_engine(db_url)
    try:
        if drop:
            drop_tables(engine)
            print("[ensure_db] dropped all tables")
        existing = set(inspect(engine).get_table_names())
        create_tables(engine)
        created = [name for name in Base.metadata.tables if name not in existing]
    finally:
        engine.dispose()

    if created:
        print(f"[ensure_db] created tables: {', '.join(sorted(created))}")
    else:
        print("[ensure_db] schema already up to date")
    return created


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Ensure or reset the local SQL schema")
    parser.add_argument(
        "--drop-tables",
        action="store_true",
        help="Drop every table before recreating the schema.",
    )
    parser.add_argument(
        "--url",
        default=None,
        help="Override database URL (defaults to DATABASE_URL)",
    )
    args = parser.parse_args(argv)

    try:
        ensure_schema(args.url or settings.database_url, drop=args.drop_tables)
    except SQLAlchemyError as exc:
        print(f"[ensure_db] ERROR: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
