# src/soulspeak/db/__init__.py
"""Database configuration and utilities."""

from .session import Base, create_sql_engine, create_tables, drop_tables, new_id

__all__ = ["Base", "create_sql_engine", "create_tables", "drop_tables", "new_id"]
