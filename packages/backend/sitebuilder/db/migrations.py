from __future__ import annotations

import logging

from sqlalchemy import inspect, text

from .base import Base
from .database import Database, get_database
from . import models  # noqa: F401

logger = logging.getLogger(__name__)

# Columns added after the first schema; created on legacy databases.
_ADDITIVE_COLUMNS = {
    "pages": {
        "original_html": "TEXT",
        "updated_at": "DATETIME",
        "modification_history": "JSON NOT NULL DEFAULT '[]'",
        "section_index": "INTEGER",
        "total_sections": "INTEGER",
    },
    "projects": {
        "design_system": "JSON NOT NULL DEFAULT '{}'",
        "updated_at": "DATETIME",
    },
}


def init_db(database: Database | None = None) -> None:
    db_instance = database or get_database()
    Base.metadata.create_all(bind=db_instance.engine)
    migrate_additive_columns(db_instance)


def migrate_additive_columns(database: Database | None = None) -> list[str]:
    """Add missing columns to existing tables; safe to run repeatedly."""
    db_instance = database or get_database()
    engine = db_instance.engine
    inspector = inspect(engine)
    tables = set(inspector.get_table_names())
    added: list[str] = []

    for table, columns in _ADDITIVE_COLUMNS.items():
        if table not in tables:
            continue
        existing = {column["name"] for column in inspector.get_columns(table)}
        for column, ddl_type in columns.items():
            if column in existing:
                continue
            if engine.dialect.name == "postgresql":
                ddl_type = ddl_type.replace("DEFAULT '[]'", "DEFAULT '[]'::json").replace(
                    "DEFAULT '{}'", "DEFAULT '{}'::json"
                )
                ddl_type = ddl_type.replace("DATETIME", "TIMESTAMP")
            with engine.begin() as connection:
                connection.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {ddl_type}"))
            added.append(f"{table}.{column}")

    if added:
        logger.info("Applied column migrations: %s", ", ".join(added))
    return added


__all__ = ["init_db", "migrate_additive_columns"]
