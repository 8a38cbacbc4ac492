from __future__ import annotations

from typing import Optional

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session as DbSession, sessionmaker

from ..config import get_settings


class Database:
    def __init__(self, url: Optional[str] = None) -> None:
        settings = get_settings()
        resolved_url = url or settings.database_url
        connect_args = {}
        if resolved_url.startswith("sqlite"):
            connect_args = {"check_same_thread": False, "timeout": 30}
        self.url = resolved_url
        self.engine = create_engine(
            self.url,
            connect_args=connect_args,
            pool_pre_ping=True,
        )
        if resolved_url.startswith("sqlite"):
            # Concurrent readers with one writer; last write wins.
            @event.listens_for(self.engine, "connect")
            def _set_sqlite_pragmas(dbapi_connection, _connection_record) -> None:
                cursor = dbapi_connection.cursor()
                try:
                    cursor.execute("PRAGMA journal_mode=WAL;")
                    cursor.execute("PRAGMA synchronous=NORMAL;")
                    cursor.execute("PRAGMA busy_timeout=30000;")
                    cursor.execute("PRAGMA foreign_keys=ON;")
                finally:
                    cursor.close()
        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self.engine,
        )

    def session(self) -> DbSession:
        return self.SessionLocal()

    def dispose(self) -> None:
        self.engine.dispose()


_database: Optional[Database] = None


def get_database() -> Database:
    global _database
    if _database is None:
        _database = Database()
    return _database


def reset_database() -> None:
    global _database
    if _database is not None:
        _database.dispose()
    _database = None


__all__ = ["Database", "get_database", "reset_database"]
