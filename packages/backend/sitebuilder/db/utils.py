from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as DbSession

from ..exceptions import PersistenceError
from .database import Database, get_database

logger = logging.getLogger(__name__)


@contextmanager
def get_db(database: Optional[Database] = None) -> Generator[DbSession, None, None]:
    db_instance = database or get_database()
    session = db_instance.session()
    try:
        yield session
    finally:
        session.close()


@contextmanager
def savepoint(db: DbSession) -> Generator[DbSession, None, None]:
    """Run a unit of work atomically on an existing session.

    Database failures are rolled back and re-raised as PersistenceError;
    other exceptions (validation) roll back and propagate unchanged.
    """
    try:
        yield db
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        error = PersistenceError(f"Database write failed: {exc.__class__.__name__}: {exc}")
        logger.error("Persistence failure: %s", error.with_trace())
        raise error from exc
    except Exception:
        db.rollback()
        raise


__all__ = ["get_db", "savepoint"]
