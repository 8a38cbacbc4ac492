from __future__ import annotations

from typing import Callable, Generator

from fastapi import HTTPException
from sqlalchemy.orm import Session as DbSession

from ..db.utils import get_db
from ..exceptions import NotFoundError, PersistenceError
from ..llm.provider import GenerationProvider, ProviderFactory

ProviderBuilder = Callable[[], GenerationProvider]


def get_db_session() -> Generator[DbSession, None, None]:
    with get_db() as session:
        yield session


def get_provider_builder() -> ProviderBuilder:
    """Dependency returning a callable that builds the configured provider.

    Construction is deferred so that configuration errors are reported on
    the stream instead of failing the HTTP request.
    """
    return ProviderFactory.create


def raise_http_error(exc: Exception) -> None:
    if isinstance(exc, NotFoundError):
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    if isinstance(exc, ValueError):
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if isinstance(exc, PersistenceError):
        raise HTTPException(status_code=500, detail=exc.to_payload()) from exc
    raise exc


__all__ = ["ProviderBuilder", "get_db_session", "get_provider_builder", "raise_http_error"]
