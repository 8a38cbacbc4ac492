from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy import text

from .api import pages_router, preview_router, projects_router, stream_router
from .config import get_settings
from .db.database import get_database
from .db.migrations import init_db
from .exceptions import NotFoundError, PersistenceError, SiteBuilderError, classify_error
from .log import setup_logging
from .middleware.request_logger import RequestLoggerMiddleware

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(_: FastAPI):
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_dir)
    init_db(get_database())
    logger.info("Site builder started (provider=%s)", settings.generation_provider)
    yield


def _status_for(exc: SiteBuilderError) -> int:
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, PersistenceError):
        return 500
    if exc.error_type == "invalid_request":
        return 400
    return 502 if exc.error_type.startswith("provider") else 500


def create_app() -> FastAPI:
    app = FastAPI(title="Site Builder API", lifespan=_lifespan)

    app.add_middleware(RequestLoggerMiddleware)

    app.include_router(stream_router)
    app.include_router(pages_router)
    app.include_router(projects_router)
    app.include_router(preview_router)

    @app.exception_handler(SiteBuilderError)
    async def _handle_sitebuilder_error(_: Request, exc: SiteBuilderError) -> JSONResponse:
        logger.warning("Request failed: %s", exc.with_trace())
        return JSONResponse(status_code=_status_for(exc), content=exc.to_payload())

    @app.exception_handler(Exception)
    async def _handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        payload = classify_error(exc)
        logger.error(
            "Unhandled error on %s %s (trace_id=%s)",
            request.method,
            request.url.path,
            payload["trace_id"],
            exc_info=exc,
        )
        return JSONResponse(status_code=500, content=payload)

    @app.get("/", response_class=PlainTextResponse)
    def root() -> str:
        return "OK"

    @app.get("/health")
    def health() -> dict:
        checks: dict[str, str] = {}
        overall = "ok"

        try:
            with get_database().session() as session:
                session.execute(text("SELECT 1"))
            checks["database"] = "ok"
        except Exception as exc:
            checks["database"] = f"error: {exc}"
            overall = "degraded"

        settings = get_settings()
        provider = (settings.generation_provider or "").lower()
        has_key = bool(settings.openai_api_key if provider == "openai" else settings.anthropic_api_key)
        checks["provider"] = provider
        checks["api_key"] = "ok" if has_key else "missing"
        if not has_key:
            overall = "degraded"

        return {"status": overall, "checks": checks}

    return app


app = create_app()

__all__ = ["create_app", "app"]
