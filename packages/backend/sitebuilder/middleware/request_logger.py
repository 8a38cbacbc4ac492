"""Request logging middleware for FastAPI."""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


class RequestLoggerMiddleware(BaseHTTPMiddleware):
    """Logs method, path, status and duration of every request.

    Args:
        app: The ASGI application.
        skip_prefixes: URL prefixes that are not logged (health checks, static files).
        log: Logger receiving the records; defaults to the module logger.
    """

    def __init__(
        self,
        app,
        skip_prefixes: tuple[str, ...] = ("/static", "/images", "/favicon.ico", "/health"),
        log: Optional[logging.Logger] = None,
    ):
        super().__init__(app)
        self.skip_prefixes = skip_prefixes
        self._log = log or logger

    def _should_skip(self, path: str) -> bool:
        return any(path.startswith(prefix) for prefix in self.skip_prefixes)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if self._should_skip(path):
            return await call_next(request)

        start = time.monotonic()
        try:
            response = await call_next(request)
        except Exception:
            self._log.exception(
                "Unhandled error in request",
                extra={"data": {
                    "method": request.method,
                    "path": path,
                    "query": str(request.url.query),
                    "client": request.client.host if request.client else None,
                    "user_agent": request.headers.get("user-agent"),
                }},
            )
            raise

        duration_ms = round((time.monotonic() - start) * 1000, 1)
        self._log.info(
            "%s %s %s",
            request.method,
            path,
            response.status_code,
            extra={"data": {
                "method": request.method,
                "path": path,
                "status": response.status_code,
                "duration_ms": duration_ms,
            }},
        )
        return response


__all__ = ["RequestLoggerMiddleware"]
