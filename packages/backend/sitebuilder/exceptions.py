from __future__ import annotations

from typing import Any, Optional
from uuid import uuid4


def new_trace_id() -> str:
    return uuid4().hex


class SiteBuilderError(Exception):
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        error_type: str,
        retryable: Optional[bool] = None,
        trace_id: str | None = None,
    ) -> None:
        self.error_type = error_type
        if retryable is not None:
            self.retryable = retryable
        self.trace_id = trace_id or new_trace_id()
        super().__init__(message)

    def with_trace(self) -> str:
        return f"{self.args[0]} (trace_id={self.trace_id})"

    def to_payload(self) -> dict[str, Any]:
        return {
            "error": str(self.args[0]),
            "error_type": self.error_type,
            "retryable": self.retryable,
            "trace_id": self.trace_id,
        }


class ProviderError(SiteBuilderError):
    """Generation service failure that must not be retried."""

    def __init__(self, message: str, *, trace_id: str | None = None) -> None:
        super().__init__(message, error_type="provider", retryable=False, trace_id=trace_id)


class TransientProviderError(SiteBuilderError):
    """Rate limit, timeout, connection or 5xx failure from the generation service."""

    def __init__(self, message: str, *, trace_id: str | None = None) -> None:
        super().__init__(message, error_type="provider_transient", retryable=True, trace_id=trace_id)


class PlanParseError(SiteBuilderError):
    def __init__(self, message: str, *, trace_id: str | None = None) -> None:
        super().__init__(message, error_type="plan_parse", retryable=False, trace_id=trace_id)


class StageFailedError(SiteBuilderError):
    def __init__(
        self,
        message: str,
        *,
        stage: str,
        retries: int = 0,
        retryable: bool = False,
        trace_id: str | None = None,
    ) -> None:
        self.stage = stage
        self.retries = retries
        super().__init__(message, error_type="stage_failed", retryable=retryable, trace_id=trace_id)

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["stage"] = self.stage
        payload["retries"] = self.retries
        return payload


class PersistenceError(SiteBuilderError):
    def __init__(self, message: str, *, trace_id: str | None = None) -> None:
        super().__init__(message, error_type="persistence", retryable=False, trace_id=trace_id)


class RewriteInputError(SiteBuilderError):
    def __init__(self, message: str, *, trace_id: str | None = None) -> None:
        super().__init__(message, error_type="rewrite_input", retryable=False, trace_id=trace_id)


class InvalidRequestError(SiteBuilderError):
    def __init__(self, message: str, *, trace_id: str | None = None) -> None:
        super().__init__(message, error_type="invalid_request", retryable=False, trace_id=trace_id)


class NotFoundError(SiteBuilderError):
    def __init__(self, message: str, *, trace_id: str | None = None) -> None:
        super().__init__(message, error_type="not_found", retryable=False, trace_id=trace_id)


class GenerationCancelled(SiteBuilderError):
    def __init__(self, message: str = "Generation cancelled", *, trace_id: str | None = None) -> None:
        super().__init__(message, error_type="cancelled", retryable=False, trace_id=trace_id)


class ClientDisconnected(SiteBuilderError):
    def __init__(self, message: str = "Client disconnected", *, trace_id: str | None = None) -> None:
        super().__init__(message, error_type="client_disconnected", retryable=False, trace_id=trace_id)


def classify_error(exc: BaseException) -> dict[str, Any]:
    """Build the error payload sent to stream clients."""
    if isinstance(exc, SiteBuilderError):
        return exc.to_payload()
    return {
        "error": str(exc) or exc.__class__.__name__,
        "error_type": "internal",
        "retryable": False,
        "trace_id": new_trace_id(),
    }


__all__ = [
    "new_trace_id",
    "classify_error",
    "SiteBuilderError",
    "ProviderError",
    "TransientProviderError",
    "PlanParseError",
    "StageFailedError",
    "PersistenceError",
    "RewriteInputError",
    "NotFoundError",
    "InvalidRequestError",
    "GenerationCancelled",
    "ClientDisconnected",
]
