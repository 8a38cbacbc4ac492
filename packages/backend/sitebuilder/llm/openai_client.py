from __future__ import annotations

import logging
from typing import Any, AsyncIterator, List, Optional

import httpx
import openai
from openai import AsyncOpenAI

from ..config import Settings
from ..exceptions import ProviderError, SiteBuilderError, TransientProviderError
from .provider import GenerationProvider, Message

logger = logging.getLogger(__name__)


class OpenAIProvider(GenerationProvider):
    """Chat-completions streaming through the OpenAI SDK (or a compatible endpoint)."""

    name = "openai"

    def __init__(
        self,
        *,
        settings: Optional[Settings] = None,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        client: Any | None = None,
    ) -> None:
        super().__init__(settings=settings, model=model)
        resolved_api_key = api_key or self._settings.openai_api_key
        resolved_base_url = base_url or self._settings.openai_base_url
        if client is None and not resolved_api_key:
            raise ProviderError("OPENAI_API_KEY is not configured")
        timeout = float(timeout_seconds) if timeout_seconds is not None else self._settings.provider_timeout_seconds
        # SDK-level retries are disabled; the stage controller owns retry policy.
        self._client = client or AsyncOpenAI(
            api_key=resolved_api_key,
            base_url=resolved_base_url,
            timeout=timeout,
            max_retries=0,
        )

    async def stream(
        self,
        messages: List[Message],
        *,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> AsyncIterator[str]:
        payload = {
            "model": model or self._default_model,
            "messages": [dict(message) for message in messages],
            "temperature": temperature if temperature is not None else self._settings.temperature,
            "max_tokens": max_tokens if max_tokens is not None else self._settings.max_tokens,
            "stream": True,
        }
        try:
            stream = await self._client.chat.completions.create(**payload)
            async for chunk in stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta
                if delta is None:
                    continue
                content = getattr(delta, "content", None)
                if content:
                    yield content
        except SiteBuilderError:
            raise
        except Exception as exc:
            raise self._handle_error(exc) from exc

    async def aclose(self) -> None:
        close = getattr(self._client, "close", None)
        if close is not None:
            await close()

    def _handle_error(self, exc: Exception) -> SiteBuilderError:
        message = _extract_error_message(exc)
        if isinstance(exc, openai.RateLimitError):
            return TransientProviderError(message or "Rate limit exceeded")
        if isinstance(exc, (openai.APITimeoutError, httpx.TimeoutException)):
            return TransientProviderError(message or "Request timed out")
        if isinstance(exc, (openai.APIConnectionError, httpx.TransportError)):
            return TransientProviderError(message or "Connection error")
        if isinstance(exc, openai.InternalServerError):
            return TransientProviderError(message or "Provider server error")
        if isinstance(
            exc,
            (
                openai.AuthenticationError,
                openai.PermissionDeniedError,
                openai.BadRequestError,
                openai.NotFoundError,
                openai.UnprocessableEntityError,
            ),
        ):
            return ProviderError(message or str(exc))
        if isinstance(exc, openai.APIStatusError):
            status = getattr(exc, "status_code", 0) or 0
            if status >= 500 or status == 429:
                return TransientProviderError(message or str(exc))
            return ProviderError(message or str(exc))
        return ProviderError(str(exc) or exc.__class__.__name__)


def _extract_error_message(exc: Exception) -> str:
    message = str(exc)
    body = getattr(exc, "body", None)
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            message = error.get("message") or message
    elif isinstance(body, str) and body:
        message = body
    return message


__all__ = ["OpenAIProvider"]
