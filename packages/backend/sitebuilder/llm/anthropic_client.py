from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, List, Optional

import httpx

from ..config import Settings
from ..exceptions import ProviderError, SiteBuilderError, TransientProviderError
from .provider import GenerationProvider, Message, split_system

logger = logging.getLogger(__name__)

_TRANSIENT_ERROR_TYPES = {"overloaded_error", "rate_limit_error", "api_error", "timeout_error"}


def parse_sse_line(line: str) -> Optional[dict]:
    """Decode one ``data:`` line of the Messages streaming protocol."""
    if not line.startswith("data:"):
        return None
    data = line[len("data:"):].strip()
    if not data or data == "[DONE]":
        return None
    try:
        parsed = json.loads(data)
    except json.JSONDecodeError:
        logger.debug("Ignoring undecodable stream line: %s", data[:200])
        return None
    return parsed if isinstance(parsed, dict) else None


class AnthropicProvider(GenerationProvider):
    """Messages API streaming over httpx."""

    name = "anthropic"

    def __init__(
        self,
        *,
        settings: Optional[Settings] = None,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(settings=settings, model=model)
        self.api_key = api_key or self._settings.anthropic_api_key
        if client is None and not self.api_key:
            raise ProviderError("ANTHROPIC_API_KEY is not configured")
        self.base_url = (base_url or self._settings.anthropic_base_url).rstrip("/")
        self.api_version = self._settings.anthropic_api_version
        timeout = float(timeout_seconds) if timeout_seconds is not None else self._settings.provider_timeout_seconds
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    def _headers(self) -> dict:
        return {
            "x-api-key": self.api_key or "",
            "anthropic-version": self.api_version,
            "content-type": "application/json",
        }

    def _payload(
        self,
        messages: List[Message],
        *,
        model: Optional[str],
        max_tokens: Optional[int],
        temperature: Optional[float],
    ) -> dict:
        system, conversation = split_system(messages)
        payload: dict[str, Any] = {
            "model": model or self._default_model,
            "messages": conversation,
            "max_tokens": max_tokens if max_tokens is not None else self._settings.max_tokens,
            "temperature": temperature if temperature is not None else self._settings.temperature,
            "stream": True,
        }
        if system:
            payload["system"] = system
        return payload

    async def stream(
        self,
        messages: List[Message],
        *,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> AsyncIterator[str]:
        payload = self._payload(messages, model=model, max_tokens=max_tokens, temperature=temperature)
        try:
            async with self._client.stream("POST", "/v1/messages", json=payload, headers=self._headers()) as response:
                if response.status_code >= 400:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise self._status_error(response.status_code, body)
                async for line in response.aiter_lines():
                    event = parse_sse_line(line)
                    if event is None:
                        continue
                    event_type = event.get("type")
                    if event_type == "content_block_delta":
                        text = (event.get("delta") or {}).get("text")
                        if text:
                            yield text
                    elif event_type == "message_stop":
                        return
                    elif event_type == "error":
                        raise self._stream_error(event.get("error") or {})
        except SiteBuilderError:
            raise
        except httpx.TimeoutException as exc:
            raise TransientProviderError(f"Request timed out: {exc}") from exc
        except httpx.TransportError as exc:
            raise TransientProviderError(f"Connection error: {exc}") from exc

    async def aclose(self) -> None:
        await self._client.aclose()

    def _status_error(self, status: int, body: str) -> SiteBuilderError:
        message = f"Anthropic API error {status}: {body[:500]}"
        if status == 429 or status >= 500:
            return TransientProviderError(message)
        return ProviderError(message)

    def _stream_error(self, error: dict) -> SiteBuilderError:
        error_type = str(error.get("type") or "")
        message = str(error.get("message") or error_type or "stream error")
        if error_type in _TRANSIENT_ERROR_TYPES:
            return TransientProviderError(message)
        return ProviderError(message)


__all__ = ["AnthropicProvider", "parse_sse_line"]
