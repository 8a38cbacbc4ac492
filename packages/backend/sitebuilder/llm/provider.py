from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncIterator, Dict, List, Optional

from ..config import Settings, get_settings
from ..exceptions import ProviderError

Message = Dict[str, str]


class GenerationProvider(ABC):
    """A text-generation service returning streamed text deltas."""

    name: str = "provider"

    def __init__(self, *, settings: Optional[Settings] = None, model: Optional[str] = None) -> None:
        self._settings = settings or get_settings()
        self._default_model = model or self._settings.model

    @property
    def default_model(self) -> str:
        return self._default_model

    @abstractmethod
    def stream(
        self,
        messages: List[Message],
        *,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> AsyncIterator[str]:
        """Yield text deltas; raise TransientProviderError or ProviderError on failure."""
        raise NotImplementedError

    async def complete(
        self,
        messages: List[Message],
        *,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> str:
        parts: List[str] = []
        async for delta in self.stream(messages, model=model, max_tokens=max_tokens, temperature=temperature):
            parts.append(delta)
        return "".join(parts)

    async def aclose(self) -> None:
        return None


def split_system(messages: List[Message]) -> tuple[str, List[Message]]:
    system_parts = [message["content"] for message in messages if message.get("role") == "system"]
    rest = [dict(message) for message in messages if message.get("role") != "system"]
    return "\n\n".join(system_parts), rest


class ProviderFactory:
    @staticmethod
    def create(provider: Optional[str] = None, *, settings: Optional[Settings] = None) -> GenerationProvider:
        resolved_settings = settings or get_settings()
        resolved = (provider or resolved_settings.generation_provider or "anthropic").lower()

        if resolved == "openai":
            from .openai_client import OpenAIProvider

            return OpenAIProvider(settings=resolved_settings)
        if resolved == "anthropic":
            from .anthropic_client import AnthropicProvider

            return AnthropicProvider(settings=resolved_settings)

        raise ProviderError(f"Unknown generation provider: {resolved}")


__all__ = ["GenerationProvider", "Message", "ProviderFactory", "split_system"]
