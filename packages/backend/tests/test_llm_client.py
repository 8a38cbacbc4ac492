import asyncio
import json
from types import SimpleNamespace

import httpx
import openai
import pytest

from sitebuilder.config import Settings
from sitebuilder.exceptions import ProviderError, TransientProviderError
from sitebuilder.llm.anthropic_client import AnthropicProvider, parse_sse_line
from sitebuilder.llm.openai_client import OpenAIProvider
from sitebuilder.llm.provider import ProviderFactory

MESSAGES = [
    {"role": "system", "content": "You build websites."},
    {"role": "user", "content": "A bakery"},
]


def _sse(*events: dict) -> str:
    return "".join(f"event: {event['type']}\ndata: {json.dumps(event)}\n\n" for event in events)


def _anthropic(handler) -> AnthropicProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="https://anthropic.test")
    return AnthropicProvider(settings=Settings(), api_key="key", model="claude-test", client=client)


async def _collect(provider, messages=MESSAGES) -> list[str]:
    try:
        return [delta async for delta in provider.stream(messages)]
    finally:
        await provider.aclose()


def test_parse_sse_line() -> None:
    assert parse_sse_line('data: {"type": "ping"}') == {"type": "ping"}
    assert parse_sse_line("event: ping") is None
    assert parse_sse_line("data: [DONE]") is None
    assert parse_sse_line("data: {broken") is None


def test_anthropic_stream_yields_text_deltas() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        body = _sse(
            {"type": "message_start", "message": {}},
            {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "<html>"}},
            {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "</html>"}},
            {"type": "message_stop"},
        )
        return httpx.Response(200, text=body, headers={"content-type": "text/event-stream"})

    deltas = asyncio.run(_collect(_anthropic(handler)))

    assert deltas == ["<html>", "</html>"]
    assert seen["path"] == "/v1/messages"
    assert seen["headers"]["x-api-key"] == "key"
    assert seen["body"]["system"] == "You build websites."
    assert seen["body"]["messages"] == [{"role": "user", "content": "A bakery"}]
    assert seen["body"]["model"] == "claude-test"
    assert seen["body"]["stream"] is True


@pytest.mark.parametrize(
    ("status", "expected"),
    [(429, TransientProviderError), (529, TransientProviderError), (401, ProviderError), (400, ProviderError)],
)
def test_anthropic_status_errors_are_classified(status, expected) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json={"error": {"message": "nope"}})

    with pytest.raises(expected) as excinfo:
        asyncio.run(_collect(_anthropic(handler)))
    assert str(status) in str(excinfo.value)


def test_anthropic_stream_error_event() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        body = _sse(
            {"type": "content_block_delta", "delta": {"text": "partial"}},
            {"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}},
        )
        return httpx.Response(200, text=body)

    with pytest.raises(TransientProviderError):
        asyncio.run(_collect(_anthropic(handler)))


def test_anthropic_connection_errors_are_transient() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(TransientProviderError):
        asyncio.run(_collect(_anthropic(handler)))


class _FakeCompletions:
    def __init__(self, chunks=None, error=None):
        self.chunks = chunks or []
        self.error = error
        self.payload = None

    async def create(self, **payload):
        self.payload = payload
        if self.error is not None:
            raise self.error

        async def _iterate():
            for chunk in self.chunks:
                yield chunk

        return _iterate()


def _chunk(content):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=content))])


def _openai(completions: _FakeCompletions) -> OpenAIProvider:
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return OpenAIProvider(settings=Settings(), api_key="key", model="gpt-test", client=client)


def test_openai_stream_yields_content() -> None:
    completions = _FakeCompletions([_chunk("<h1>"), SimpleNamespace(choices=[]), _chunk(None), _chunk("Hi</h1>")])

    deltas = asyncio.run(_collect(_openai(completions)))

    assert deltas == ["<h1>", "Hi</h1>"]
    assert completions.payload["model"] == "gpt-test"
    assert completions.payload["stream"] is True
    assert completions.payload["messages"][0]["role"] == "system"


def _status_error(cls, status: int):
    request = httpx.Request("POST", "https://openai.test/v1/chat/completions")
    return cls("failed", response=httpx.Response(status, request=request), body={"error": {"message": "upstream"}})


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (_status_error(openai.RateLimitError, 429), TransientProviderError),
        (_status_error(openai.InternalServerError, 503), TransientProviderError),
        (_status_error(openai.AuthenticationError, 401), ProviderError),
        (_status_error(openai.BadRequestError, 400), ProviderError),
        (httpx.ReadTimeout("slow"), TransientProviderError),
    ],
)
def test_openai_errors_are_classified(error, expected) -> None:
    with pytest.raises(expected):
        asyncio.run(_collect(_openai(_FakeCompletions(error=error))))


def test_openai_error_message_comes_from_body() -> None:
    with pytest.raises(ProviderError) as excinfo:
        asyncio.run(_collect(_openai(_FakeCompletions(error=_status_error(openai.BadRequestError, 400)))))
    assert str(excinfo.value) == "upstream"


def test_provider_factory() -> None:
    settings = Settings()
    settings.anthropic_api_key = "key"
    settings.openai_api_key = "key"
    assert isinstance(ProviderFactory.create("anthropic", settings=settings), AnthropicProvider)
    assert isinstance(ProviderFactory.create("openai", settings=settings), OpenAIProvider)
    with pytest.raises(ProviderError):
        ProviderFactory.create("mystery", settings=settings)

    settings.anthropic_api_key = None
    with pytest.raises(ProviderError):
        ProviderFactory.create("anthropic", settings=settings)
