from typing import List, Optional

import pytest

from sitebuilder.config import Settings, refresh_settings
from sitebuilder.db.database import Database, reset_database
from sitebuilder.db.migrations import init_db
from sitebuilder.llm.provider import GenerationProvider
from sitebuilder.pipeline.cancellation import CancellationRegistry


class ScriptedProvider(GenerationProvider):
    """Replays queued responses; an exception in the script is raised instead.

    A ``(text, error)`` item streams the text and then raises the error.
    """

    name = "scripted"

    def __init__(self, script: Optional[list] = None, *, settings: Optional[Settings] = None, chunk_size: int = 16):
        super().__init__(settings=settings or Settings(), model="scripted-model")
        self.script = list(script or [])
        self.chunk_size = chunk_size
        self.calls: List[list] = []
        self.closed = False
        self.on_chunk = None
        self.pulled = 0

    def queue(self, *items) -> "ScriptedProvider":
        self.script.extend(items)
        return self

    async def stream(self, messages, *, model=None, max_tokens=None, temperature=None):
        self.calls.append(list(messages))
        if not self.script:
            raise AssertionError("ScriptedProvider ran out of responses")
        item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        # (text, error): stream the text, then fail mid-response
        text, error = item if isinstance(item, tuple) else (item, None)
        for start in range(0, len(text), self.chunk_size):
            if self.on_chunk is not None:
                self.on_chunk(len(self.calls))
            self.pulled += 1
            yield text[start : start + self.chunk_size]
        if error is not None:
            raise error

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture()
def test_settings(monkeypatch, tmp_path):
    db_path = tmp_path / "test.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_path}")
    monkeypatch.setenv("GENERATION_PROVIDER", "anthropic")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "test-key")
    monkeypatch.setenv("GENERATION_RETRY_DELAY", "0")
    monkeypatch.setenv("GENERATION_MAX_RETRIES", "3")
    monkeypatch.setenv("STREAM_KEEPALIVE_SECONDS", "0")
    monkeypatch.setenv("STREAM_FLUSH_INTERVAL", "0.01")
    monkeypatch.setenv("LOG_DIR", "")
    reset_database()
    CancellationRegistry.reset_instance()
    settings = refresh_settings()
    yield settings
    reset_database()
    CancellationRegistry.reset_instance()


@pytest.fixture()
def database(test_settings):
    db = Database(test_settings.database_url)
    init_db(db)
    yield db
    db.dispose()


@pytest.fixture()
def scripted_provider(test_settings):
    def _build(*script, chunk_size: int = 16) -> ScriptedProvider:
        return ScriptedProvider(list(script), settings=test_settings, chunk_size=chunk_size)

    return _build
