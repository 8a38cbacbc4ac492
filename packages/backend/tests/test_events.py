import asyncio
import json

import pytest

from sitebuilder.events.emitter import StreamEmitter
from sitebuilder.events.models import DeltaEvent, PingEvent, StageStartEvent
from sitebuilder.events.types import SENTINEL_FRAME
from sitebuilder.exceptions import ClientDisconnected, ProviderError, TransientProviderError, classify_error


def _payload(frame: str) -> dict:
    assert frame.startswith("data: ")
    return json.loads(frame[len("data: "):].strip())


def test_event_model_to_sse_contains_timestamp() -> None:
    event = StageStartEvent(stage_index=0, stage="page:index", total_stages=3, page_name="index")
    payload = _payload(event.to_sse())
    assert payload["type"] == "stage_start"
    assert payload["timestamp"].endswith("Z")
    assert payload["page_name"] == "index"
    assert "payload" not in payload


def test_ping_and_delta_frames() -> None:
    assert PingEvent().to_sse() == 'data: {"type": "ping"}\n\n'
    payload = _payload(DeltaEvent(content="<h1>", stage="document", page="index").to_sse())
    assert payload == {
        "type": "delta",
        "choices": [{"delta": {"content": "<h1>"}}],
        "stage": "document",
        "page": "index",
    }


def test_success_path_ends_with_one_sentinel_and_stops_keepalive() -> None:
    async def scenario():
        emitter = StreamEmitter(request_id="req-1", keepalive_interval=0.01)
        emitter.start()
        assert emitter.keepalive_active
        await asyncio.sleep(0.05)
        emitter.emit(StageStartEvent(stage_index=0, stage="document", total_stages=1))
        assert emitter.close() is True
        assert emitter.close() is False
        frames = [frame async for frame in emitter.frames()]
        return emitter, frames

    emitter, frames = asyncio.run(scenario())
    assert frames[-1] == SENTINEL_FRAME
    assert frames.count(SENTINEL_FRAME) == 1
    assert emitter.sentinel_count == 1
    assert emitter.pings_sent >= 1
    assert 'data: {"type": "ping"}\n\n' in frames
    assert not emitter.keepalive_active
    assert emitter.close_reason == "completed"

    events = [_payload(frame) for frame in frames if frame != SENTINEL_FRAME and "ping" not in frame]
    assert events[0]["request_id"] == "req-1"


def test_writes_after_close_are_dropped() -> None:
    async def scenario():
        emitter = StreamEmitter(keepalive_interval=0)
        emitter.start()
        emitter.close()
        assert emitter.emit(StageStartEvent(stage_index=0, stage="document", total_stages=1)) is False
        assert emitter.emit_delta("late") is False
        return emitter, emitter.drain_nowait()

    emitter, frames = asyncio.run(scenario())
    assert frames == [SENTINEL_FRAME]
    assert emitter.dropped_writes == 2


def test_error_path_emits_classified_error_then_sentinel() -> None:
    async def scenario():
        emitter = StreamEmitter(request_id="req-2", keepalive_interval=0.01)
        emitter.start()
        emitter.fail(TransientProviderError("rate limited"), stage="page:about")
        emitter.fail(ProviderError("second failure is ignored"))
        return emitter, [frame async for frame in emitter.frames()]

    emitter, frames = asyncio.run(scenario())
    assert frames[-1] == SENTINEL_FRAME
    assert emitter.sentinel_count == 1
    assert not emitter.keepalive_active
    assert emitter.close_reason == "error"

    error = _payload(frames[0])
    assert error["type"] == "error"
    assert error["error_type"] == "provider_transient"
    assert error["retryable"] is True
    assert error["stage"] == "page:about"
    assert error["trace_id"]


def test_fatal_errors_are_not_retryable() -> None:
    async def scenario():
        emitter = StreamEmitter(keepalive_interval=0)
        emitter.start()
        emitter.fail(ValueError("boom"))
        return emitter.drain_nowait()

    frames = asyncio.run(scenario())
    error = _payload(frames[0])
    assert error["error_type"] == "internal"
    assert error["retryable"] is False


def test_disconnect_closes_stream_and_notifies() -> None:
    notified = []

    async def scenario():
        emitter = StreamEmitter(request_id="req-3", keepalive_interval=10)

        async def is_disconnected() -> bool:
            return True

        frames = [
            frame
            async for frame in emitter.frames(
                is_disconnected=is_disconnected,
                on_disconnect=lambda: notified.append(True),
                poll_interval=0.01,
            )
        ]
        return emitter, frames

    emitter, frames = asyncio.run(scenario())
    assert frames == []
    assert notified == [True]
    assert emitter.close_reason == "disconnected"
    assert isinstance(emitter.disconnected, ClientDisconnected)
    assert "req-3" in str(emitter.disconnected)
    assert classify_error(emitter.disconnected)["error_type"] == "client_disconnected"
    assert classify_error(emitter.disconnected)["retryable"] is False
    assert emitter.sentinel_count == 1
    assert not emitter.keepalive_active


def test_deltas_are_coalesced_and_flushed_before_events() -> None:
    async def scenario():
        emitter = StreamEmitter(keepalive_interval=0, flush_chars=50, flush_interval=10)
        emitter.start()
        emitter.emit_delta("Hel", stage="document", page="index")
        emitter.emit_delta("lo", stage="document", page="index")
        emitter.emit(StageStartEvent(stage_index=1, stage="next", total_stages=2))
        emitter.close()
        return emitter.drain_nowait()

    frames = asyncio.run(scenario())
    delta = _payload(frames[0])
    assert delta["choices"][0]["delta"]["content"] == "Hello"
    assert _payload(frames[1])["type"] == "stage_start"
    assert frames[-1] == SENTINEL_FRAME


def test_delta_flushes_on_markup_boundary_and_timer() -> None:
    async def scenario():
        emitter = StreamEmitter(keepalive_interval=0, flush_chars=50, flush_interval=0.01)
        emitter.start()
        emitter.emit_delta("<div>")
        immediate = emitter.drain_nowait()
        emitter.emit_delta("text")
        assert emitter.drain_nowait() == []
        await asyncio.sleep(0.05)
        timed = emitter.drain_nowait()
        emitter.close()
        return immediate, timed

    immediate, timed = asyncio.run(scenario())
    assert len(immediate) == 1
    assert len(timed) == 1
    assert _payload(timed[0])["choices"][0]["delta"]["content"] == "text"


def test_emitter_is_single_use() -> None:
    async def scenario():
        emitter = StreamEmitter(keepalive_interval=0)
        emitter.start()
        with pytest.raises(RuntimeError):
            emitter.start()
        emitter.close()

    asyncio.run(scenario())


def test_discard_drops_unsent_deltas() -> None:
    async def scenario():
        emitter = StreamEmitter(keepalive_interval=0, flush_chars=50, flush_interval=10)
        emitter.start()
        emitter.emit_delta("partial", stage="document")
        dropped = emitter.discard_deltas()
        emitter.emit_delta("<p>", stage="document")
        emitter.close()
        return dropped, emitter.drain_nowait()

    dropped, frames = asyncio.run(scenario())
    assert dropped == len("partial")
    assert [_payload(frame)["choices"][0]["delta"]["content"] for frame in frames[:-1]] == ["<p>"]
    assert frames[-1] == SENTINEL_FRAME
