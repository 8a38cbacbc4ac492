from __future__ import annotations

import asyncio
import logging
from typing import AsyncGenerator, Awaitable, Callable, List, Optional

from ..exceptions import ClientDisconnected, classify_error
from .models import BaseEvent, DeltaEvent, ErrorEvent, PingEvent
from .types import SENTINEL_FRAME

logger = logging.getLogger(__name__)

DisconnectCheck = Callable[[], Awaitable[bool]]


class StreamEmitter:
    """Single-use push channel for one streaming request.

    Frames are queued as SSE strings and drained by ``frames()``.  The
    channel always ends with exactly one ``[DONE]`` sentinel, and every
    terminal path (``close``/``fail``/disconnect) stops the keep-alive task.
    """

    def __init__(
        self,
        *,
        request_id: Optional[str] = None,
        keepalive_interval: float = 10.0,
        flush_chars: int = 50,
        flush_interval: float = 0.2,
        log: Optional[logging.Logger] = None,
    ) -> None:
        self.request_id = request_id
        self.keepalive_interval = float(keepalive_interval)
        self.flush_chars = int(flush_chars)
        self.flush_interval = float(flush_interval)
        self._log = log or logger
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._keepalive_task: Optional[asyncio.Task[None]] = None
        self._flush_handle: Optional[asyncio.TimerHandle] = None
        self._delta_buffer: List[str] = []
        self._delta_stage: Optional[str] = None
        self._delta_page: Optional[str] = None
        self._started = False
        self._closed = False
        self.close_reason: Optional[str] = None
        # Set when the client goes away; recorded, never sent as an error frame.
        self.disconnected: Optional[ClientDisconnected] = None
        self.sentinel_count = 0
        self.pings_sent = 0
        self.dropped_writes = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def keepalive_active(self) -> bool:
        return self._keepalive_task is not None and not self._keepalive_task.done()

    def start(self) -> None:
        if self._started:
            raise RuntimeError("StreamEmitter is single-use")
        self._started = True
        if self.keepalive_interval > 0:
            self._keepalive_task = asyncio.get_running_loop().create_task(self._keepalive())

    async def _keepalive(self) -> None:
        try:
            while not self._closed:
                await asyncio.sleep(self.keepalive_interval)
                if self._closed:
                    break
                self._put(PingEvent().to_sse())
                self.pings_sent += 1
        except asyncio.CancelledError:
            pass

    def _put(self, frame: str) -> bool:
        if self._closed:
            self.dropped_writes += 1
            self._log.debug("Dropped write on closed stream %s", self.request_id)
            return False
        self._queue.put_nowait(frame)
        return True

    def emit(self, event: BaseEvent) -> bool:
        """Queue a progress/event frame; pending deltas are flushed first to keep ordering."""
        if self._closed:
            self.dropped_writes += 1
            return False
        self.flush_deltas()
        if event.request_id is None and self.request_id:
            event.request_id = self.request_id
        self._log.debug("Event emitted: %s", getattr(event.type, "value", event.type))
        return self._put(event.to_sse())

    def emit_delta(self, content: str, *, stage: Optional[str] = None, page: Optional[str] = None) -> bool:
        """Buffer a content delta; flushed on size, markup boundary or idle timer."""
        if self._closed:
            self.dropped_writes += 1
            return False
        if not content:
            return True
        if self._delta_buffer and (stage != self._delta_stage or page != self._delta_page):
            self.flush_deltas()
        self._delta_stage = stage
        self._delta_page = page
        self._delta_buffer.append(content)
        buffered = "".join(self._delta_buffer)
        if len(buffered) > self.flush_chars or ">" in content or "\n" in content:
            self.flush_deltas()
        else:
            self._schedule_flush()
        return True

    def _schedule_flush(self) -> None:
        self._cancel_flush()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._flush_handle = loop.call_later(self.flush_interval, self.flush_deltas)

    def _cancel_flush(self) -> None:
        if self._flush_handle is not None:
            self._flush_handle.cancel()
            self._flush_handle = None

    def flush_deltas(self) -> None:
        self._cancel_flush()
        if not self._delta_buffer:
            return
        content = "".join(self._delta_buffer)
        self._delta_buffer.clear()
        if self._closed:
            self.dropped_writes += 1
            return
        self._put(DeltaEvent(content=content, stage=self._delta_stage, page=self._delta_page).to_sse())

    def discard_deltas(self) -> int:
        """Drop buffered deltas that have not been sent yet; returns the dropped length."""
        self._cancel_flush()
        dropped = sum(len(part) for part in self._delta_buffer)
        self._delta_buffer.clear()
        return dropped

    def fail(self, exc: BaseException, *, stage: Optional[str] = None) -> None:
        """Emit an error frame classified as retryable or fatal, then close."""
        payload = classify_error(exc)
        self.emit(
            ErrorEvent(
                error=payload["error"],
                error_type=payload["error_type"],
                retryable=payload["retryable"],
                trace_id=payload["trace_id"],
                stage=stage or payload.get("stage"),
            )
        )
        self.close(reason="error")

    def close(self, reason: str = "completed") -> bool:
        """Finalize the channel exactly once; later calls are no-ops."""
        if self._closed:
            return False
        self.flush_deltas()
        self._stop_keepalive()
        self._queue.put_nowait(SENTINEL_FRAME)
        self.sentinel_count += 1
        self._closed = True
        self.close_reason = reason
        self._log.debug("Stream %s closed (%s)", self.request_id, reason)
        return True

    def _stop_keepalive(self) -> None:
        if self._keepalive_task is not None:
            self._keepalive_task.cancel()
            self._keepalive_task = None

    async def frames(
        self,
        *,
        is_disconnected: Optional[DisconnectCheck] = None,
        on_disconnect: Optional[Callable[[], None]] = None,
        poll_interval: float = 0.5,
    ) -> AsyncGenerator[str, None]:
        """Drain queued frames until the sentinel; stop early if the client goes away."""
        if not self._started:
            self.start()
        try:
            while True:
                try:
                    frame = await asyncio.wait_for(self._queue.get(), timeout=poll_interval)
                except asyncio.TimeoutError:
                    if is_disconnected is not None and await is_disconnected():
                        self.disconnected = ClientDisconnected(f"Client disconnected from stream {self.request_id}")
                        self._log.info("%s", self.disconnected.with_trace())
                        self.close(reason="disconnected")
                        if on_disconnect is not None:
                            on_disconnect()
                        return
                    continue
                yield frame
                if frame == SENTINEL_FRAME:
                    return
        finally:
            if not self._closed:
                self.close(reason="aborted")
                if on_disconnect is not None:
                    on_disconnect()

    def drain_nowait(self) -> List[str]:
        frames: List[str] = []
        while not self._queue.empty():
            frames.append(self._queue.get_nowait())
        return frames


__all__ = ["StreamEmitter", "DisconnectCheck"]
