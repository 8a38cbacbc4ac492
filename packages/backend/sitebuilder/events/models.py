from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .types import EventType


class BaseEvent(BaseModel):
    model_config = ConfigDict(extra="allow")
    type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    request_id: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def validate_event_envelope(self) -> "BaseEvent":
        if self.payload is None:
            self.payload = {}
        if not isinstance(self.payload, dict):
            raise ValueError("payload must be an object")
        return self

    def to_sse(self) -> str:
        """Convert event to SSE format."""
        data = self.model_dump(mode="json", exclude_none=True)
        if not data.get("payload"):
            data.pop("payload", None)
        timestamp = self.timestamp
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        data["timestamp"] = timestamp.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
        return f"data: {json.dumps(data, ensure_ascii=False)}\n\n"


class PingEvent(BaseEvent):
    type: EventType = EventType.PING

    def to_sse(self) -> str:
        return 'data: {"type": "ping"}\n\n'


class DeltaEvent(BaseEvent):
    """Content delta in one envelope regardless of the generation service."""

    type: EventType = EventType.DELTA
    content: str
    stage: Optional[str] = None
    page: Optional[str] = None

    def to_sse(self) -> str:
        data: Dict[str, Any] = {
            "type": self.type.value,
            "choices": [{"delta": {"content": self.content}}],
        }
        if self.stage:
            data["stage"] = self.stage
        if self.page:
            data["page"] = self.page
        return f"data: {json.dumps(data, ensure_ascii=False)}\n\n"


class PlanCompleteEvent(BaseEvent):
    type: EventType = EventType.PLAN_COMPLETE
    strategy: str
    title: str = ""
    planned_pages: List[str] = Field(default_factory=list)
    stages: List[Dict[str, Any]] = Field(default_factory=list)
    fallback: bool = False
    warnings: List[str] = Field(default_factory=list)


class StageStartEvent(BaseEvent):
    type: EventType = EventType.STAGE_START
    stage_index: int
    stage: str
    total_stages: int
    page_name: Optional[str] = None


class StageRetryEvent(BaseEvent):
    type: EventType = EventType.STAGE_RETRY
    stage_index: int
    stage: str
    attempt: int
    delay: float
    error: str
    # Deltas already sent for this stage belong to the failed attempt.
    reset: bool = True


class StageCompleteEvent(BaseEvent):
    type: EventType = EventType.STAGE_COMPLETE
    stage_index: int
    stage: str
    retries: int = 0
    output_chars: int = 0


class StageFailedEvent(BaseEvent):
    type: EventType = EventType.STAGE_FAILED
    stage_index: int
    stage: str
    retries: int = 0
    error: str


class PageStartEvent(BaseEvent):
    type: EventType = EventType.PAGE_START
    page_name: str
    page_index: int
    total_pages: int


class PageCompleteEvent(BaseEvent):
    type: EventType = EventType.PAGE_COMPLETE
    page_name: str
    page_index: int
    total_pages: int
    html: Optional[str] = None
    project_id: Optional[str] = None
    page_id: Optional[str] = None


class PageSavedEvent(BaseEvent):
    type: EventType = EventType.PAGE_SAVED
    page_id: str
    page_name: str
    project_id: Optional[str] = None
    preview_url: Optional[str] = None


class GenerationCompleteEvent(BaseEvent):
    type: EventType = EventType.GENERATION_COMPLETE
    strategy: str
    project_id: Optional[str] = None
    preview_url: Optional[str] = None
    pages: List[str] = Field(default_factory=list)
    html: Optional[str] = None


class CancelledEvent(BaseEvent):
    type: EventType = EventType.CANCELLED
    stage_index: Optional[int] = None
    message: str = "Generation cancelled"


class ErrorEvent(BaseEvent):
    type: EventType = EventType.ERROR
    error: str
    error_type: str = "internal"
    retryable: bool = False
    trace_id: Optional[str] = None
    stage: Optional[str] = None


__all__ = [
    "BaseEvent",
    "PingEvent",
    "DeltaEvent",
    "PlanCompleteEvent",
    "StageStartEvent",
    "StageRetryEvent",
    "StageCompleteEvent",
    "StageFailedEvent",
    "PageStartEvent",
    "PageCompleteEvent",
    "PageSavedEvent",
    "GenerationCompleteEvent",
    "CancelledEvent",
    "ErrorEvent",
]
