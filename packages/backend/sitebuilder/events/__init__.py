from .emitter import StreamEmitter
from .models import (
    BaseEvent,
    CancelledEvent,
    DeltaEvent,
    ErrorEvent,
    GenerationCompleteEvent,
    PageCompleteEvent,
    PageSavedEvent,
    PageStartEvent,
    PingEvent,
    PlanCompleteEvent,
    StageCompleteEvent,
    StageFailedEvent,
    StageRetryEvent,
    StageStartEvent,
)
from .types import SENTINEL_FRAME, EventType

__all__ = [
    "StreamEmitter",
    "EventType",
    "SENTINEL_FRAME",
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
