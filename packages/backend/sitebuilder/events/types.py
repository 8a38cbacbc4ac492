from enum import Enum


class EventType(str, Enum):
    # Channel control
    PING = "ping"
    DELTA = "delta"
    ERROR = "error"
    CANCELLED = "cancelled"

    # Plan and stage lifecycle
    PLAN_COMPLETE = "plan_complete"
    STAGE_START = "stage_start"
    STAGE_RETRY = "stage_retry"
    STAGE_COMPLETE = "stage_complete"
    STAGE_FAILED = "stage_failed"

    # Page lifecycle
    PAGE_START = "page_start"
    PAGE_COMPLETE = "page_complete"
    PAGE_SAVED = "page_saved"

    GENERATION_COMPLETE = "generation_complete"


SENTINEL_FRAME = "data: [DONE]\n\n"

# Frames that carry no progress information
CONTROL_EVENT_TYPES = {EventType.PING.value, EventType.DELTA.value}
