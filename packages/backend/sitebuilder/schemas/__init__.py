from .page import HistoryResponse, PageResponse, SaveRequest, SaveResponse
from .project import PageDescriptorResponse, ProjectResponse
from .stream import CancelResponse, StreamRequest

__all__ = [
    "HistoryResponse",
    "PageResponse",
    "SaveRequest",
    "SaveResponse",
    "PageDescriptorResponse",
    "ProjectResponse",
    "CancelResponse",
    "StreamRequest",
]
