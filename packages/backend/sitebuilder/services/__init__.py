from .page import PageService
from .preview import PageRef, PreviewNotFound, PreviewResolver, PreviewResult
from .project import ProjectService, SaveResult

__all__ = [
    "PageService",
    "PageRef",
    "PreviewNotFound",
    "PreviewResolver",
    "PreviewResult",
    "ProjectService",
    "SaveResult",
]
