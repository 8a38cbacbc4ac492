from .pages import router as pages_router
from .preview import router as preview_router
from .projects import router as projects_router
from .stream import router as stream_router

__all__ = [
    "pages_router",
    "preview_router",
    "projects_router",
    "stream_router",
]
