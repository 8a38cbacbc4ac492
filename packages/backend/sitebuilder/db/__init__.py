from .database import Database, get_database, reset_database
from .migrations import init_db
from .models import GenerationType, Page, PageType, Project, ProjectPage
from .utils import get_db, savepoint

__all__ = [
    "Database",
    "get_database",
    "reset_database",
    "init_db",
    "GenerationType",
    "Page",
    "PageType",
    "Project",
    "ProjectPage",
    "get_db",
    "savepoint",
]
