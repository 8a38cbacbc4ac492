from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship, validates

from .base import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class GenerationType(str, enum.Enum):
    SINGLE = "single"
    MULTI = "multi"
    LONG = "long"
    HIERARCHICAL = "hierarchical"


class PageType(str, enum.Enum):
    MAIN = "main"
    SUB = "sub"


class Project(Base):
    __tablename__ = "projects"

    id = Column(String, primary_key=True, default=_new_id)
    name = Column(String, nullable=False, default="Untitled site")
    description = Column(Text, nullable=False, default="")
    generation_type = Column(String(20), nullable=False, default=GenerationType.SINGLE.value)
    planned_pages = Column(JSON, nullable=False, default=list)
    design_system = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    page_refs = relationship(
        "ProjectPage",
        back_populates="project",
        cascade="all, delete-orphan",
        order_by="ProjectPage.order_index",
    )
    pages = relationship("Page", back_populates="project")

    @validates("generation_type")
    def validate_generation_type(self, _key: str, value: str) -> str:
        allowed = {item.value for item in GenerationType}
        if value not in allowed:
            raise ValueError(f"generation_type must be one of {sorted(allowed)}")
        return value


class ProjectPage(Base):
    """Ordered page descriptor; rows without page_id come from older saves."""

    __tablename__ = "project_pages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(String, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    page_id = Column(String, ForeignKey("pages.id", ondelete="SET NULL"), nullable=True)
    page_name = Column(String(80), nullable=False)
    is_main_page = Column(Boolean, nullable=False, default=False)
    order_index = Column(Integer, nullable=False, default=0)

    project = relationship("Project", back_populates="page_refs")
    page = relationship("Page")

    __table_args__ = (
        UniqueConstraint("project_id", "page_name", name="uq_project_pages_name"),
        Index("idx_project_pages_project_id", "project_id"),
    )


class Page(Base):
    __tablename__ = "pages"

    id = Column(String, primary_key=True, default=_new_id)
    project_id = Column(String, ForeignKey("projects.id", ondelete="SET NULL"), nullable=True)
    page_name = Column(String(80), nullable=False, default="index")
    page_type = Column(String(10), nullable=False, default=PageType.MAIN.value)
    html = Column(Text, nullable=False)
    original_html = Column(Text, nullable=True)
    prompt = Column(Text, nullable=False, default="")
    original_prompt = Column(Text, nullable=False, default="")
    is_modification = Column(Boolean, nullable=False, default=False)
    section_index = Column(Integer, nullable=True)
    total_sections = Column(Integer, nullable=True)
    modification_history = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    project = relationship("Project", back_populates="pages")

    __table_args__ = (
        UniqueConstraint("project_id", "page_name", name="uq_pages_project_page_name"),
        Index("idx_pages_project_id", "project_id"),
    )

    @validates("page_name")
    def validate_page_name(self, _key: str, value: str) -> str:
        if value is None or not str(value).strip():
            raise ValueError("page_name is required")
        if "/" in value or len(value) > 80:
            raise ValueError("page_name must be a single path segment of 80 characters or fewer")
        return value

    @validates("page_type")
    def validate_page_type(self, _key: str, value: str) -> str:
        allowed = {item.value for item in PageType}
        if value not in allowed:
            raise ValueError(f"page_type must be one of {sorted(allowed)}")
        return value


__all__ = ["GenerationType", "PageType", "Project", "ProjectPage", "Page"]
