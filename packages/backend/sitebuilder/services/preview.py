from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session as DbSession

from ..config import Settings, get_settings
from ..db.models import Page, Project
from ..exceptions import NotFoundError
from ..utils.html import inject_preview_metadata
from ..utils.rewrite import canonical_page_url, rewrite_references
from .page import INDEX_PAGE, PageService
from .project import ProjectService

logger = logging.getLogger(__name__)

CONTENT_SECURITY_POLICY = "; ".join(
    [
        "default-src 'self'",
        "img-src 'self' data: blob: https:",
        "style-src 'self' 'unsafe-inline' https://fonts.googleapis.com https://cdn.jsdelivr.net https://cdnjs.cloudflare.com",
        "font-src 'self' data: https://fonts.gstatic.com https://cdn.jsdelivr.net https://cdnjs.cloudflare.com",
        "script-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net https://cdnjs.cloudflare.com https://unpkg.com https://cdn.tailwindcss.com",
        "connect-src 'self'",
    ]
)


@dataclass(frozen=True)
class PageRef:
    """Descriptor variant: a stored page reference or a legacy name-only entry."""

    kind: str
    page_name: str
    project_id: Optional[str] = None
    page_id: Optional[str] = None

    WITH_REFERENCE = "with_reference"
    LEGACY_BY_NAME = "legacy_by_name"

    @classmethod
    def with_reference(cls, page_id: str, *, page_name: str, project_id: Optional[str] = None) -> "PageRef":
        return cls(kind=cls.WITH_REFERENCE, page_name=page_name, project_id=project_id, page_id=page_id)

    @classmethod
    def legacy_by_name(cls, project_id: str, page_name: str) -> "PageRef":
        return cls(kind=cls.LEGACY_BY_NAME, page_name=page_name, project_id=project_id)


class PreviewNotFound(NotFoundError):
    """No page for the request; carries the project's planned pages."""

    def __init__(self, message: str, *, project: Optional[Project] = None, page_name: Optional[str] = None) -> None:
        super().__init__(message)
        self.project = project
        self.page_name = page_name

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        if self.project is not None:
            payload["project_id"] = self.project.id
            payload["requested_page"] = self.page_name
            payload["available_pages"] = [
                {"page_name": name, "url": canonical_page_url(self.project.id, name)}
                for name in (self.project.planned_pages or [])
            ]
        return payload


@dataclass
class PreviewResult:
    html: str
    page: Page
    project: Optional[Project] = None
    headers: Dict[str, str] = field(default_factory=dict)


class PreviewResolver:
    def __init__(
        self,
        db: DbSession,
        *,
        settings: Optional[Settings] = None,
        log: Optional[logging.Logger] = None,
    ) -> None:
        self.db = db
        self.settings = settings or get_settings()
        self.pages = PageService(db)
        self.projects = ProjectService(db, settings=self.settings, log=log)
        self._log = log or logger

    def resolve_ref(self, ref: PageRef) -> Optional[Page]:
        if ref.kind == PageRef.WITH_REFERENCE:
            page = self.pages.get_by_id(ref.page_id or "")
            if page is not None:
                return page
            # Dangling reference; fall back to the name within the project.
            if ref.project_id:
                return self.pages.get_by_name(ref.project_id, ref.page_name)
            return None
        if ref.kind == PageRef.LEGACY_BY_NAME:
            return self.pages.get_by_name(ref.project_id or "", ref.page_name)
        raise ValueError(f"Unknown page reference kind: {ref.kind}")

    def descriptor_ref(self, project: Project, page_name: str) -> Optional[PageRef]:
        """Exact, case-sensitive match against the project's descriptors."""
        for descriptor in self.projects.list_descriptors(project.id):
            if descriptor.page_name != page_name:
                continue
            if descriptor.page_id:
                return PageRef.with_reference(descriptor.page_id, page_name=page_name, project_id=project.id)
            return PageRef.legacy_by_name(project.id, page_name)
        if self.pages.get_by_name(project.id, page_name) is not None:
            return PageRef.legacy_by_name(project.id, page_name)
        return None

    def resolve(self, identifier: str) -> PreviewResult:
        """``/preview/{id}``: a page id first, then a project id (its index page)."""
        page = self.pages.get_by_id(identifier)
        if page is not None:
            project = self.projects.get_by_id(page.project_id) if page.project_id else None
            return self.render(page, project)

        project = self.projects.get_by_id(identifier)
        if project is None:
            raise PreviewNotFound(f"No page or project with id {identifier}")
        return self.resolve_page(project.id, INDEX_PAGE)

    def resolve_page(self, project_id: str, page_name: str) -> PreviewResult:
        project = self.projects.get_by_id(project_id)
        if project is None:
            raise PreviewNotFound(f"Project not found: {project_id}")

        name = (page_name or INDEX_PAGE).strip() or INDEX_PAGE
        if name.lower().endswith(".html"):
            name = name[: -len(".html")]

        ref = self.descriptor_ref(project, name)
        page = self.resolve_ref(ref) if ref is not None else None
        if page is None:
            self._log.info("Preview page not found: %s/%s", project_id, name)
            raise PreviewNotFound(
                f"Page '{name}' not found in project {project_id}",
                project=project,
                page_name=name,
            )
        return self.render(page, project)

    def render(self, page: Page, project: Optional[Project]) -> PreviewResult:
        html = page.html or ""
        if project is not None:
            html = rewrite_references(
                html,
                project.id,
                page.page_name,
                project.planned_pages or [],
                placeholder_base=self.settings.placeholder_image_base,
                log=self._log,
            )
        html = inject_preview_metadata(
            html,
            project_id=project.id if project is not None else None,
            project_name=project.name if project is not None else None,
            page_name=page.page_name,
        )
        return PreviewResult(
            html=html,
            page=page,
            project=project,
            headers={"Content-Security-Policy": CONTENT_SECURITY_POLICY},
        )


__all__ = ["CONTENT_SECURITY_POLICY", "PageRef", "PreviewNotFound", "PreviewResolver", "PreviewResult"]
