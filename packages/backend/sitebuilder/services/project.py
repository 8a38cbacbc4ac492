from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session as DbSession

from ..config import Settings, get_settings
from ..db.models import GenerationType, Page, Project, ProjectPage
from ..db.utils import savepoint
from ..exceptions import NotFoundError
from ..planner.base import GenerationStrategy, normalize_page_name, normalize_planned_pages, parse_strategy
from ..utils.rewrite import build_name_lookup, canonical_page_url, rewrite_references
from .page import INDEX_PAGE, PageService

logger = logging.getLogger(__name__)


@dataclass
class SaveResult:
    page: Page
    project: Optional[Project]
    preview_url: str
    created: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.page.id,
            "project_id": self.project.id if self.project is not None else None,
            "page_name": self.page.page_name,
            "preview_url": self.preview_url,
        }


def resolve_generation_type(value: object) -> str:
    strategy = parse_strategy(value)
    if strategy is None or strategy == GenerationStrategy.TWO_STAGE:
        return GenerationType.SINGLE.value
    return strategy.value


def page_preview_url(page: Page) -> str:
    if page.project_id:
        return canonical_page_url(page.project_id, page.page_name)
    return f"/preview/{page.id}"


class ProjectService:
    """Persists generated pages and the projects that group them."""

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
        self._log = log or logger

    def get_by_id(self, project_id: str) -> Optional[Project]:
        if not project_id:
            return None
        return self.db.get(Project, project_id)

    def get_descriptor(self, project_id: str, page_name: str) -> Optional[ProjectPage]:
        return (
            self.db.query(ProjectPage)
            .filter(ProjectPage.project_id == project_id)
            .filter(ProjectPage.page_name == page_name)
            .first()
        )

    def create_project(
        self,
        *,
        project_id: Optional[str] = None,
        name: str = "",
        description: str = "",
        generation_type: object = None,
        planned_pages: Optional[Sequence[object]] = None,
        design_system: Optional[Dict[str, Any]] = None,
    ) -> Project:
        pages, warnings = normalize_planned_pages(list(planned_pages or []))
        for warning in warnings:
            self._log.warning("Planned pages for new project: %s", warning)
        project = Project(
            name=(name or "").strip() or "Untitled site",
            description=description or "",
            generation_type=resolve_generation_type(generation_type),
            planned_pages=[page.page_name for page in pages],
            design_system=dict(design_system or {}),
        )
        if project_id:
            project.id = project_id
        self.db.add(project)
        self.db.flush()
        return project

    def resolve_planned_name(self, project: Project, page_name: Optional[str]) -> str:
        """Map a requested page name onto its declared casing in planned_pages."""
        requested = normalize_page_name(page_name) or INDEX_PAGE
        lookup = build_name_lookup(project.planned_pages or [])
        declared = lookup.get(requested.lower())
        if declared is None:
            raise ValueError(
                f"page '{requested}' is not one of the planned pages: {', '.join(project.planned_pages or [])}"
            )
        return declared

    def upsert_descriptor(self, project: Project, page: Page) -> ProjectPage:
        """Point the descriptor for page.page_name at page, creating it if needed."""
        descriptor = self.get_descriptor(project.id, page.page_name)
        if descriptor is None:
            planned = list(project.planned_pages or [])
            order_index = planned.index(page.page_name) if page.page_name in planned else len(planned)
            descriptor = ProjectPage(
                project_id=project.id,
                page_id=page.id,
                page_name=page.page_name,
                is_main_page=page.page_name.lower() == INDEX_PAGE,
                order_index=order_index,
            )
        else:
            descriptor.page_id = page.id
        self.db.add(descriptor)
        project.updated_at = datetime.utcnow()
        return descriptor

    def rewrite_for_project(self, html: str, project: Project, page_name: str) -> str:
        return rewrite_references(
            html,
            project.id,
            page_name,
            project.planned_pages or [],
            placeholder_base=self.settings.placeholder_image_base,
            log=self._log,
        )

    def save_generation(
        self,
        *,
        html: str,
        prompt: str = "",
        project_id: Optional[str] = None,
        page_name: Optional[str] = None,
        planned_pages: Optional[Sequence[object]] = None,
        generation_type: object = None,
        project_name: Optional[str] = None,
        description: str = "",
        design_system: Optional[Dict[str, Any]] = None,
        page_id: Optional[str] = None,
        is_modification: bool = False,
        modification_request: Optional[str] = None,
        plan: Optional[Dict[str, Any]] = None,
        section_index: Optional[int] = None,
        total_sections: Optional[int] = None,
    ) -> SaveResult:
        """Persist one generated page atomically.

        Modification saves replace the html of an existing page and append
        to its history. Other saves create the project on first use, check
        the page name against planned_pages and insert or replace the page.
        Links are rewritten before storing; original_html keeps the raw
        markup. Database failures raise PersistenceError with nothing
        written.
        """
        if not isinstance(html, str) or not html.strip():
            raise ValueError("html is required")

        with savepoint(self.db):
            if is_modification and page_id:
                result = self._save_modification(
                    html=html,
                    page_id=page_id,
                    request=modification_request or prompt,
                    plan=plan,
                )
            else:
                result = self._save_page(
                    html=html,
                    prompt=prompt,
                    project_id=project_id,
                    page_name=page_name,
                    planned_pages=planned_pages,
                    generation_type=generation_type,
                    project_name=project_name or prompt[:60],
                    description=description,
                    design_system=design_system,
                    section_index=section_index,
                    total_sections=total_sections,
                )

        self._log.info(
            "Saved page",
            extra={"data": {**result.to_dict(), "created": result.created, "modification": bool(is_modification)}},
        )
        return result

    def _save_modification(
        self,
        *,
        html: str,
        page_id: str,
        request: str,
        plan: Optional[Dict[str, Any]],
    ) -> SaveResult:
        page = self.pages.get_by_id(page_id)
        if page is None:
            raise NotFoundError(f"Page not found: {page_id}")
        project = self.get_by_id(page.project_id) if page.project_id else None
        stored = self.rewrite_for_project(html, project, page.page_name) if project is not None else html
        self.pages.replace_html(page, html=stored, original_html=html)
        self.pages.append_history(page, request, plan)
        if project is not None:
            project.updated_at = datetime.utcnow()
        return SaveResult(page=page, project=project, preview_url=page_preview_url(page), created=False)

    def _save_page(
        self,
        *,
        html: str,
        prompt: str,
        project_id: Optional[str],
        page_name: Optional[str],
        planned_pages: Optional[Sequence[object]],
        generation_type: object,
        project_name: str,
        description: str,
        design_system: Optional[Dict[str, Any]],
        section_index: Optional[int],
        total_sections: Optional[int],
    ) -> SaveResult:
        project = self.get_by_id(project_id) if project_id else None
        if project is None:
            seeded = list(planned_pages or [])
            if not seeded:
                seeded = [INDEX_PAGE]
                if page_name and page_name.strip().lower() != INDEX_PAGE:
                    seeded.append(page_name)
            project = self.create_project(
                project_id=project_id,
                name=project_name,
                description=description,
                generation_type=generation_type,
                planned_pages=seeded,
                design_system=design_system,
            )

        resolved_name = self.resolve_planned_name(project, page_name)
        stored = self.rewrite_for_project(html, project, resolved_name)

        page = self.pages.get_by_name(project.id, resolved_name)
        created = page is None
        if page is None:
            page = self.pages.create(
                html=stored,
                original_html=html,
                prompt=prompt,
                project_id=project.id,
                page_name=resolved_name,
                section_index=section_index,
                total_sections=total_sections,
            )
        else:
            self.pages.replace_html(
                page,
                html=stored,
                original_html=html,
                prompt=prompt or None,
                section_index=section_index,
                total_sections=total_sections,
            )
        self.upsert_descriptor(project, page)
        return SaveResult(page=page, project=project, preview_url=page_preview_url(page), created=created)

    def list_descriptors(self, project_id: str) -> List[ProjectPage]:
        return (
            self.db.query(ProjectPage)
            .filter(ProjectPage.project_id == project_id)
            .order_by(ProjectPage.order_index.asc(), ProjectPage.id.asc())
            .all()
        )

    def page_descriptors(self, project: Project) -> List[Dict[str, Any]]:
        return [
            {
                "page_id": descriptor.page_id,
                "page_name": descriptor.page_name,
                "is_main_page": bool(descriptor.is_main_page),
                "url": canonical_page_url(project.id, descriptor.page_name),
            }
            for descriptor in self.list_descriptors(project.id)
        ]

    def describe(self, project: Project) -> Dict[str, Any]:
        return {
            "id": project.id,
            "name": project.name,
            "description": project.description,
            "generation_type": project.generation_type,
            "planned_pages": list(project.planned_pages or []),
            "design_system": dict(project.design_system or {}),
            "pages": self.page_descriptors(project),
            "preview_url": canonical_page_url(project.id, INDEX_PAGE),
            "created_at": project.created_at.isoformat() if project.created_at else None,
            "updated_at": project.updated_at.isoformat() if project.updated_at else None,
        }


__all__ = ["ProjectService", "SaveResult", "page_preview_url", "resolve_generation_type"]
