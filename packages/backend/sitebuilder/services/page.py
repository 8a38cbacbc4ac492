from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session as DbSession

from ..db.models import Page, PageType

INDEX_PAGE = "index"


def _validate_page_name(page_name: Optional[str]) -> str:
    resolved = (page_name or "").strip()
    if not resolved:
        raise ValueError("page_name is required")
    if "/" in resolved:
        raise ValueError("page_name must not contain '/'")
    return resolved


def history_entry(request: str, plan: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {
        "request": request,
        "plan": plan,
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    }


class PageService:
    def __init__(self, db: DbSession) -> None:
        self.db = db

    def get_by_id(self, page_id: str) -> Optional[Page]:
        if not page_id:
            return None
        return self.db.get(Page, page_id)

    def get_by_name(self, project_id: str, page_name: str) -> Optional[Page]:
        """Exact, case-sensitive lookup of a page within a project."""
        return (
            self.db.query(Page)
            .filter(Page.project_id == project_id)
            .filter(Page.page_name == page_name)
            .first()
        )

    def list_by_project(self, project_id: str) -> List[Page]:
        return (
            self.db.query(Page)
            .filter(Page.project_id == project_id)
            .order_by(Page.created_at.asc())
            .all()
        )

    def create(
        self,
        *,
        html: str,
        prompt: str,
        project_id: Optional[str] = None,
        page_name: str = INDEX_PAGE,
        original_html: Optional[str] = None,
        section_index: Optional[int] = None,
        total_sections: Optional[int] = None,
    ) -> Page:
        resolved_name = _validate_page_name(page_name)
        if project_id and self.get_by_name(project_id, resolved_name) is not None:
            raise ValueError("page_name already exists for project")
        record = Page(
            project_id=project_id,
            page_name=resolved_name,
            page_type=PageType.MAIN.value if resolved_name.lower() == INDEX_PAGE else PageType.SUB.value,
            html=html,
            original_html=original_html if original_html is not None else html,
            prompt=prompt or "",
            original_prompt=prompt or "",
            is_modification=False,
            section_index=section_index,
            total_sections=total_sections,
            modification_history=[],
        )
        self.db.add(record)
        self.db.flush()
        return record

    def replace_html(
        self,
        page: Page,
        *,
        html: str,
        original_html: Optional[str] = None,
        prompt: Optional[str] = None,
        section_index: Optional[int] = None,
        total_sections: Optional[int] = None,
    ) -> Page:
        page.html = html
        page.original_html = original_html if original_html is not None else html
        if prompt is not None:
            page.prompt = prompt
        if section_index is not None:
            page.section_index = section_index
        if total_sections is not None:
            page.total_sections = total_sections
        page.updated_at = datetime.utcnow()
        self.db.add(page)
        return page

    def append_history(self, page: Page, request: str, plan: Optional[Dict[str, Any]] = None) -> Page:
        # JSON columns only persist on reassignment
        page.modification_history = [*(page.modification_history or []), history_entry(request, plan)]
        page.is_modification = True
        page.updated_at = datetime.utcnow()
        self.db.add(page)
        return page

    def history(self, page: Page) -> Dict[str, Any]:
        return {
            "id": page.id,
            "project_id": page.project_id,
            "page_name": page.page_name,
            "original_prompt": page.original_prompt,
            "created": page.created_at.isoformat() if page.created_at else None,
            "modifications": list(page.modification_history or []),
            "current_html": page.html,
        }


__all__ = ["PageService", "history_entry"]
