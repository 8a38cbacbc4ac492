from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import HTMLResponse
from sqlalchemy.orm import Session as DbSession

from ..db.models import Page as PageModel
from ..exceptions import NotFoundError, PersistenceError
from ..schemas.page import HistoryResponse, PageResponse, SaveRequest, SaveResponse
from ..services.page import PageService
from ..services.preview import PreviewNotFound, PreviewResolver
from ..services.project import ProjectService, page_preview_url
from .utils import get_db_session, raise_http_error

router = APIRouter(prefix="/api", tags=["pages"])

logger = logging.getLogger(__name__)


def _page_payload(record: PageModel) -> PageResponse:
    return PageResponse(
        id=record.id,
        project_id=record.project_id,
        page_name=record.page_name,
        page_type=record.page_type,
        html=record.html,
        prompt=record.prompt,
        original_prompt=record.original_prompt,
        is_modification=bool(record.is_modification),
        section_index=record.section_index,
        total_sections=record.total_sections,
        preview_url=page_preview_url(record),
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


@router.post("/save", response_model=SaveResponse)
def save_page(payload: SaveRequest, db: DbSession = Depends(get_db_session)) -> SaveResponse:
    if not payload.html or not payload.html.strip():
        raise HTTPException(status_code=400, detail="HTML content is required")
    service = ProjectService(db)
    try:
        result = service.save_generation(
            html=payload.html,
            prompt=payload.prompt,
            project_id=payload.project_id,
            page_name=payload.page_name,
            planned_pages=payload.planned_pages,
            generation_type=payload.generation_type,
            project_name=payload.project_name,
            description=payload.description,
            design_system=payload.design_system,
            page_id=payload.page_id,
            is_modification=payload.is_modification,
            modification_request=payload.modification_request,
            plan=payload.plan,
            section_index=payload.section_index,
            total_sections=payload.total_sections,
        )
    except (ValueError, NotFoundError, PersistenceError) as exc:
        raise_http_error(exc)
    return SaveResponse(**result.to_dict())


@router.get("/pages/{page_id}", response_model=PageResponse)
def get_page(page_id: str, db: DbSession = Depends(get_db_session)) -> PageResponse:
    record = PageService(db).get_by_id(page_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Page not found")
    return _page_payload(record)


@router.get("/history/{page_id}", response_model=HistoryResponse)
def get_history(page_id: str, db: DbSession = Depends(get_db_session)) -> HistoryResponse:
    service = PageService(db)
    record = service.get_by_id(page_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Page not found")
    return HistoryResponse(**service.history(record))


@router.get("/get-page/{project_id}/{page_name}", response_class=HTMLResponse)
def get_project_page(project_id: str, page_name: str, db: DbSession = Depends(get_db_session)):
    """Raw stored markup of a project page, resolved like the preview route."""
    resolver = PreviewResolver(db)
    try:
        result = resolver.resolve_page(project_id, page_name)
    except PreviewNotFound as exc:
        raise HTTPException(status_code=404, detail=exc.to_payload()) from exc
    return HTMLResponse(result.page.html)


__all__ = ["router"]
