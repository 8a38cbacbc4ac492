from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse, JSONResponse
from sqlalchemy.orm import Session as DbSession

from ..services.preview import PreviewNotFound, PreviewResolver, PreviewResult
from .utils import get_db_session

router = APIRouter(tags=["preview"])

logger = logging.getLogger(__name__)


def _html_response(result: PreviewResult) -> HTMLResponse:
    return HTMLResponse(result.html, headers=result.headers)


def _not_found(exc: PreviewNotFound) -> JSONResponse:
    return JSONResponse(status_code=404, content=exc.to_payload())


@router.get("/preview/{identifier}")
def preview(identifier: str, db: DbSession = Depends(get_db_session)):
    try:
        return _html_response(PreviewResolver(db).resolve(identifier))
    except PreviewNotFound as exc:
        return _not_found(exc)


@router.get("/preview/{project_id}/{page_name}")
def preview_page(project_id: str, page_name: str, db: DbSession = Depends(get_db_session)):
    try:
        return _html_response(PreviewResolver(db).resolve_page(project_id, page_name))
    except PreviewNotFound as exc:
        return _not_found(exc)


__all__ = ["router"]
