from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session as DbSession

from ..schemas.project import ProjectResponse
from ..services.project import ProjectService
from .utils import get_db_session

router = APIRouter(prefix="/api/projects", tags=["projects"])


@router.get("/{project_id}", response_model=ProjectResponse)
def get_project(project_id: str, db: DbSession = Depends(get_db_session)) -> ProjectResponse:
    service = ProjectService(db)
    project = service.get_by_id(project_id)
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return ProjectResponse(**service.describe(project))


__all__ = ["router"]
