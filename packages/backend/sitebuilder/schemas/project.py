from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class PageDescriptorResponse(BaseModel):
    page_id: Optional[str] = None
    page_name: str
    is_main_page: bool = False
    url: str


class ProjectResponse(BaseModel):
    id: str
    name: str
    description: str = ""
    generation_type: str
    planned_pages: List[str] = Field(default_factory=list)
    design_system: Dict[str, Any] = Field(default_factory=dict)
    pages: List[PageDescriptorResponse] = Field(default_factory=list)
    preview_url: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


__all__ = ["PageDescriptorResponse", "ProjectResponse"]
