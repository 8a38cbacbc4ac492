from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class SaveRequest(BaseModel):
    html: Optional[str] = None
    prompt: str = ""
    project_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("project_id", "projectId"))
    page_name: Optional[str] = Field(default=None, validation_alias=AliasChoices("page_name", "pageName"))
    planned_pages: List[str] = Field(
        default_factory=list, validation_alias=AliasChoices("planned_pages", "plannedPages")
    )
    generation_type: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("generation_type", "generationType")
    )
    project_name: Optional[str] = Field(default=None, validation_alias=AliasChoices("project_name", "projectName"))
    description: str = ""
    design_system: Dict[str, Any] = Field(
        default_factory=dict, validation_alias=AliasChoices("design_system", "designSystem")
    )
    page_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("page_id", "pageId"))
    is_modification: bool = Field(
        default=False, validation_alias=AliasChoices("is_modification", "isModification")
    )
    modification_request: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("modification_request", "modificationRequest")
    )
    plan: Optional[Dict[str, Any]] = None
    section_index: Optional[int] = Field(default=None, validation_alias=AliasChoices("section_index", "sectionIndex"))
    total_sections: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("total_sections", "totalSections")
    )

    model_config = ConfigDict(populate_by_name=True)


class SaveResponse(BaseModel):
    id: str
    project_id: Optional[str] = None
    page_name: str
    preview_url: str


class PageResponse(BaseModel):
    id: str
    project_id: Optional[str] = None
    page_name: str
    page_type: str
    html: str
    prompt: str
    original_prompt: str
    is_modification: bool
    section_index: Optional[int] = None
    total_sections: Optional[int] = None
    preview_url: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class HistoryResponse(BaseModel):
    id: str
    project_id: Optional[str] = None
    page_name: str
    original_prompt: str
    created: Optional[str] = None
    modifications: List[Dict[str, Any]] = Field(default_factory=list)
    current_html: str


__all__ = ["SaveRequest", "SaveResponse", "PageResponse", "HistoryResponse"]
