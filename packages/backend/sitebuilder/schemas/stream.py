from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class StreamRequest(BaseModel):
    """Body (POST) or query (GET) of ``/api/stream``.

    Missing messages are not rejected here; the endpoint reports them as an
    error frame on the stream.
    """

    message: Optional[str] = Field(default=None, validation_alias=AliasChoices("message", "prompt"))
    request_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("request_id", "requestId"))
    generation_type: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("generation_type", "generationType")
    )
    strategy: Optional[str] = None
    page_names: List[str] = Field(default_factory=list, validation_alias=AliasChoices("page_names", "pageNames"))
    total_pages: Optional[int] = Field(
        default=None, ge=1, validation_alias=AliasChoices("total_pages", "totalPages")
    )
    stage_index: int = Field(default=0, ge=0, validation_alias=AliasChoices("stage_index", "stageIndex"))
    accumulated_html: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("accumulated_html", "accumulatedHtml")
    )
    target_page: Optional[str] = Field(default=None, validation_alias=AliasChoices("target_page", "targetPage"))
    artifacts: Dict[str, str] = Field(default_factory=dict)
    is_modification: bool = Field(
        default=False, validation_alias=AliasChoices("is_modification", "isModification")
    )
    current_html: Optional[str] = Field(default=None, validation_alias=AliasChoices("current_html", "currentHtml"))
    project_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("project_id", "projectId"))
    page_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("page_id", "pageId"))
    auto_save: Optional[bool] = Field(default=None, validation_alias=AliasChoices("auto_save", "autoSave"))

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("page_names", mode="before")
    @classmethod
    def split_page_names(cls, value: object) -> object:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value or []

    @property
    def requested_strategy(self) -> Optional[str]:
        return self.strategy or self.generation_type


class CancelResponse(BaseModel):
    request_id: str
    cancelled: bool


__all__ = ["StreamRequest", "CancelResponse"]
