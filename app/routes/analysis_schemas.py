"""Pydantic schemas for the analysis API endpoints."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from design_audit import settings
from design_audit.analysis.guidelines import ComponentType


class AnalyzeRequest(BaseModel):
    """Request for POST /api/analyze. Accepts snake_case or camelCase keys."""

    model_config = ConfigDict(populate_by_name=True)

    pc_file_key: str = Field(..., validation_alias=AliasChoices("pc_file_key", "pcFileKey"))
    sp_file_key: str = Field(..., validation_alias=AliasChoices("sp_file_key", "spFileKey"))
    pc_page_name: Optional[str] = Field(
        None, validation_alias=AliasChoices("pc_page_name", "pcPageName"),
    )
    sp_page_name: Optional[str] = Field(
        None, validation_alias=AliasChoices("sp_page_name", "spPageName"),
    )
    components: Optional[List[str]] = Field(
        None,
        description="Component types to analyse (defaults to all supported types)",
    )

    @field_validator("pc_file_key", "sp_file_key")
    @classmethod
    def validate_file_key(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("File keys are required")
        return value

    @field_validator("pc_page_name", "sp_page_name")
    @classmethod
    def blank_page_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        return value.strip()

    @field_validator("components")
    @classmethod
    def normalize_components(cls, value: Optional[List[str]]) -> List[str]:
        if not value:
            return list(settings.DEFAULT_COMPONENTS)
        return [c.strip().lower() for c in value if c and c.strip()] or list(settings.DEFAULT_COMPONENTS)

    def resolved_components(self) -> List[str]:
        return self.components or list(settings.DEFAULT_COMPONENTS)


class AnalyzeResponse(BaseModel):
    """Acknowledgment returned with 202 once a run is accepted."""
    run_id: str
    status: str = "running"
    message: str = "Analysis started"


class RunSummary(BaseModel):
    run_id: str
    status: str
    trigger: str
    pc_file_key: str
    sp_file_key: str
    pc_page_name: Optional[str] = None
    sp_page_name: Optional[str] = None
    components: List[str] = Field(default_factory=list)
    total_pc: int = 0
    total_sp: int = 0
    total_inconsistencies: int = 0
    average_pc_score: Optional[float] = None
    average_sp_score: Optional[float] = None
    error: Optional[str] = None
    created_at: str
    completed_at: Optional[str] = None


class RunListResponse(BaseModel):
    runs: List[RunSummary]
    total: int
    page: int
    page_size: int


class AnalysisResultItem(BaseModel):
    id: str
    component_type: str
    component_name: str
    node_id: Optional[str] = None
    device_type: str
    image_url: Optional[str] = None
    frame_name: Optional[str] = None
    page_name: Optional[str] = None
    detected_name: Optional[str] = None
    detected_device_type: Optional[str] = None
    placement: Optional[str] = None
    extracted_content: Optional[str] = None
    action_type: Optional[str] = None
    compliance_score: int = 0
    violations: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    flow_analysis: Optional[str] = None
    summary: Optional[str] = None


class InconsistencyItem(BaseModel):
    id: str
    component_type: str
    kind: str
    severity: str
    description: str
    recommendation: Optional[str] = None
    pc_component: Optional[str] = None
    sp_component: Optional[str] = None
    pc_content: Optional[str] = None
    sp_content: Optional[str] = None
    action_type: Optional[str] = None


class RunDetail(RunSummary):
    results: List[AnalysisResultItem] = Field(default_factory=list)
    inconsistencies: List[InconsistencyItem] = Field(default_factory=list)


# ─── Component search / guidelines ───────────────────────────────────


class ComponentSearchRequest(BaseModel):
    """Request for POST /api/components/search."""

    model_config = ConfigDict(populate_by_name=True)

    file_key: str = Field(..., validation_alias=AliasChoices("file_key", "fileKey"))
    component_type: str = Field(
        ..., validation_alias=AliasChoices("component_type", "componentType"),
    )
    page_name: Optional[str] = Field(
        None, validation_alias=AliasChoices("page_name", "pageName"),
    )

    @field_validator("file_key")
    @classmethod
    def validate_file_key(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("File key is required")
        return value

    @field_validator("component_type")
    @classmethod
    def validate_component_type(cls, value: str) -> str:
        if ComponentType.parse(value) is ComponentType.UNSUPPORTED:
            supported = ", ".join(t.value for t in ComponentType.supported())
            raise ValueError(f"Unsupported component type '{value}' (supported: {supported})")
        return ComponentType.parse(value).value


class ComponentSearchResponse(BaseModel):
    file_key: str
    component_type: str
    page_name: Optional[str] = None
    total: int
    components: List[Dict[str, Any]]


class GuidelineCheckRequest(BaseModel):
    """Attributes of one component to score against its guideline."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    extracted_content: Optional[str] = Field(
        None, validation_alias=AliasChoices("extracted_content", "extractedContent"),
    )
    type: Optional[str] = None
    placement: Optional[str] = None
    has_header: Optional[bool] = Field(
        None, validation_alias=AliasChoices("has_header", "hasHeader"),
    )
    has_icon: Optional[bool] = Field(
        None, validation_alias=AliasChoices("has_icon", "hasIcon"),
    )
    device_type: Optional[str] = Field(
        None, validation_alias=AliasChoices("device_type", "deviceType"),
    )
    height: Optional[Any] = None


class GuidelineCheckResponse(BaseModel):
    component_type: str
    score: int
    violations: List[str]
    recommendations: List[str]
