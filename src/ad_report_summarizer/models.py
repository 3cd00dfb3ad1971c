"""Pydantic models for API requests and responses."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ad_report_summarizer.services.kpi_extractor import KpiRecord
from ad_report_summarizer.services.session_manager import ReportSession
from ad_report_summarizer.services.summary_generator import DEFAULT_GOAL, AiContext
from ad_report_summarizer.utils.exceptions import ErrorCode


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str
    timestamp: str
    version: str


class ErrorDetail(BaseModel):
    """Error detail model for API error responses."""

    detail: str = Field(..., description="Human-readable error message")
    error_code: str | None = Field(
        default=None,
        description="Machine-readable error code (e.g., 'E4009')",
    )
    details: dict[str, Any] | None = Field(
        default=None,
        description="Additional error details for debugging",
    )
    request_id: str | None = Field(
        default=None,
        description="Request ID for error correlation",
    )

    @classmethod
    def from_error_code(
        cls,
        error_code: ErrorCode,
        detail: str,
        details: dict[str, Any] | None = None,
        request_id: str | None = None,
    ) -> "ErrorDetail":
        return cls(
            detail=detail,
            error_code=error_code.value,
            details=details,
            request_id=request_id,
        )


# =============================================================================
# Key issuance
# =============================================================================


class ApiKeyRequest(BaseModel):
    """Body of a key-issuance request."""

    model_config = ConfigDict(populate_by_name=True)

    id_token: str | None = Field(default=None, alias="idToken")


class ApiKeyResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    api_key: str = Field(..., alias="apiKey")


# =============================================================================
# Sessions
# =============================================================================


class KpiRecordModel(BaseModel):
    """Extracted KPIs as display strings."""

    achievement: str = Field(default="", description="目標達成率")
    total_conversions: str = Field(default="", description="当月合計CV")
    conversion_rate: str = Field(default="", description="当月CVR")
    cost_per_acquisition: str = Field(default="", description="当月CPA")
    click_through_rate: str = Field(default="", description="当月CTR")
    goal_conversions: str = Field(default="", description="目標CV数")
    conversion_breakdown: str = Field(default="", description="CV内訳")

    @classmethod
    def from_record(cls, record: KpiRecord) -> "KpiRecordModel":
        return cls(**record.to_dict())


class ExtractionLogModel(BaseModel):
    label: str
    outcome: str
    address: str | None = None
    value: str = ""
    message: str


class AiContextModel(BaseModel):
    """Free-text context passed through to the summary prompt."""

    goal: str = DEFAULT_GOAL
    issues: str = ""
    tasks: str = ""

    def to_context(self) -> AiContext:
        return AiContext(goal=self.goal, issues=self.issues, tasks=self.tasks)

    @classmethod
    def from_context(cls, context: AiContext) -> "AiContextModel":
        return cls(goal=context.goal, issues=context.issues, tasks=context.tasks)


class ContextUpdateRequest(BaseModel):
    """Set the session context directly or copy it from a saved preset."""

    preset_id: str | None = None
    context: AiContextModel | None = None


class SessionResponse(BaseModel):
    """State of a report session."""

    session_id: str
    created_at: datetime
    updated_at: datetime
    revision: int
    filename: str | None = None
    sheet_names: list[str] = Field(default_factory=list)
    active_sheet: str | None = None
    kpis: KpiRecordModel | None = None
    extraction_log: list[ExtractionLogModel] = Field(default_factory=list)
    missing_fields: list[str] = Field(default_factory=list)
    rejection_reason: str | None = None
    context: AiContextModel
    summary: str | None = None

    @classmethod
    def from_session(cls, session: ReportSession) -> "SessionResponse":
        extraction = session.extraction
        return cls(
            session_id=session.session_id,
            created_at=session.created_at,
            updated_at=session.updated_at,
            revision=session.revision,
            filename=session.filename,
            sheet_names=session.workbook.sheet_names if session.workbook else [],
            active_sheet=session.active_sheet,
            kpis=KpiRecordModel.from_record(extraction.record) if extraction else None,
            extraction_log=[
                ExtractionLogModel(**entry.to_dict()) for entry in extraction.log
            ]
            if extraction
            else [],
            missing_fields=list(session.quality.missing_fields)
            if session.quality
            else [],
            rejection_reason=session.rejection_reason,
            context=AiContextModel.from_context(session.context),
            summary=session.summary,
        )


class ActiveSheetRequest(BaseModel):
    sheet_name: str


class SheetPreviewResponse(BaseModel):
    sheet_name: str
    columns: list[str]
    first_row: int = Field(..., description="1-based row number of rows[0]")
    rows: list[list[str]]


class SummaryResponse(BaseModel):
    session_id: str
    revision: int
    summary: str
    model_used: str
    attempts: int
    processing_time_seconds: float


# =============================================================================
# Customers and presets
# =============================================================================


class CustomerCreate(BaseModel):
    name: str


class CustomerResponse(BaseModel):
    id: str
    name: str
    sort_order: int


class PresetCreate(BaseModel):
    name: str
    goal: str = ""
    issues: str = ""
    tasks: str = ""


class PresetUpdate(BaseModel):
    name: str | None = None
    goal: str | None = None
    issues: str | None = None
    tasks: str | None = None


class PresetResponse(BaseModel):
    id: str
    customer_id: str
    name: str
    goal: str
    issues: str
    tasks: str
    sort_order: int


class ReorderRequest(BaseModel):
    ids: list[str] = Field(..., description="Record ids in their new order")
