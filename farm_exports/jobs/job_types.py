"""
Export Job Types and Schemas

Defines enums, records and Pydantic request/response models for the export
job system.
"""

from enum import Enum
from typing import Any, Dict, List, Optional
from datetime import datetime, timedelta, timezone
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


# Maximum number of retries before a job is marked FAILED
RETRY_BUDGET = 3


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExportFormat(str, Enum):
    """Output formats supported by the generators."""
    PDF = "PDF"
    EXCEL = "EXCEL"
    CSV = "CSV"


class ExportStatus(str, Enum):
    """Status of an export job."""
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


TERMINAL_STATUSES = (ExportStatus.COMPLETED, ExportStatus.FAILED)

# Edges the worker loop may take; anything else is a bug
ALLOWED_TRANSITIONS: Dict[ExportStatus, List[ExportStatus]] = {
    ExportStatus.PENDING: [ExportStatus.PROCESSING, ExportStatus.FAILED],
    ExportStatus.PROCESSING: [ExportStatus.COMPLETED, ExportStatus.PENDING, ExportStatus.FAILED],
    ExportStatus.COMPLETED: [],
    ExportStatus.FAILED: [ExportStatus.PENDING],
}

FILE_EXTENSIONS: Dict[ExportFormat, str] = {
    ExportFormat.PDF: "pdf",
    ExportFormat.EXCEL: "xlsx",
    ExportFormat.CSV: "csv",
}

MIME_TYPES: Dict[ExportFormat, str] = {
    ExportFormat.PDF: "application/pdf",
    ExportFormat.EXCEL: "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ExportFormat.CSV: "text/csv",
}


def is_valid_transition(current: ExportStatus, new: ExportStatus) -> bool:
    return new in ALLOWED_TRANSITIONS.get(current, [])


# ============================================================================
# Records
# ============================================================================

class DateRange(BaseModel):
    """Inclusive reporting period as ISO-8601 strings."""
    model_config = ConfigDict(populate_by_name=True)

    from_: Optional[str] = Field(default=None, alias="from")
    to: Optional[str] = None


class ReportParameters(BaseModel):
    """Parameters forwarded to the report data provider."""
    model_config = ConfigDict(populate_by_name=True)

    date_range: Optional[DateRange] = Field(default=None, alias="dateRange")
    filters: Dict[str, Any] = Field(default_factory=dict)


class ExportJob(BaseModel):
    """One request to produce an exported file from a report template."""
    id: str = Field(default_factory=lambda: str(uuid4()))
    owner: str
    template_id: str
    format: ExportFormat
    status: ExportStatus = ExportStatus.PENDING
    parameters: ReportParameters = Field(default_factory=ReportParameters)
    format_options: Dict[str, Any] = Field(default_factory=dict)
    progress: int = Field(default=0, ge=0, le=100)
    attempt: int = Field(default=0, ge=0, le=RETRY_BUDGET)
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or utcnow())


class OutputFile(BaseModel):
    """A generated artifact owned by exactly one job."""
    id: str = Field(default_factory=lambda: str(uuid4()))
    job_id: str
    file_name: str
    path: str
    size_bytes: int = Field(ge=0)
    mime_type: str
    download_count: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    last_downloaded_at: Optional[datetime] = None


def new_job(
    owner: str,
    template_id: str,
    format: ExportFormat,
    parameters: Optional[ReportParameters] = None,
    format_options: Optional[Dict[str, Any]] = None,
    retention_hours: int = 24,
) -> ExportJob:
    """Build a fresh PENDING job with its expiry set from the retention window."""
    created_at = utcnow()
    return ExportJob(
        owner=owner,
        template_id=template_id,
        format=format,
        parameters=parameters or ReportParameters(),
        format_options=format_options or {},
        created_at=created_at,
        expires_at=created_at + timedelta(hours=retention_hours),
    )


# ============================================================================
# Format options
# ============================================================================

class PDFOptions(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    page_size: str = Field(default="A4", alias="pageSize")
    orientation: str = "portrait"
    include_charts: bool = Field(default=True, alias="includeCharts")
    file_name: Optional[str] = Field(default=None, alias="fileName")


class ExcelOptions(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    include_charts: bool = Field(default=True, alias="includeCharts")
    file_name: Optional[str] = Field(default=None, alias="fileName")


class CSVOptions(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    encoding: str = "utf8"
    separator: str = ","
    include_headers: bool = Field(default=True, alias="includeHeaders")
    file_name: Optional[str] = Field(default=None, alias="fileName")


SUPPORTED_PAGE_SIZES = ["A4", "A3", "Letter", "Legal"]
SUPPORTED_ORIENTATIONS = ["portrait", "landscape"]
SUPPORTED_ENCODINGS = ["utf8", "latin1", "ascii"]
SUPPORTED_SEPARATORS = [",", ";", "\t"]


# ============================================================================
# API Schemas
# ============================================================================

class CreateExportRequest(BaseModel):
    """Body of an enqueue request."""
    model_config = ConfigDict(populate_by_name=True)

    template_id: str = Field(alias="templateId", min_length=1)
    format: ExportFormat
    parameters: ReportParameters = Field(default_factory=ReportParameters)
    format_options: Dict[str, Any] = Field(default_factory=dict, alias="formatOptions")


class ExportStartResponse(BaseModel):
    job_id: str
    status: ExportStatus
    progress: int


class ExportStatusResponse(BaseModel):
    id: str
    template_id: str
    format: ExportFormat
    status: ExportStatus
    progress: int
    attempt: int
    error_message: Optional[str] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    files: List[OutputFile] = Field(default_factory=list)


class RecentActivity(BaseModel):
    last_24h: int = 0
    last_7d: int = 0
    last_30d: int = 0


class ExportStats(BaseModel):
    total_jobs: int = 0
    completed_jobs: int = 0
    failed_jobs: int = 0
    pending_jobs: int = 0
    processing_jobs: int = 0
    total_downloads: int = 0
    total_file_size: int = 0
    by_format: Dict[str, int] = Field(default_factory=dict)
    by_template: Dict[str, int] = Field(default_factory=dict)
    recent_activity: RecentActivity = Field(default_factory=RecentActivity)
