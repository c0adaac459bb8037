"""
Farm Exports Jobs Framework

Export job records, the error taxonomy and job persistence.

Key components:
- job_types: Job records, enums and API schemas
- errors: Failure taxonomy with the retryable flag
- job_store: In-memory and Supabase job/file stores
- job_queue: FIFO queue and worker loop (import from the module directly)
- job_manager: Request validation and per-owner limits (import from the module directly)
- utils: Backoff, background loops and formatting helpers
"""

from farm_exports.jobs.job_types import (
    RETRY_BUDGET,
    ExportFormat,
    ExportStatus,
    ExportJob,
    OutputFile,
    ReportParameters,
    CreateExportRequest,
)

from farm_exports.jobs.errors import (
    ExportError,
    ValidationError,
    JobLimitError,
    JobNotFoundError,
    FileExpiredError,
    DataFetchError,
    GenerationError,
    FileSizeError,
    StoreError,
)

from farm_exports.jobs.job_store import (
    JobStore,
    InMemoryJobStore,
    SupabaseJobStore,
)

__all__ = [
    # Types
    "RETRY_BUDGET",
    "ExportFormat",
    "ExportStatus",
    "ExportJob",
    "OutputFile",
    "ReportParameters",
    "CreateExportRequest",
    # Errors
    "ExportError",
    "ValidationError",
    "JobLimitError",
    "JobNotFoundError",
    "FileExpiredError",
    "DataFetchError",
    "GenerationError",
    "FileSizeError",
    "StoreError",
    # Store
    "JobStore",
    "InMemoryJobStore",
    "SupabaseJobStore",
]
