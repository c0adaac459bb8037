"""
Export API Routes

Provides endpoints for:
- Requesting a new export
- Checking export status and downloading files
- Cancelling and retrying exports
- Queue, template and usage statistics
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from fastapi.responses import FileResponse
from pydantic import BaseModel

from farm_exports.jobs.errors import (
    ExportError, FileExpiredError, JobLimitError, JobNotFoundError, ValidationError,
)
from farm_exports.jobs.job_types import (
    CreateExportRequest, ExportJob, ExportStartResponse, ExportStats,
    ExportStatus, ExportStatusResponse,
)
from farm_exports.jobs.utils import create_error_response
from farm_exports.reports.data_types import REPORT_TEMPLATES, ReportTemplate
from farm_exports.services import ExportServices
from farm_exports.stats import get_stats

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/exports", tags=["exports"])


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_services(request: Request) -> ExportServices:
    services = getattr(request.app.state, "exports", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Export service is not running")
    return services


async def get_owner(x_user_id: Optional[str] = Header(None)) -> str:
    """Owner of the request; anonymous callers share one quota."""
    return (x_user_id or "").strip() or "anonymous"


def raise_http_error(error: ExportError):
    """Map pipeline errors onto HTTP status codes."""
    if isinstance(error, JobLimitError):
        status_code = 429
    elif isinstance(error, ValidationError):
        status_code = 400
    elif isinstance(error, JobNotFoundError):
        status_code = 404
    elif isinstance(error, FileExpiredError):
        status_code = 410
    else:
        status_code = 500
    raise HTTPException(
        status_code=status_code,
        detail=create_error_response(error.error_type, error.message),
    )


# =============================================================================
# REQUEST/RESPONSE SCHEMAS
# =============================================================================

class JobActionResponse(BaseModel):
    success: bool
    message: str
    job_id: str
    status: ExportStatus


class ExportListItem(BaseModel):
    id: str
    template_id: str
    format: str
    status: ExportStatus
    progress: int
    error_message: Optional[str] = None
    created_at: datetime


def _list_item(job: ExportJob) -> ExportListItem:
    return ExportListItem(
        id=job.id,
        template_id=job.template_id,
        format=job.format.value,
        status=job.status,
        progress=job.progress,
        error_message=job.error_message,
        created_at=job.created_at,
    )


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.post("", response_model=ExportStartResponse, status_code=202)
async def create_export(
    request: CreateExportRequest,
    owner: str = Depends(get_owner),
    services: ExportServices = Depends(get_services),
):
    """
    Queue a new export.

    Returns immediately with the job id; the worker loop generates the file.
    """
    try:
        job = services.manager.create_job(owner, request)
    except ExportError as e:
        logger.warning(f"Rejected export request from {owner}: {e.message}")
        raise_http_error(e)

    return ExportStartResponse(job_id=job.id, status=job.status, progress=job.progress)


@router.get("", response_model=List[ExportListItem])
async def list_exports(
    status: Optional[ExportStatus] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    owner: str = Depends(get_owner),
    services: ExportServices = Depends(get_services),
):
    jobs = services.manager.list_jobs(owner=owner, status=status, limit=limit)
    return [_list_item(job) for job in jobs]


@router.get("/stats", response_model=ExportStats)
async def export_stats(services: ExportServices = Depends(get_services)):
    return get_stats(services.store)


@router.get("/queue")
async def queue_stats(services: ExportServices = Depends(get_services)) -> Dict[str, Any]:
    stats = services.queue.get_queue_stats()
    stats["cleanup"] = services.cleanup.get_metrics()
    return stats


@router.get("/templates", response_model=List[ReportTemplate])
async def list_templates():
    return list(REPORT_TEMPLATES.values())


@router.get("/files/{file_id}/download")
async def download_file(file_id: str, services: ExportServices = Depends(get_services)):
    """Stream a generated file with its recorded MIME type and name."""
    try:
        output_file, _ = services.manager.open_download(file_id)
    except ExportError as e:
        raise_http_error(e)

    return FileResponse(
        path=output_file.path,
        media_type=output_file.mime_type,
        filename=output_file.file_name,
    )


@router.get("/{job_id}", response_model=ExportStatusResponse)
async def get_export_status(job_id: str, services: ExportServices = Depends(get_services)):
    try:
        return services.manager.get_job_status(job_id)
    except ExportError as e:
        raise_http_error(e)


@router.post("/{job_id}/cancel", response_model=JobActionResponse)
async def cancel_export(job_id: str, services: ExportServices = Depends(get_services)):
    try:
        job = services.manager.cancel_job(job_id)
    except ExportError as e:
        raise_http_error(e)

    return JobActionResponse(success=True, message="Export cancelled", job_id=job.id, status=job.status)


@router.post("/{job_id}/retry", response_model=JobActionResponse)
async def retry_export(job_id: str, services: ExportServices = Depends(get_services)):
    try:
        job = services.manager.retry_job(job_id)
    except ExportError as e:
        raise_http_error(e)

    return JobActionResponse(success=True, message="Export queued for retry", job_id=job.id, status=job.status)
