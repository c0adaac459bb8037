"""
Export Job Manager

Request-facing side of the export pipeline: validates new export requests,
enforces the per-owner active job limit and hands jobs to the queue. Also
serves status lookups and download bookkeeping.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from farm_exports.config import Settings
from farm_exports.generators.dispatcher import parse_format_options
from farm_exports.jobs.errors import FileExpiredError, JobLimitError, JobNotFoundError
from farm_exports.jobs.job_queue import ExportJobQueue
from farm_exports.jobs.job_store import JobStore
from farm_exports.jobs.job_types import (
    CreateExportRequest, ExportJob, ExportStatus, ExportStatusResponse,
    OutputFile, new_job, utcnow,
)
from farm_exports.reports.data_provider import validate_parameters

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = [ExportStatus.PENDING, ExportStatus.PROCESSING]


class ExportJobManager:
    """
    Creates export jobs and answers questions about them.
    """

    def __init__(self, store: JobStore, queue: ExportJobQueue, settings: Optional[Settings] = None):
        self.store = store
        self.queue = queue
        self.settings = settings or queue.settings

    def count_active_jobs(self, owner: str) -> int:
        return len(self.store.list_jobs({"owner": owner, "status": ACTIVE_STATUSES}))

    def create_job(self, owner: str, request: CreateExportRequest) -> ExportJob:
        """
        Validate a request and enqueue it.

        Raises ValidationError for bad options or dates and JobLimitError
        when the owner already has too many active jobs.
        """
        parse_format_options(request.format, request.format_options)
        validate_parameters(request.parameters)

        active = self.count_active_jobs(owner)
        if active >= self.settings.max_active_jobs_per_user:
            raise JobLimitError(
                f"Too many active exports ({active}). "
                f"Maximum is {self.settings.max_active_jobs_per_user} per user."
            )

        job = new_job(
            owner=owner,
            template_id=request.template_id,
            format=request.format,
            parameters=request.parameters,
            format_options=request.format_options,
            retention_hours=self.settings.file_retention_hours,
        )
        job = self.queue.add_job(job)
        logger.info(f"Created export job {job.id} for {owner}: {job.template_id} as {job.format.value}")
        return job

    def get_job(self, job_id: str) -> ExportJob:
        job = self.store.get_job(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        return job

    def get_job_status(self, job_id: str) -> ExportStatusResponse:
        job = self.get_job(job_id)
        files = self.store.list_files(job.id) if job.status == ExportStatus.COMPLETED else []
        return ExportStatusResponse(
            id=job.id,
            template_id=job.template_id,
            format=job.format,
            status=job.status,
            progress=job.progress,
            attempt=job.attempt,
            error_message=job.error_message,
            created_at=job.created_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
            expires_at=job.expires_at,
            files=files,
        )

    def list_jobs(
        self,
        owner: Optional[str] = None,
        status: Optional[ExportStatus] = None,
        limit: int = 50,
    ) -> List[ExportJob]:
        """Most recent jobs first."""
        filters: Dict[str, Any] = {"owner": owner, "status": status}
        jobs = self.store.list_jobs(filters)
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return jobs[:limit]

    def cancel_job(self, job_id: str) -> ExportJob:
        return self.queue.cancel_job(job_id)

    def retry_job(self, job_id: str) -> ExportJob:
        return self.queue.retry_failed_job(job_id)

    def open_download(self, file_id: str) -> Tuple[OutputFile, ExportJob]:
        """
        Resolve a file for download and record the download.

        Raises JobNotFoundError when the file record, its job or the file on
        disk is gone, and FileExpiredError when the job has expired.
        """
        output_file = self.store.get_file(file_id)
        if output_file is None:
            raise JobNotFoundError(f"File {file_id} not found")

        job = self.get_job(output_file.job_id)
        if job.is_expired():
            raise FileExpiredError(f"File {file_id} has expired")
        if not self.queue.dispatcher.validator.get_file_info(output_file.path)["exists"]:
            raise JobNotFoundError(f"File {file_id} is no longer available")

        output_file = self.store.update_file(file_id, {
            "download_count": output_file.download_count + 1,
            "last_downloaded_at": utcnow(),
        })
        logger.info(f"Download of {output_file.file_name} (count {output_file.download_count})")
        return output_file, job
