"""
Export Job Queue

FIFO queue and single worker loop for export jobs. Each call to
process_next_job() runs exactly one attempt of the oldest pending job:

    PENDING -> PROCESSING -> COMPLETED
                          -> PENDING (retry, attempt += 1)
                          -> FAILED

Progress is reported at fixed checkpoints (0, 10, 30, 80, 90, 100). Failures
are classified by the error taxonomy in farm_exports.jobs.errors; retryable
errors are requeued until the retry budget is spent.
"""

import logging
import threading
from collections import deque
from datetime import timedelta
from typing import Any, Deque, Dict, List, Optional

from farm_exports.config import Settings
from farm_exports.generators.base import GenerationResult
from farm_exports.generators.dispatcher import GeneratorDispatcher, build_destination_path
from farm_exports.jobs.errors import (
    DataFetchError, FileSizeError, JobNotFoundError, StoreError, ValidationError,
    error_message, is_retryable,
)
from farm_exports.jobs.job_store import JobStore
from farm_exports.jobs.job_types import (
    RETRY_BUDGET, ExportJob, ExportStatus, OutputFile, is_valid_transition, utcnow,
)
from farm_exports.jobs.utils import PeriodicWorker, backoff_delay
from farm_exports.reports.data_provider import ReportDataProvider

logger = logging.getLogger(__name__)

# Progress checkpoints within one attempt
PROGRESS_STARTED = 0
PROGRESS_FETCHING = 10
PROGRESS_GENERATING = 30
PROGRESS_GENERATED = 80
PROGRESS_VALIDATED = 90
PROGRESS_DONE = 100

CANCELLED_MESSAGE = "Job cancelled by user"


class ExportJobQueue:
    """
    Sequential export worker.

    add_job() may be called from any thread. process_next_job() and the
    background drain thread share a step lock, so at most one attempt runs at
    a time. Jobs are claimed with a conditional PENDING -> PROCESSING update,
    so queues in separate processes sharing one store never run the same job.
    """

    def __init__(
        self,
        store: JobStore,
        provider: ReportDataProvider,
        dispatcher: GeneratorDispatcher,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.provider = provider
        self.dispatcher = dispatcher
        self.settings = settings or Settings()
        self._queue: Deque[str] = deque()
        self._queue_lock = threading.Lock()
        self._step_lock = threading.Lock()
        self._processing = False
        self._next_delay: Optional[float] = None
        self._worker = PeriodicWorker(
            "export-queue-drain", self._drain_step, self.settings.queue_poll_interval
        )

    # =========================================================================
    # Queue operations
    # =========================================================================

    def add_job(self, job: ExportJob) -> ExportJob:
        """Persist a fresh PENDING job and append it to the queue."""
        job = job.model_copy(update={
            "status": ExportStatus.PENDING,
            "attempt": 0,
            "progress": 0,
            "error_message": None,
            "started_at": None,
            "completed_at": None,
        })
        stored = self.store.create_job(job)
        with self._queue_lock:
            self._queue.append(stored.id)
        logger.info(f"Queued export job {stored.id} ({stored.template_id}, {stored.format.value})")
        return stored

    @property
    def queue_length(self) -> int:
        with self._queue_lock:
            return len(self._queue)

    def queued_job_ids(self) -> List[str]:
        with self._queue_lock:
            return list(self._queue)

    def _pop(self) -> Optional[str]:
        with self._queue_lock:
            return self._queue.popleft() if self._queue else None

    def _remove(self, job_id: str) -> bool:
        with self._queue_lock:
            try:
                self._queue.remove(job_id)
                return True
            except ValueError:
                return False

    def _requeue(self, job_id: str):
        with self._queue_lock:
            if job_id not in self._queue:
                self._queue.append(job_id)

    def process_next_job(self) -> Optional[ExportJob]:
        """
        Run one attempt of the oldest pending job.

        Returns the job as it stands after the attempt, or None when nothing
        was pending. Job failures never propagate out of this method.
        """
        with self._step_lock:
            while True:
                job_id = self._pop()
                if job_id is None:
                    return None

                try:
                    job = self.store.get_job(job_id)
                except StoreError as e:
                    logger.error(f"Could not load export job {job_id}, requeueing: {e}")
                    self._requeue(job_id)
                    return None

                if job is None:
                    logger.warning(f"Export job {job_id} no longer exists, dropping from queue")
                    continue
                if job.status != ExportStatus.PENDING:
                    logger.warning(f"Export job {job_id} is {job.status.value}, skipping")
                    continue

                try:
                    claimed = self._claim(job)
                except StoreError as e:
                    logger.error(f"Could not claim export job {job_id}, requeueing: {e}")
                    self._requeue(job_id)
                    return None
                if claimed is None:
                    logger.info(f"Export job {job_id} was taken by another worker, skipping")
                    continue

                return self._run_attempt(claimed)

    def _claim(self, job: ExportJob) -> Optional[ExportJob]:
        """Move a PENDING job to PROCESSING unless another worker got there first."""
        return self.store.transition_job(job.id, ExportStatus.PENDING, {
            "status": ExportStatus.PROCESSING,
            "progress": PROGRESS_STARTED,
            "started_at": utcnow(),
        })

    # =========================================================================
    # Attempt pipeline
    # =========================================================================

    def _update(self, job: ExportJob, **patch: Any) -> ExportJob:
        """
        Apply a patch locally and in the store. Store failures are logged and
        the local copy is returned, so the worker loop keeps going.
        """
        new_status = patch.get("status")
        if new_status is not None and new_status != job.status \
                and not is_valid_transition(job.status, new_status):
            raise ValueError(
                f"Invalid status transition for job {job.id}: "
                f"{job.status.value} -> {new_status.value}"
            )

        local = job.model_copy(update=patch)
        try:
            return self.store.update_job(job.id, patch)
        except StoreError as e:
            logger.error(f"Failed to persist update for export job {job.id}: {e.message}")
            return local

    def _fetch(self, job: ExportJob):
        try:
            return self.provider.fetch(job.template_id, job.parameters)
        except DataFetchError:
            raise
        except Exception as e:
            raise DataFetchError(e)

    def _persist_files(self, job: ExportJob, result: GenerationResult, created: List[OutputFile]):
        for generated in result.files:
            created.append(self.store.create_file(job.id, {
                "file_name": generated.file_name,
                "path": generated.path,
                "size_bytes": generated.size_bytes,
                "mime_type": generated.mime_type or result.mime_type or "application/octet-stream",
            }))

    def _discard(self, result: Optional[GenerationResult], created: List[OutputFile]):
        for output_file in created:
            try:
                self.store.delete_file(output_file.id)
            except StoreError as e:
                logger.error(f"Failed to remove file record {output_file.id}: {e.message}")
        self.dispatcher.discard(result)

    def _run_attempt(self, job: ExportJob) -> ExportJob:
        self._processing = True
        result: Optional[GenerationResult] = None
        created: List[OutputFile] = []
        try:
            logger.info(f"Processing export job {job.id} (attempt {job.attempt + 1})")

            job = self._update(job, progress=PROGRESS_FETCHING)
            bundle = self._fetch(job)

            job = self._update(job, progress=PROGRESS_GENERATING)
            destination = build_destination_path(
                self.settings.output_dir,
                job.template_id,
                job.id,
                job.format,
                job.format_options.get("fileName") or job.format_options.get("file_name"),
            )
            result = self.dispatcher.generate(bundle, job.format, job.format_options, destination)

            job = self._update(job, progress=PROGRESS_GENERATED)
            for generated in result.files:
                if not self.dispatcher.validator.get_file_info(generated.path)["exists"]:
                    raise FileSizeError(f"Generated file not found: {generated.path}")

            job = self._update(job, progress=PROGRESS_VALIDATED)
            self._persist_files(job, result, created)

            job = self._update(
                job,
                status=ExportStatus.COMPLETED,
                progress=PROGRESS_DONE,
                error_message=None,
                completed_at=utcnow(),
            )
            logger.info(f"Export job {job.id} completed: {result.file_name} ({result.size_bytes} bytes)")
            return job

        except Exception as e:
            self._discard(result, created)
            return self._handle_failure(job, e)

        finally:
            self._processing = False

    def _handle_failure(self, job: ExportJob, error: Exception) -> ExportJob:
        cause = error_message(error)

        # attempt counts retries already spent; this run is attempt + 1 of RETRY_BUDGET
        attempt = job.attempt + 1
        if is_retryable(error) and attempt < RETRY_BUDGET:
            job = self._update(
                job,
                status=ExportStatus.PENDING,
                progress=0,
                attempt=attempt,
                error_message=f"Retry {attempt}/{RETRY_BUDGET}: {cause}",
            )
            self._requeue(job.id)
            self._next_delay = backoff_delay(attempt, self.settings.retry_base_delay)
            logger.warning(f"Export job {job.id} failed, retry {attempt}/{RETRY_BUDGET}: {cause}")
            return job

        job = self._update(
            job,
            status=ExportStatus.FAILED,
            error_message=cause,
            completed_at=utcnow(),
        )
        logger.error(f"Export job {job.id} failed after {attempt} attempt(s): {cause}")
        return job

    # =========================================================================
    # Background processing
    # =========================================================================

    def _drain_step(self) -> Optional[float]:
        self._next_delay = None
        job = self.process_next_job()
        if self._next_delay is not None:
            return self._next_delay
        if job is not None and self.queue_length:
            return 0.0
        return None

    @property
    def is_running(self) -> bool:
        return self._worker.is_running

    def start_processing(self):
        self._worker.start()

    def stop_processing(self):
        self._worker.stop()

    def cleanup(self):
        """Stop the drain thread, release generator resources and clear the queue."""
        self.stop_processing()
        self.dispatcher.close()
        with self._queue_lock:
            self._queue.clear()
        logger.info("Export queue cleaned up")

    # =========================================================================
    # Management
    # =========================================================================

    def _require(self, job_id: str) -> ExportJob:
        job = self.store.get_job(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        return job

    def cancel_job(self, job_id: str) -> ExportJob:
        """
        Cancel a pending job. Jobs already processing run to completion.
        Does not wait for the attempt currently running.
        """
        job = self._require(job_id)
        cancelled = None
        if job.status == ExportStatus.PENDING:
            cancelled = self.store.transition_job(job_id, ExportStatus.PENDING, {
                "status": ExportStatus.FAILED,
                "error_message": CANCELLED_MESSAGE,
                "completed_at": utcnow(),
            })
        if cancelled is None:
            current = self._require(job_id)
            raise ValidationError(f"Cannot cancel a job that is {current.status.value}")
        self._remove(job_id)
        logger.info(f"Export job {job_id} cancelled")
        return cancelled

    def retry_failed_job(self, job_id: str) -> ExportJob:
        """Give a FAILED job a fresh retry budget and queue it again."""
        job = self._require(job_id)
        if job.status != ExportStatus.FAILED:
            raise ValidationError(f"Only failed jobs can be retried, job is {job.status.value}")
        job = self._update(
            job,
            status=ExportStatus.PENDING,
            attempt=0,
            progress=0,
            error_message=None,
            started_at=None,
            completed_at=None,
        )
        self._requeue(job.id)
        logger.info(f"Export job {job_id} requeued for retry")
        return job

    def recover_pending(self, reset_interrupted: bool = True) -> int:
        """
        Load PENDING jobs from the store into the queue (oldest first). With
        ``reset_interrupted``, PROCESSING jobs that started more than
        ``stale_job_minutes`` ago are put back to PENDING first; a job another
        worker is still running is left alone.
        """
        recovered = 0
        if reset_interrupted:
            cutoff = utcnow() - timedelta(minutes=self.settings.stale_job_minutes)
            for job in self.store.list_jobs({"status": ExportStatus.PROCESSING}):
                if job.started_at is not None and job.started_at > cutoff:
                    continue
                reset = self.store.transition_job(job.id, ExportStatus.PROCESSING, {
                    "status": ExportStatus.PENDING,
                    "progress": 0,
                })
                if reset is not None:
                    logger.warning(f"Export job {job.id} was interrupted, returning it to the queue")

        for job in self.store.list_jobs({"status": ExportStatus.PENDING}):
            with self._queue_lock:
                if job.id in self._queue:
                    continue
                self._queue.append(job.id)
            recovered += 1
        if recovered:
            logger.info(f"Recovered {recovered} pending export job(s)")
        return recovered

    def get_queue_stats(self) -> Dict[str, Any]:
        return {
            "queue_length": self.queue_length,
            "is_processing": self._processing,
            "is_running": self.is_running,
            "retry_budget": RETRY_BUDGET,
        }
