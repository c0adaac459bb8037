"""
File Cleanup Service

Periodically removes files that belong to expired jobs (and their records)
and reaps anything in the export directory older than the retention window.
"""

import logging
import os
import threading
import time
from typing import Any, Dict, Optional

from farm_exports.files.validator import FileValidator
from farm_exports.jobs.errors import StoreError
from farm_exports.jobs.job_store import JobStore
from farm_exports.jobs.job_types import TERMINAL_STATUSES, utcnow
from farm_exports.jobs.utils import PeriodicWorker, format_duration, format_file_size

logger = logging.getLogger(__name__)


class FileCleanupService:

    def __init__(
        self,
        store: JobStore,
        output_dir: str,
        validator: Optional[FileValidator] = None,
        retention_hours: float = 24,
        interval_minutes: float = 60,
    ):
        self.store = store
        self.output_dir = output_dir
        self.validator = validator or FileValidator()
        self.retention_hours = retention_hours
        self._run_lock = threading.Lock()
        self._worker = PeriodicWorker("export-file-cleanup", self._scheduled_run, interval_minutes * 60)
        self.metrics: Dict[str, Any] = {
            "runs": 0,
            "failed_runs": 0,
            "files_removed": 0,
            "bytes_freed": 0,
            "last_run_at": None,
            "last_duration": None,
        }

    @property
    def is_scheduled(self) -> bool:
        return self._worker.is_running

    def start(self):
        self._worker.start()

    def stop(self):
        self._worker.stop()

    def _scheduled_run(self):
        self.perform_cleanup()

    def cleanup_expired_jobs(self, now=None) -> Dict[str, int]:
        """Delete files and file records of finished jobs past their expiry."""
        now = now or utcnow()
        removed = 0
        freed = 0
        for job in self.store.list_jobs({"status": list(TERMINAL_STATUSES)}):
            if not job.is_expired(now):
                continue
            for output_file in self.store.list_files(job.id):
                if os.path.exists(output_file.path):
                    size = os.path.getsize(output_file.path)
                    if self.validator.delete_file(output_file.path):
                        removed += 1
                        freed += size
                self.store.delete_file(output_file.id)
            logger.info(f"Removed files of expired export job {job.id}")
        return {"files_removed": removed, "bytes_freed": freed}

    def cleanup_stale_files(self) -> Dict[str, int]:
        before = self._directory_size()
        removed = self.validator.reap_older_than(self.output_dir, self.retention_hours)
        return {"files_removed": removed, "bytes_freed": max(before - self._directory_size(), 0)}

    def _directory_size(self) -> int:
        if not os.path.isdir(self.output_dir):
            return 0
        total = 0
        with os.scandir(self.output_dir) as entries:
            for entry in entries:
                if entry.is_file(follow_symlinks=False):
                    total += entry.stat().st_size
        return total

    def perform_cleanup(self) -> Dict[str, Any]:
        """Run one cleanup pass. Concurrent calls are skipped, not queued."""
        if not self._run_lock.acquire(blocking=False):
            logger.info("Cleanup already running, skipping")
            return {"skipped": True}

        started = time.monotonic()
        try:
            expired = self.cleanup_expired_jobs()
            stale = self.cleanup_stale_files()
            result = {
                "skipped": False,
                "files_removed": expired["files_removed"] + stale["files_removed"],
                "bytes_freed": expired["bytes_freed"] + stale["bytes_freed"],
                "expired_job_files": expired["files_removed"],
                "stale_files": stale["files_removed"],
            }
            self.metrics["runs"] += 1
            self.metrics["files_removed"] += result["files_removed"]
            self.metrics["bytes_freed"] += result["bytes_freed"]
            return result
        except (StoreError, OSError) as e:
            self.metrics["failed_runs"] += 1
            logger.error(f"Export file cleanup failed: {e}")
            raise
        finally:
            duration = time.monotonic() - started
            self.metrics["last_run_at"] = utcnow()
            self.metrics["last_duration"] = duration
            self._run_lock.release()
            logger.info(
                f"Export file cleanup finished in {format_duration(duration)}, "
                f"{format_file_size(self.metrics['bytes_freed'])} freed in total"
            )

    def get_metrics(self) -> Dict[str, Any]:
        return dict(self.metrics)
