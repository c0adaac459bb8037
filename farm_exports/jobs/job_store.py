"""
Job Store

Persistence boundary for export jobs and their output files. The worker loop
only talks to the JobStore interface; two implementations are provided:

- InMemoryJobStore: process-local, used by default and in tests
- SupabaseJobStore: ``export_jobs`` / ``export_files`` tables via supabase-py
"""

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from farm_exports.jobs.errors import StoreError
from farm_exports.jobs.job_types import (
    ExportFormat, ExportJob, ExportStatus, OutputFile
)

logger = logging.getLogger(__name__)


class JobStore(ABC):
    """Read/update/create operations the export core needs."""

    @abstractmethod
    def create_job(self, job: ExportJob) -> ExportJob: ...

    @abstractmethod
    def get_job(self, job_id: str) -> Optional[ExportJob]: ...

    @abstractmethod
    def update_job(self, job_id: str, patch: Dict[str, Any]) -> ExportJob: ...

    @abstractmethod
    def transition_job(
        self, job_id: str, expected: ExportStatus, patch: Dict[str, Any]
    ) -> Optional[ExportJob]:
        """
        Apply ``patch`` only if the job is still in ``expected`` status.
        Returns None when another writer changed the status first.
        """

    @abstractmethod
    def list_jobs(self, filters: Optional[Dict[str, Any]] = None) -> List[ExportJob]: ...

    @abstractmethod
    def create_file(self, job_id: str, file_meta: Dict[str, Any]) -> OutputFile: ...

    @abstractmethod
    def get_file(self, file_id: str) -> Optional[OutputFile]: ...

    @abstractmethod
    def list_files(self, job_id: Optional[str] = None) -> List[OutputFile]: ...

    @abstractmethod
    def update_file(self, file_id: str, patch: Dict[str, Any]) -> OutputFile: ...

    @abstractmethod
    def delete_file(self, file_id: str) -> bool: ...


def _matches(job: ExportJob, filters: Dict[str, Any]) -> bool:
    for key, expected in filters.items():
        if expected is None:
            continue
        actual = getattr(job, key, None)
        if isinstance(expected, (list, tuple, set)):
            if actual not in expected:
                return False
        elif actual != expected:
            return False
    return True


class InMemoryJobStore(JobStore):
    """Thread-safe dict-backed store."""

    def __init__(self):
        self._jobs: Dict[str, ExportJob] = {}
        self._files: Dict[str, OutputFile] = {}
        self._lock = threading.Lock()

    def create_job(self, job: ExportJob) -> ExportJob:
        with self._lock:
            if job.id in self._jobs:
                raise StoreError(f"Job {job.id} already exists")
            self._jobs[job.id] = job.model_copy(deep=True)
            return job.model_copy(deep=True)

    def get_job(self, job_id: str) -> Optional[ExportJob]:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job else None

    def update_job(self, job_id: str, patch: Dict[str, Any]) -> ExportJob:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise StoreError(f"Job {job_id} not found")
            updated = job.model_copy(update=patch, deep=True)
            self._jobs[job_id] = updated
            return updated.model_copy(deep=True)

    def transition_job(
        self, job_id: str, expected: ExportStatus, patch: Dict[str, Any]
    ) -> Optional[ExportJob]:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status != expected:
                return None
            updated = job.model_copy(update=patch, deep=True)
            self._jobs[job_id] = updated
            return updated.model_copy(deep=True)

    def list_jobs(self, filters: Optional[Dict[str, Any]] = None) -> List[ExportJob]:
        filters = filters or {}
        with self._lock:
            jobs = [j.model_copy(deep=True) for j in self._jobs.values() if _matches(j, filters)]
        return sorted(jobs, key=lambda j: j.created_at)

    def create_file(self, job_id: str, file_meta: Dict[str, Any]) -> OutputFile:
        with self._lock:
            if job_id not in self._jobs:
                raise StoreError(f"Cannot attach file to unknown job {job_id}")
            output_file = OutputFile(job_id=job_id, **file_meta)
            self._files[output_file.id] = output_file
            return output_file.model_copy(deep=True)

    def get_file(self, file_id: str) -> Optional[OutputFile]:
        with self._lock:
            output_file = self._files.get(file_id)
            return output_file.model_copy(deep=True) if output_file else None

    def list_files(self, job_id: Optional[str] = None) -> List[OutputFile]:
        with self._lock:
            files = [
                f.model_copy(deep=True) for f in self._files.values()
                if job_id is None or f.job_id == job_id
            ]
        return sorted(files, key=lambda f: f.created_at)

    def update_file(self, file_id: str, patch: Dict[str, Any]) -> OutputFile:
        with self._lock:
            output_file = self._files.get(file_id)
            if output_file is None:
                raise StoreError(f"File {file_id} not found")
            updated = output_file.model_copy(update=patch, deep=True)
            self._files[file_id] = updated
            return updated.model_copy(deep=True)

    def delete_file(self, file_id: str) -> bool:
        with self._lock:
            return self._files.pop(file_id, None) is not None


# ============================================================================
# Supabase-backed store
# ============================================================================

def _serialize(patch: Dict[str, Any]) -> Dict[str, Any]:
    data = {}
    for key, value in patch.items():
        if isinstance(value, datetime):
            data[key] = value.isoformat()
        elif isinstance(value, (ExportStatus, ExportFormat)):
            data[key] = value.value
        elif hasattr(value, "model_dump"):
            data[key] = value.model_dump(mode="json", by_alias=True)
        else:
            data[key] = value
    return data


class SupabaseJobStore(JobStore):
    """
    Stores jobs in ``export_jobs`` and files in ``export_files``.
    Every call is a single table request; failures surface as StoreError.
    """

    JOBS_TABLE = "export_jobs"
    FILES_TABLE = "export_files"

    def __init__(self, supabase):
        if supabase is None:
            raise StoreError("Supabase client is not configured")
        self.supabase = supabase

    def create_job(self, job: ExportJob) -> ExportJob:
        try:
            result = self.supabase.table(self.JOBS_TABLE)\
                .insert(job.model_dump(mode="json", by_alias=True))\
                .execute()
            return ExportJob.model_validate(result.data[0]) if result.data else job
        except Exception as e:
            logger.error(f"Error creating export job {job.id}: {e}")
            raise StoreError(f"Failed to create job: {e}", cause=e)

    def get_job(self, job_id: str) -> Optional[ExportJob]:
        try:
            result = self.supabase.table(self.JOBS_TABLE)\
                .select("*")\
                .eq("id", job_id)\
                .limit(1)\
                .execute()
        except Exception as e:
            logger.error(f"Error getting export job {job_id}: {e}")
            raise StoreError(f"Failed to load job: {e}", cause=e)
        return ExportJob.model_validate(result.data[0]) if result.data else None

    def update_job(self, job_id: str, patch: Dict[str, Any]) -> ExportJob:
        try:
            result = self.supabase.table(self.JOBS_TABLE)\
                .update(_serialize(patch))\
                .eq("id", job_id)\
                .execute()
        except Exception as e:
            logger.error(f"Error updating export job {job_id}: {e}")
            raise StoreError(f"Failed to update job: {e}", cause=e)
        if not result.data:
            raise StoreError(f"Job {job_id} not found")
        return ExportJob.model_validate(result.data[0])

    def transition_job(
        self, job_id: str, expected: ExportStatus, patch: Dict[str, Any]
    ) -> Optional[ExportJob]:
        # The status filter makes the update a compare-and-set on the row
        try:
            result = self.supabase.table(self.JOBS_TABLE)\
                .update(_serialize(patch))\
                .eq("id", job_id)\
                .eq("status", expected.value)\
                .execute()
        except Exception as e:
            logger.error(f"Error updating export job {job_id} from {expected.value}: {e}")
            raise StoreError(f"Failed to update job: {e}", cause=e)
        return ExportJob.model_validate(result.data[0]) if result.data else None

    def list_jobs(self, filters: Optional[Dict[str, Any]] = None) -> List[ExportJob]:
        try:
            query = self.supabase.table(self.JOBS_TABLE).select("*")
            for key, value in (filters or {}).items():
                if value is None:
                    continue
                if isinstance(value, (list, tuple, set)):
                    query = query.in_(key, [_serialize({key: v})[key] for v in value])
                else:
                    query = query.eq(key, _serialize({key: value})[key])
            result = query.order("created_at").execute()
        except Exception as e:
            logger.error(f"Error listing export jobs: {e}")
            raise StoreError(f"Failed to list jobs: {e}", cause=e)
        return [ExportJob.model_validate(row) for row in result.data or []]

    def create_file(self, job_id: str, file_meta: Dict[str, Any]) -> OutputFile:
        output_file = OutputFile(job_id=job_id, **file_meta)
        try:
            result = self.supabase.table(self.FILES_TABLE)\
                .insert(output_file.model_dump(mode="json"))\
                .execute()
        except Exception as e:
            logger.error(f"Error creating export file for job {job_id}: {e}")
            raise StoreError(f"Failed to create file record: {e}", cause=e)
        return OutputFile.model_validate(result.data[0]) if result.data else output_file

    def get_file(self, file_id: str) -> Optional[OutputFile]:
        try:
            result = self.supabase.table(self.FILES_TABLE)\
                .select("*")\
                .eq("id", file_id)\
                .limit(1)\
                .execute()
        except Exception as e:
            raise StoreError(f"Failed to load file record: {e}", cause=e)
        return OutputFile.model_validate(result.data[0]) if result.data else None

    def list_files(self, job_id: Optional[str] = None) -> List[OutputFile]:
        try:
            query = self.supabase.table(self.FILES_TABLE).select("*")
            if job_id:
                query = query.eq("job_id", job_id)
            result = query.order("created_at").execute()
        except Exception as e:
            raise StoreError(f"Failed to list file records: {e}", cause=e)
        return [OutputFile.model_validate(row) for row in result.data or []]

    def update_file(self, file_id: str, patch: Dict[str, Any]) -> OutputFile:
        try:
            result = self.supabase.table(self.FILES_TABLE)\
                .update(_serialize(patch))\
                .eq("id", file_id)\
                .execute()
        except Exception as e:
            raise StoreError(f"Failed to update file record: {e}", cause=e)
        if not result.data:
            raise StoreError(f"File {file_id} not found")
        return OutputFile.model_validate(result.data[0])

    def delete_file(self, file_id: str) -> bool:
        try:
            result = self.supabase.table(self.FILES_TABLE)\
                .delete()\
                .eq("id", file_id)\
                .execute()
        except Exception as e:
            raise StoreError(f"Failed to delete file record: {e}", cause=e)
        return bool(result.data)
