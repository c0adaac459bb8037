"""
Tests for export statistics.

Run with: python -m pytest tests/test_stats.py -v
"""

from datetime import datetime, timedelta, timezone

from farm_exports.jobs.job_types import ExportFormat, ExportStatus, new_job
from farm_exports.stats import get_stats

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def add_job(store, template_id, format, status, age, downloads=None, size=100):
    job = new_job("owner-1", template_id, format).model_copy(
        update={"status": status, "created_at": NOW - age}
    )
    store.create_job(job)
    if downloads is not None:
        store.create_file(job.id, {
            "file_name": f"{template_id}.out",
            "path": f"/tmp/{job.id}",
            "size_bytes": size,
            "mime_type": "application/octet-stream",
            "download_count": downloads,
        })
    return job


class TestStats:
    """Counts by status, format, template and age."""

    def test_empty_store(self, store):
        stats = get_stats(store, now=NOW)
        assert stats.total_jobs == 0
        assert stats.by_format == {}
        assert stats.recent_activity.last_30d == 0

    def test_aggregates(self, store):
        add_job(store, "financial", ExportFormat.PDF, ExportStatus.COMPLETED, timedelta(hours=2), downloads=3, size=1000)
        add_job(store, "financial", ExportFormat.CSV, ExportStatus.COMPLETED, timedelta(days=3), downloads=1, size=500)
        add_job(store, "health", ExportFormat.PDF, ExportStatus.FAILED, timedelta(days=10))
        add_job(store, "inventory", ExportFormat.EXCEL, ExportStatus.PENDING, timedelta(minutes=5))
        add_job(store, "inventory", ExportFormat.EXCEL, ExportStatus.PROCESSING, timedelta(days=45))

        stats = get_stats(store, now=NOW)

        assert stats.total_jobs == 5
        assert stats.completed_jobs == 2
        assert stats.failed_jobs == 1
        assert stats.pending_jobs == 1
        assert stats.processing_jobs == 1
        assert stats.total_downloads == 4
        assert stats.total_file_size == 1500
        assert stats.by_format == {"PDF": 2, "CSV": 1, "EXCEL": 2}
        assert stats.by_template == {"financial": 2, "health": 1, "inventory": 2}
        assert stats.recent_activity.last_24h == 2
        assert stats.recent_activity.last_7d == 3
        assert stats.recent_activity.last_30d == 4

    def test_jobs_without_files(self, store):
        add_job(store, "health", ExportFormat.CSV, ExportStatus.PENDING, timedelta(hours=1))

        stats = get_stats(store, now=NOW)

        assert stats.total_downloads == 0
        assert stats.total_file_size == 0
