"""
Export statistics, aggregated from the job store with pandas. Read only.
"""

import logging
from datetime import datetime
from typing import Optional

import pandas as pd

from farm_exports.jobs.job_store import JobStore
from farm_exports.jobs.job_types import ExportStats, ExportStatus, RecentActivity, utcnow

logger = logging.getLogger(__name__)


def get_stats(store: JobStore, now: Optional[datetime] = None) -> ExportStats:
    jobs = store.list_jobs()
    if not jobs:
        return ExportStats()

    now = pd.Timestamp(now or utcnow())
    jobs_df = pd.DataFrame([{
        "id": job.id,
        "status": job.status.value,
        "format": job.format.value,
        "template_id": job.template_id,
        "created_at": job.created_at,
    } for job in jobs])
    jobs_df["created_at"] = pd.to_datetime(jobs_df["created_at"], utc=True)

    files = store.list_files()
    files_df = pd.DataFrame(
        [{"download_count": f.download_count, "size_bytes": f.size_bytes} for f in files],
        columns=["download_count", "size_bytes"],
    )

    status_counts = jobs_df["status"].value_counts()
    age = now - jobs_df["created_at"]

    stats = ExportStats(
        total_jobs=len(jobs_df),
        completed_jobs=int(status_counts.get(ExportStatus.COMPLETED.value, 0)),
        failed_jobs=int(status_counts.get(ExportStatus.FAILED.value, 0)),
        pending_jobs=int(status_counts.get(ExportStatus.PENDING.value, 0)),
        processing_jobs=int(status_counts.get(ExportStatus.PROCESSING.value, 0)),
        total_downloads=int(files_df["download_count"].sum()),
        total_file_size=int(files_df["size_bytes"].sum()),
        by_format={k: int(v) for k, v in jobs_df["format"].value_counts().items()},
        by_template={k: int(v) for k, v in jobs_df["template_id"].value_counts().items()},
        recent_activity=RecentActivity(
            last_24h=int((age <= pd.Timedelta(hours=24)).sum()),
            last_7d=int((age <= pd.Timedelta(days=7)).sum()),
            last_30d=int((age <= pd.Timedelta(days=30)).sum()),
        ),
    )
    logger.debug(f"Export stats computed over {stats.total_jobs} jobs and {len(files)} files")
    return stats
