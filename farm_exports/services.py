"""
Service wiring shared by the API process and the standalone worker.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from farm_exports.config import Settings
from farm_exports.files.cleanup import FileCleanupService
from farm_exports.files.validator import FileValidator
from farm_exports.generators.dispatcher import GeneratorDispatcher
from farm_exports.jobs.job_manager import ExportJobManager
from farm_exports.jobs.job_queue import ExportJobQueue
from farm_exports.jobs.job_store import InMemoryJobStore, JobStore, SupabaseJobStore
from farm_exports.reports.data_provider import FarmRecordsDataProvider, ReportDataProvider
from farm_exports.reports.records import FarmRecordsRepository, InMemoryFarmRecords
from farm_exports.supabase_client import get_supabase

logger = logging.getLogger(__name__)


@dataclass
class ExportServices:
    settings: Settings
    store: JobStore
    provider: ReportDataProvider
    dispatcher: GeneratorDispatcher
    queue: ExportJobQueue
    manager: ExportJobManager
    cleanup: FileCleanupService

    def start(self, recover: bool = True):
        if recover:
            self.queue.recover_pending()
        self.queue.start_processing()
        self.cleanup.start()

    def stop(self):
        self.cleanup.stop()
        self.queue.cleanup()


def build_job_store(settings: Settings) -> JobStore:
    if settings.job_store == "supabase":
        return SupabaseJobStore(get_supabase(settings))
    if settings.job_store != "memory":
        logger.warning(f"Unknown job store '{settings.job_store}', using in-memory store")
    return InMemoryJobStore()


def build_records(settings: Settings) -> FarmRecordsRepository:
    if settings.records_seed_path:
        logger.info(f"Loading farm records from {settings.records_seed_path}")
        return InMemoryFarmRecords.from_json(settings.records_seed_path)
    return InMemoryFarmRecords()


def build_services(
    settings: Optional[Settings] = None,
    store: Optional[JobStore] = None,
    provider: Optional[ReportDataProvider] = None,
    dispatcher: Optional[GeneratorDispatcher] = None,
) -> ExportServices:
    """Assemble the pipeline; any component may be supplied by the caller."""
    settings = settings or Settings.from_env()
    store = store or build_job_store(settings)
    provider = provider or FarmRecordsDataProvider(build_records(settings))
    validator = FileValidator(settings.max_file_size_bytes)
    dispatcher = dispatcher or GeneratorDispatcher(settings.branding, validator)

    queue = ExportJobQueue(store, provider, dispatcher, settings)
    manager = ExportJobManager(store, queue, settings)
    cleanup = FileCleanupService(
        store,
        settings.output_dir,
        validator=dispatcher.validator,
        retention_hours=settings.file_retention_hours,
        interval_minutes=settings.cleanup_interval_minutes,
    )
    return ExportServices(
        settings=settings,
        store=store,
        provider=provider,
        dispatcher=dispatcher,
        queue=queue,
        manager=manager,
        cleanup=cleanup,
    )
