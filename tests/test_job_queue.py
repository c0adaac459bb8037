"""
Tests for the export job queue and its worker loop.

Run with: python -m pytest tests/test_job_queue.py -v
"""

import os
import threading
import time
from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest

from farm_exports.files.validator import FileValidator
from farm_exports.generators.base import GeneratedFile, GenerationResult, ReportGenerator
from farm_exports.generators.dispatcher import GeneratorDispatcher
from farm_exports.jobs.errors import StoreError, ValidationError
from farm_exports.jobs.job_queue import ExportJobQueue
from farm_exports.jobs.job_types import (
    RETRY_BUDGET, ExportFormat, ExportStatus, ReportParameters, is_valid_transition,
    new_job, utcnow,
)
from farm_exports.reports.data_provider import ReportDataProvider
from farm_exports.reports.data_types import FinancialBundle, FinancialSummary

from tests.conftest import june_parameters


def make_job(template_id="financial", format=ExportFormat.PDF, parameters=None, **options):
    return new_job(
        owner="user-1",
        template_id=template_id,
        format=format,
        parameters=parameters or ReportParameters(),
        format_options=options,
    )


def fixed_bundle():
    return FinancialBundle(summary=FinancialSummary(total_income=100.0, net_profit=100.0))


class FixedSizeGenerator(ReportGenerator):
    """Writes a file of a given size instead of rendering a report."""
    format_label = "PDF"

    def __init__(self, size):
        super().__init__()
        self.size = size

    def _render(self, bundle, options, output_path):
        with open(output_path, "wb") as f:
            f.truncate(self.size)
        return GenerationResult(
            path=output_path,
            size_bytes=self.size,
            files=[GeneratedFile(output_path, self.size)],
        )


@pytest.fixture
def mock_provider():
    provider = MagicMock(spec=ReportDataProvider)
    provider.fetch.return_value = fixed_bundle()
    return provider


def recorded_updates(store):
    """Wrap the store's job writes so every patch is kept in order."""
    patches = []
    update_original = store.update_job
    transition_original = store.transition_job

    def update_job(job_id, patch_):
        patches.append(dict(patch_))
        return update_original(job_id, patch_)

    def transition_job(job_id, expected, patch_):
        updated = transition_original(job_id, expected, patch_)
        if updated is not None:
            patches.append(dict(patch_))
        return updated

    store.update_job = update_job
    store.transition_job = transition_job
    return patches


# =============================================================================
# SCENARIOS
# =============================================================================

class TestScenarios:
    """End-to-end behaviour of one processing step."""

    def test_financial_pdf_completes(self, store, dispatcher, settings, mock_provider):
        queue = ExportJobQueue(store, mock_provider, dispatcher, settings)
        patches = recorded_updates(store)
        job = queue.add_job(make_job())

        with patch.object(dispatcher, "generate", wraps=dispatcher.generate) as generate:
            result = queue.process_next_job()

        assert result.status == ExportStatus.COMPLETED
        assert result.progress == 100
        assert result.completed_at is not None

        progress = [p["progress"] for p in patches if "progress" in p]
        assert progress == [0, 10, 30, 80, 90, 100]

        bundle, export_format, _, destination = generate.call_args.args
        assert bundle == mock_provider.fetch.return_value
        assert export_format == ExportFormat.PDF
        assert os.path.basename(destination) == f"financial_{job.id}.pdf"

        files = store.list_files(job.id)
        assert len(files) == 1
        assert files[0].mime_type == "application/pdf"
        assert os.path.exists(files[0].path)

    def test_invalid_data_fails_without_retry(self, store, dispatcher, settings, mock_provider):
        mock_provider.fetch.side_effect = Exception("Invalid data format")
        queue = ExportJobQueue(store, mock_provider, dispatcher, settings)
        queue.add_job(make_job())

        result = queue.process_next_job()

        assert result.status == ExportStatus.FAILED
        assert result.error_message == "Failed to generate report data: Invalid data format"
        assert result.attempt == 0
        assert queue.queue_length == 0

    def test_transient_failure_is_retried(self, store, dispatcher, settings, mock_provider):
        mock_provider.fetch.side_effect = [ConnectionError("Connection reset by peer"), fixed_bundle()]
        queue = ExportJobQueue(store, mock_provider, dispatcher, settings)
        queue.add_job(make_job())

        first = queue.process_next_job()
        assert first.status == ExportStatus.PENDING
        assert first.attempt == 1
        assert first.progress == 0
        assert "Retry 1/3" in first.error_message

        second = queue.process_next_job()
        assert second.status == ExportStatus.COMPLETED
        assert second.error_message is None

    def test_oversized_file_is_rejected_and_deleted(self, store, settings, mock_provider):
        dispatcher = GeneratorDispatcher(
            validator=FileValidator(),
            generators={ExportFormat.PDF: FixedSizeGenerator(200 * 1024 * 1024)},
        )
        queue = ExportJobQueue(store, mock_provider, dispatcher, settings)
        job = queue.add_job(make_job())

        result = queue.process_next_job()

        assert result.status == ExportStatus.FAILED
        assert result.error_message.startswith("Generated file is too large")
        assert not os.path.exists(os.path.join(settings.output_dir, f"financial_{job.id}.pdf"))
        assert store.list_files(job.id) == []

    def test_empty_file_is_rejected(self, store, settings, mock_provider):
        dispatcher = GeneratorDispatcher(generators={ExportFormat.PDF: FixedSizeGenerator(0)})
        queue = ExportJobQueue(store, mock_provider, dispatcher, settings)
        job = queue.add_job(make_job())

        result = queue.process_next_job()

        assert result.status == ExportStatus.FAILED
        assert result.error_message == "Generated file is empty"
        assert not os.path.exists(os.path.join(settings.output_dir, f"financial_{job.id}.pdf"))

    @pytest.mark.parametrize("export_format", [ExportFormat.PDF, ExportFormat.EXCEL, ExportFormat.CSV])
    def test_unknown_template_uses_fallback(self, queue, store, export_format):
        job = queue.add_job(make_job(template_id="mystery", format=export_format))

        result = queue.process_next_job()

        assert result.status == ExportStatus.COMPLETED
        files = store.list_files(job.id)
        assert len(files) == 1
        assert files[0].file_name.startswith(f"mystery_{job.id}")


# =============================================================================
# PROPERTIES
# =============================================================================

class TestRetryBudget:
    """Retryable failures are bounded by the retry budget."""

    def test_retries_are_exhausted(self, store, dispatcher, settings, mock_provider):
        mock_provider.fetch.side_effect = ConnectionError("Connection refused")
        queue = ExportJobQueue(store, mock_provider, dispatcher, settings)
        queue.add_job(make_job())

        results = [queue.process_next_job() for _ in range(RETRY_BUDGET)]

        assert mock_provider.fetch.call_count == RETRY_BUDGET
        assert [r.status for r in results] == [
            ExportStatus.PENDING, ExportStatus.PENDING, ExportStatus.FAILED,
        ]
        assert [r.error_message for r in results[:-1]] == [
            "Retry 1/3: Failed to generate report data: Connection refused",
            "Retry 2/3: Failed to generate report data: Connection refused",
        ]
        final = results[-1]
        assert final.attempt == RETRY_BUDGET - 1
        assert final.error_message == "Failed to generate report data: Connection refused"
        assert queue.process_next_job() is None
        assert mock_provider.fetch.call_count == RETRY_BUDGET

    def test_transitions_and_progress(self, store, dispatcher, settings, mock_provider):
        mock_provider.fetch.side_effect = [TimeoutError("Request timed out"), fixed_bundle()]
        queue = ExportJobQueue(store, mock_provider, dispatcher, settings)
        patches = recorded_updates(store)
        queue.add_job(make_job())

        queue.process_next_job()
        queue.process_next_job()

        statuses = [ExportStatus.PENDING] + [p["status"] for p in patches if "status" in p]
        for current, new in zip(statuses, statuses[1:]):
            assert is_valid_transition(current, new)

        # Progress only goes down when a new attempt starts
        attempt_progress = []
        for p in patches:
            if p.get("status") in (ExportStatus.PROCESSING, ExportStatus.PENDING):
                attempt_progress.append([])
            if "progress" in p and attempt_progress:
                attempt_progress[-1].append(p["progress"])
        for values in attempt_progress:
            assert values == sorted(values)

    def test_store_failure_while_persisting_files_is_retried(self, queue, store, settings):
        job = queue.add_job(make_job(template_id="financial", format=ExportFormat.EXCEL))

        with patch.object(store, "create_file", side_effect=StoreError("Connection lost")):
            result = queue.process_next_job()

        assert result.status == ExportStatus.PENDING
        assert "Retry 1/3: Connection lost" == result.error_message
        assert not os.path.exists(os.path.join(settings.output_dir, f"financial_{job.id}.xlsx"))

        result = queue.process_next_job()
        assert result.status == ExportStatus.COMPLETED

    def test_status_update_failures_are_swallowed(self, queue, store):
        queue.add_job(make_job(format=ExportFormat.CSV))

        with patch.object(store, "update_job", side_effect=StoreError("Database unavailable")):
            result = queue.process_next_job()

        assert result.status == ExportStatus.COMPLETED

    def test_non_transient_generation_error_is_terminal(self, store, settings, mock_provider):
        generator = MagicMock(spec=ReportGenerator)
        generator.generate.side_effect = RuntimeError("Unsupported chart layout")
        dispatcher = GeneratorDispatcher(generators={ExportFormat.PDF: generator})
        queue = ExportJobQueue(store, mock_provider, dispatcher, settings)
        queue.add_job(make_job())

        result = queue.process_next_job()

        assert result.status == ExportStatus.FAILED


# =============================================================================
# QUEUE MANAGEMENT
# =============================================================================

class TestQueueManagement:
    """Cancel, retry, recovery and background processing."""

    def test_empty_queue(self, queue):
        assert queue.process_next_job() is None

    def test_fifo_order(self, queue):
        first = queue.add_job(make_job(format=ExportFormat.CSV))
        second = queue.add_job(make_job(format=ExportFormat.CSV))

        assert queue.process_next_job().id == first.id
        assert queue.process_next_job().id == second.id

    def test_cancel_pending_job(self, queue):
        job = queue.add_job(make_job())

        cancelled = queue.cancel_job(job.id)

        assert cancelled.status == ExportStatus.FAILED
        assert cancelled.error_message == "Job cancelled by user"
        assert queue.queue_length == 0
        assert queue.process_next_job() is None

    def test_cannot_cancel_finished_job(self, queue):
        job = queue.add_job(make_job(format=ExportFormat.CSV))
        queue.process_next_job()

        with pytest.raises(ValidationError):
            queue.cancel_job(job.id)

    def test_retry_failed_job(self, store, dispatcher, settings, mock_provider):
        mock_provider.fetch.side_effect = [Exception("Invalid data format"), fixed_bundle()]
        queue = ExportJobQueue(store, mock_provider, dispatcher, settings)
        job = queue.add_job(make_job())
        queue.process_next_job()

        retried = queue.retry_failed_job(job.id)
        assert retried.status == ExportStatus.PENDING
        assert retried.attempt == 0
        assert retried.error_message is None

        assert queue.process_next_job().status == ExportStatus.COMPLETED

    def test_retry_requires_failed_job(self, queue):
        job = queue.add_job(make_job())
        with pytest.raises(ValidationError):
            queue.retry_failed_job(job.id)

    def test_recover_pending(self, store, provider, dispatcher, settings):
        job = store.create_job(make_job(format=ExportFormat.CSV))
        interrupted = store.create_job(make_job(format=ExportFormat.CSV))
        store.update_job(interrupted.id, {
            "status": ExportStatus.PROCESSING,
            "progress": 30,
            "started_at": utcnow() - timedelta(minutes=settings.stale_job_minutes + 5),
        })
        running = store.create_job(make_job(format=ExportFormat.CSV))
        store.update_job(running.id, {"status": ExportStatus.PROCESSING, "started_at": utcnow()})

        queue = ExportJobQueue(store, provider, dispatcher, settings)
        assert queue.recover_pending() == 2
        assert queue.queued_job_ids() == [job.id, interrupted.id]
        assert store.get_job(interrupted.id).status == ExportStatus.PENDING
        assert store.get_job(running.id).status == ExportStatus.PROCESSING

    def test_recover_without_reset_keeps_processing_jobs(self, store, provider, dispatcher, settings):
        interrupted = store.create_job(make_job(format=ExportFormat.CSV))
        store.update_job(interrupted.id, {"status": ExportStatus.PROCESSING})

        queue = ExportJobQueue(store, provider, dispatcher, settings)

        assert queue.recover_pending(reset_interrupted=False) == 0
        assert store.get_job(interrupted.id).status == ExportStatus.PROCESSING

    def test_background_processing(self, queue, store):
        job = queue.add_job(make_job(parameters=june_parameters(), format=ExportFormat.CSV))
        queue.start_processing()
        assert queue.is_running

        deadline = time.time() + 10
        while time.time() < deadline and store.get_job(job.id).status != ExportStatus.COMPLETED:
            time.sleep(0.05)

        queue.stop_processing()
        assert store.get_job(job.id).status == ExportStatus.COMPLETED
        assert not queue.is_running

    def test_queue_stats(self, queue):
        queue.add_job(make_job())
        stats = queue.get_queue_stats()
        assert stats == {
            "queue_length": 1,
            "is_processing": False,
            "is_running": False,
            "retry_budget": RETRY_BUDGET,
        }

    def test_cleanup(self, store, provider, settings):
        dispatcher = MagicMock(spec=GeneratorDispatcher)
        queue = ExportJobQueue(store, provider, dispatcher, settings)
        queue.add_job(make_job())

        queue.cleanup()

        dispatcher.close.assert_called_once()
        assert queue.queue_length == 0


# =============================================================================
# SHARED STORE
# =============================================================================

class TestSharedStore:
    """Two queues (an API process and a worker) draining one job store."""

    def test_job_running_elsewhere_is_not_taken_over(self, store, dispatcher, settings, mock_provider):
        api_queue = ExportJobQueue(store, mock_provider, dispatcher, settings)
        worker_queue = ExportJobQueue(store, mock_provider, dispatcher, settings)
        job = api_queue.add_job(make_job())
        seen_by_worker = []

        def fetch(template_id, parameters):
            # The worker starts while the API queue is mid-attempt
            seen_by_worker.append(worker_queue.recover_pending())
            seen_by_worker.append(worker_queue.process_next_job())
            return fixed_bundle()

        mock_provider.fetch.side_effect = fetch

        result = api_queue.process_next_job()

        assert result.status == ExportStatus.COMPLETED
        assert seen_by_worker == [0, None]
        assert mock_provider.fetch.call_count == 1
        assert len(store.list_files(job.id)) == 1

    def test_claim_lost_to_another_worker(self, store, dispatcher, settings, mock_provider):
        api_queue = ExportJobQueue(store, mock_provider, dispatcher, settings)
        worker_queue = ExportJobQueue(store, mock_provider, dispatcher, settings)
        job = api_queue.add_job(make_job())
        worker_queue.recover_pending()
        stale_read = store.get_job(job.id)

        assert api_queue.process_next_job().status == ExportStatus.COMPLETED

        # The worker read the job while it was still PENDING
        with patch.object(store, "get_job", return_value=stale_read):
            assert worker_queue.process_next_job() is None

        assert mock_provider.fetch.call_count == 1
        assert len(store.list_files(job.id)) == 1
        assert store.get_job(job.id).status == ExportStatus.COMPLETED

    def test_cancel_does_not_wait_for_running_attempt(self, store, dispatcher, settings, mock_provider):
        queue = ExportJobQueue(store, mock_provider, dispatcher, settings)
        queue.add_job(make_job())
        other = queue.add_job(make_job())
        fetch_started = threading.Event()
        release_fetch = threading.Event()

        def slow_fetch(template_id, parameters):
            fetch_started.set()
            release_fetch.wait(10)
            return fixed_bundle()

        mock_provider.fetch.side_effect = slow_fetch
        runner = threading.Thread(target=queue.process_next_job)
        runner.start()
        try:
            assert fetch_started.wait(5)
            cancelled = []
            canceller = threading.Thread(target=lambda: cancelled.append(queue.cancel_job(other.id)))
            canceller.start()
            canceller.join(2)

            assert not canceller.is_alive()
            assert runner.is_alive()
            assert cancelled[0].status == ExportStatus.FAILED
            assert queue.queue_length == 0
        finally:
            release_fetch.set()
            runner.join(10)

    def test_cancel_after_claim_is_rejected(self, queue, store):
        job = queue.add_job(make_job())
        store.update_job(job.id, {"status": ExportStatus.PROCESSING})

        with pytest.raises(ValidationError, match="PROCESSING"):
            queue.cancel_job(job.id)
