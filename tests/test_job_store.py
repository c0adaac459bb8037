"""
Tests for the job stores.

The Supabase store is exercised against a mocked client; no network access.

Run with: python -m pytest tests/test_job_store.py -v
"""

from unittest.mock import MagicMock

import pytest

from farm_exports.jobs.errors import StoreError
from farm_exports.jobs.job_store import InMemoryJobStore, SupabaseJobStore
from farm_exports.jobs.job_types import ExportFormat, ExportStatus, new_job


def make_job(**update):
    job = new_job("owner-1", "financial", ExportFormat.PDF)
    return job.model_copy(update=update) if update else job


def file_meta(name="report.pdf"):
    return {"file_name": name, "path": f"/exports/{name}", "size_bytes": 10, "mime_type": "application/pdf"}


# =============================================================================
# IN-MEMORY STORE
# =============================================================================

class TestInMemoryJobStore:
    """Dict-backed store used by tests and single-process deployments."""

    def test_create_and_get(self, store):
        job = make_job()
        store.create_job(job)
        assert store.get_job(job.id) == job
        assert store.get_job("missing") is None

    def test_duplicate_id_rejected(self, store):
        job = make_job()
        store.create_job(job)
        with pytest.raises(StoreError, match="already exists"):
            store.create_job(job)

    def test_returned_copies_are_detached(self, store):
        job = make_job()
        store.create_job(job)
        loaded = store.get_job(job.id)
        loaded.progress = 50
        assert store.get_job(job.id).progress == 0

    def test_update(self, store):
        job = make_job()
        store.create_job(job)
        updated = store.update_job(job.id, {"status": ExportStatus.PROCESSING, "progress": 10})
        assert updated.status == ExportStatus.PROCESSING
        assert store.get_job(job.id).progress == 10

    def test_update_unknown_job(self, store):
        with pytest.raises(StoreError, match="not found"):
            store.update_job("missing", {"progress": 10})

    def test_transition_applies_only_from_expected_status(self, store):
        job = make_job()
        store.create_job(job)

        claimed = store.transition_job(job.id, ExportStatus.PENDING, {"status": ExportStatus.PROCESSING})
        assert claimed.status == ExportStatus.PROCESSING

        assert store.transition_job(job.id, ExportStatus.PENDING, {"status": ExportStatus.PROCESSING}) is None
        assert store.get_job(job.id).status == ExportStatus.PROCESSING

    def test_transition_unknown_job(self, store):
        assert store.transition_job("missing", ExportStatus.PENDING, {"progress": 10}) is None

    def test_list_with_filters(self, store):
        pending = make_job()
        failed = make_job(status=ExportStatus.FAILED)
        other = make_job(owner="owner-2")
        for job in (pending, failed, other):
            store.create_job(job)

        assert [j.id for j in store.list_jobs({"owner": "owner-1", "status": ExportStatus.FAILED})] == [failed.id]
        assert len(store.list_jobs({"status": [ExportStatus.PENDING, ExportStatus.FAILED]})) == 3
        assert len(store.list_jobs({"owner": None})) == 3

    def test_files(self, store):
        job = make_job()
        store.create_job(job)
        first = store.create_file(job.id, file_meta("a.pdf"))
        store.create_file(job.id, file_meta("b.pdf"))

        assert [f.file_name for f in store.list_files(job.id)] == ["a.pdf", "b.pdf"]
        assert store.update_file(first.id, {"download_count": 2}).download_count == 2
        assert store.delete_file(first.id) is True
        assert store.delete_file(first.id) is False
        assert store.get_file(first.id) is None

    def test_file_requires_known_job(self, store):
        with pytest.raises(StoreError, match="unknown job"):
            store.create_file("missing", file_meta())


# =============================================================================
# SUPABASE STORE
# =============================================================================

@pytest.fixture
def client():
    """A Supabase client whose query builder chains back to itself."""
    client = MagicMock()
    query = client.table.return_value
    for method in ("select", "insert", "update", "delete", "eq", "in_", "limit", "order"):
        getattr(query, method).return_value = query
    query.execute.return_value = MagicMock(data=[])
    return client


class TestSupabaseJobStore:
    """Table requests and error wrapping."""

    def test_requires_client(self):
        with pytest.raises(StoreError, match="not configured"):
            SupabaseJobStore(None)

    def test_create_job_inserts_row(self, client):
        job = make_job()
        query = client.table.return_value
        query.execute.return_value = MagicMock(data=[job.model_dump(mode="json", by_alias=True)])

        created = SupabaseJobStore(client).create_job(job)

        client.table.assert_called_with("export_jobs")
        row = query.insert.call_args[0][0]
        assert row["id"] == job.id
        assert row["status"] == "PENDING"
        assert created == job

    def test_get_job(self, client):
        job = make_job()
        query = client.table.return_value
        query.execute.return_value = MagicMock(data=[job.model_dump(mode="json")])

        assert SupabaseJobStore(client).get_job(job.id).id == job.id
        query.eq.assert_called_with("id", job.id)

    def test_get_missing_job(self, client):
        assert SupabaseJobStore(client).get_job("missing") is None

    def test_update_serializes_patch(self, client):
        job = make_job(status=ExportStatus.PROCESSING)
        query = client.table.return_value
        query.execute.return_value = MagicMock(data=[job.model_dump(mode="json")])

        SupabaseJobStore(client).update_job(job.id, {"status": ExportStatus.PROCESSING, "started_at": job.created_at})

        patch = query.update.call_args[0][0]
        assert patch["status"] == "PROCESSING"
        assert patch["started_at"] == job.created_at.isoformat()

    def test_update_missing_job(self, client):
        with pytest.raises(StoreError, match="not found"):
            SupabaseJobStore(client).update_job("missing", {"progress": 10})

    def test_transition_filters_on_expected_status(self, client):
        job = make_job(status=ExportStatus.PROCESSING)
        query = client.table.return_value
        query.execute.return_value = MagicMock(data=[job.model_dump(mode="json")])

        claimed = SupabaseJobStore(client).transition_job(
            job.id, ExportStatus.PENDING, {"status": ExportStatus.PROCESSING})

        assert claimed.status == ExportStatus.PROCESSING
        assert query.update.call_args[0][0] == {"status": "PROCESSING"}
        query.eq.assert_any_call("id", job.id)
        query.eq.assert_called_with("status", "PENDING")

    def test_transition_lost_to_another_writer(self, client):
        store = SupabaseJobStore(client)
        assert store.transition_job("job-1", ExportStatus.PENDING, {"status": ExportStatus.PROCESSING}) is None

        client.table.return_value.execute.side_effect = ConnectionError("connection reset")
        with pytest.raises(StoreError, match="Failed to update job: connection reset"):
            store.transition_job("job-1", ExportStatus.PENDING, {"status": ExportStatus.PROCESSING})

    def test_list_jobs_applies_filters(self, client):
        query = client.table.return_value

        SupabaseJobStore(client).list_jobs({"owner": "owner-1", "status": [ExportStatus.PENDING]})

        query.eq.assert_called_with("owner", "owner-1")
        query.in_.assert_called_with("status", ["PENDING"])
        query.order.assert_called_with("created_at")

    def test_file_records_use_files_table(self, client):
        SupabaseJobStore(client).list_files("job-1")
        client.table.assert_called_with("export_files")
        client.table.return_value.eq.assert_called_with("job_id", "job-1")

    def test_request_failure_becomes_store_error(self, client):
        client.table.return_value.execute.side_effect = ConnectionError("connection reset")
        store = SupabaseJobStore(client)

        with pytest.raises(StoreError, match="Failed to load job: connection reset"):
            store.get_job("job-1")
        with pytest.raises(StoreError, match="Failed to create file record"):
            store.create_file("job-1", file_meta())
