"""
Tests for the file validator and the stale file reaper.

Run with: python -m pytest tests/test_file_validator.py -v
"""

import os
import time

import pytest

from farm_exports.files.validator import FileValidator, mime_type_for
from farm_exports.jobs.errors import FileSizeError


def write_file(path, size):
    with open(path, "wb") as f:
        f.truncate(size)
    return str(path)


def age_file(path, hours):
    past = time.time() - hours * 3600
    os.utime(path, (past, past))


@pytest.fixture
def validator():
    return FileValidator(max_file_size=1024)


# =============================================================================
# VALIDATION
# =============================================================================

class TestValidate:
    """Size bounds; invalid files are deleted."""

    def test_valid_file(self, validator, tmp_path):
        path = write_file(tmp_path / "ok.csv", 10)
        assert validator.validate(path) is True
        assert os.path.exists(path)

    def test_empty_file_is_deleted(self, validator, tmp_path):
        path = write_file(tmp_path / "empty.csv", 0)
        assert validator.validate(path) is False
        assert not os.path.exists(path)

    def test_oversized_file_is_deleted(self, validator, tmp_path):
        path = write_file(tmp_path / "big.csv", 2048)
        with pytest.raises(FileSizeError, match="Generated file is too large: 2048 bytes"):
            validator.check(path)
        assert not os.path.exists(path)

    def test_default_cap_is_100_mb(self, tmp_path):
        validator = FileValidator()
        path = write_file(tmp_path / "big.pdf", 100 * 1024 * 1024 + 1)
        assert validator.validate(path) is False

    def test_missing_file(self, validator, tmp_path):
        assert validator.validate(str(tmp_path / "nope.pdf")) is False


class TestFileInfo:

    def test_existing_file(self, validator, tmp_path):
        path = write_file(tmp_path / "report.xlsx", 12)
        info = validator.get_file_info(path)
        assert info == {
            "exists": True,
            "size": 12,
            "mime_type": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            "file_name": "report.xlsx",
        }

    def test_missing_file(self, validator, tmp_path):
        assert validator.get_file_info(str(tmp_path / "nope.pdf")) == {"exists": False}

    def test_unknown_extension(self):
        assert mime_type_for("archive.bin") == "application/octet-stream"


# =============================================================================
# REAPING
# =============================================================================

class TestReapOlderThan:
    """Only files past the cutoff are removed."""

    def test_removes_only_stale_files(self, validator, tmp_path):
        old = write_file(tmp_path / "old.csv", 5)
        fresh = write_file(tmp_path / "fresh.csv", 5)
        age_file(old, 30)

        assert validator.reap_older_than(str(tmp_path), 24) == 1
        assert not os.path.exists(old)
        assert os.path.exists(fresh)

    def test_is_not_recursive(self, validator, tmp_path):
        nested = tmp_path / "nested"
        nested.mkdir()
        old = write_file(nested / "old.csv", 5)
        age_file(old, 48)

        assert validator.reap_older_than(str(tmp_path), 24) == 0
        assert os.path.exists(old)

    def test_missing_directory(self, validator, tmp_path):
        assert validator.reap_older_than(str(tmp_path / "missing")) == 0
