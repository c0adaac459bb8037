"""
File Validator

Size checks, metadata lookups and stale-file reaping for generated exports.
Invalid artifacts are always deleted before the caller sees the failure.
"""

import logging
import os
import time
from typing import Any, Dict

from farm_exports.jobs.errors import FileSizeError

logger = logging.getLogger(__name__)

DEFAULT_MAX_FILE_SIZE = 100 * 1024 * 1024  # 100MB

MIME_TYPES_BY_EXTENSION = {
    ".pdf": "application/pdf",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ".xls": "application/vnd.ms-excel",
    ".csv": "text/csv",
    ".txt": "text/plain",
    ".json": "application/json",
}


def mime_type_for(path: str) -> str:
    extension = os.path.splitext(path)[1].lower()
    return MIME_TYPES_BY_EXTENSION.get(extension, "application/octet-stream")


class FileValidator:

    def __init__(self, max_file_size: int = DEFAULT_MAX_FILE_SIZE):
        self.max_file_size = max_file_size

    def delete_file(self, path: str) -> bool:
        """Delete a file, logging instead of raising when it cannot be removed."""
        try:
            os.remove(path)
            logger.info(f"File deleted: {path}")
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.error(f"Failed to delete file {path}: {e}")
            return False

    def check(self, path: str) -> int:
        """
        Stat a generated file and return its size.

        Raises FileSizeError (after deleting the file) when it is empty or
        larger than the configured cap.
        """
        try:
            size = os.path.getsize(path)
        except OSError as e:
            raise FileSizeError(f"Generated file not found: {path}", cause=e)

        if size == 0:
            logger.warning(f"Empty file detected, cleaning up: {path}")
            self.delete_file(path)
            raise FileSizeError("Generated file is empty")

        if size > self.max_file_size:
            logger.warning(f"File too large, cleaning up: {path} ({size} bytes)")
            self.delete_file(path)
            raise FileSizeError(
                f"Generated file is too large: {size} bytes (max: {self.max_file_size} bytes)"
            )

        return size

    def validate(self, path: str) -> bool:
        """True when the file exists and is within bounds; invalid files are deleted."""
        try:
            self.check(path)
            return True
        except FileSizeError as e:
            logger.info(f"File validation failed: {e.message}")
            return False

    def get_file_info(self, path: str) -> Dict[str, Any]:
        try:
            stats = os.stat(path)
        except OSError:
            return {"exists": False}
        return {
            "exists": True,
            "size": stats.st_size,
            "mime_type": mime_type_for(path),
            "file_name": os.path.basename(path),
        }

    def reap_older_than(self, directory: str, max_age_hours: float = 24) -> int:
        """Delete files in ``directory`` (non-recursive) modified before the cutoff."""
        if not os.path.isdir(directory):
            logger.info(f"Cleanup skipped, directory does not exist: {directory}")
            return 0

        cutoff = time.time() - max_age_hours * 3600
        removed = 0
        with os.scandir(directory) as entries:
            for entry in entries:
                try:
                    if not entry.is_file(follow_symlinks=False):
                        continue
                    if entry.stat().st_mtime < cutoff and self.delete_file(entry.path):
                        removed += 1
                except OSError as e:
                    logger.warning(f"Failed to process file during cleanup: {entry.path}: {e}")

        logger.info(f"Cleanup completed in {directory}: {removed} files removed")
        return removed
