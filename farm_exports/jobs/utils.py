"""
Job Utilities

Shared helpers for the export worker: background loops, backoff, file naming
and error formatting.
"""

import logging
import threading
from typing import Any, Callable, Dict, Optional

from farm_exports.jobs.job_types import utcnow

logger = logging.getLogger(__name__)

# Upper bound for the drain loop's retry backoff
MAX_BACKOFF_SECONDS = 30.0


def backoff_delay(attempt: int, base_delay: float = 1.0) -> float:
    """Exponential backoff for a job that has been retried ``attempt`` times."""
    return min((2 ** attempt) * base_delay, MAX_BACKOFF_SECONDS)


def format_duration(seconds: float) -> str:
    """Format duration in human-readable form."""
    if seconds < 60:
        return f"{seconds:.1f}s"
    if seconds < 3600:
        mins = seconds / 60
        return f"{mins:.1f}m"
    hours = seconds / 3600
    return f"{hours:.1f}h"


def format_file_size(size: float) -> str:
    """Format file size in human-readable form."""
    for unit in ["B", "KB", "MB", "GB"]:
        if size < 1024:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} TB"


def safe_filename(name: str) -> str:
    return "".join(
        c if c.isalnum() or c in ("-", "_", ".", " ") else "_" for c in (name or "export")
    ).strip().replace(" ", "_")


class PeriodicWorker:
    """
    Runs ``func`` on a daemon thread every ``interval`` seconds until stopped.

    ``func`` may return a number of seconds to wait before the next call
    instead of the regular interval (used for retry backoff).
    """

    def __init__(self, name: str, func: Callable[[], Optional[float]], interval: float):
        self.name = name
        self.func = func
        self.interval = interval
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()
        logger.info(f"Started {self.name} (interval {format_duration(self.interval)})")

    def stop(self, timeout: float = 5.0):
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
            logger.info(f"Stopped {self.name}")

    def _loop(self):
        wait = self.interval
        while not self._stop_event.wait(wait):
            try:
                delay = self.func()
            except Exception as e:
                logger.error(f"{self.name} iteration failed: {e}")
                delay = None
            wait = delay if delay is not None else self.interval


def create_error_response(
    error_type: str,
    message: str,
    hint: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """Create a standardized error response dictionary."""
    return {
        "error_type": error_type,
        "message": message,
        "hint": hint or get_default_hint(error_type),
        "details": details,
        "timestamp": utcnow().isoformat()
    }


def get_default_hint(error_type: str) -> str:
    """Get default user-friendly hint for an error type."""
    hints = {
        "validation_error": "Please check the export parameters and try again.",
        "job_limit": "Too many exports in progress. Wait for one to finish and try again.",
        "not_found": "The requested export could not be found.",
        "file_expired": "The export file has expired. Request a new export.",
    }
    return hints.get(error_type, "An error occurred. Please try again or contact support.")
