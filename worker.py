#!/usr/bin/env python3
"""
Farm Exports Worker

A dedicated worker process that drains pending export jobs from the job store.
Run it next to the API when both share the Supabase job store, or on its own
to work through a backlog.

Usage:
    python worker.py [--poll-interval=S] [--output-dir=DIR] [--once]

Features:
- Picks up PENDING jobs written by any API process
- Returns jobs left PROCESSING by a dead worker to the queue once they are
  older than EXPORT_STALE_JOB_MINUTES
- Runs the expired file cleanup on its own schedule
- Graceful shutdown on signals
"""

import argparse
import logging
import os
import signal
import sys
import threading
from typing import Optional

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("farm_exports.worker")

from farm_exports.config import Settings
from farm_exports.jobs.job_types import ExportStatus
from farm_exports.jobs.utils import backoff_delay
from farm_exports.services import ExportServices, build_services


class ExportWorker:
    """
    Worker that polls the job store and runs export attempts one at a time.
    """

    def __init__(
        self,
        services: ExportServices,
        poll_interval: Optional[float] = None,
        worker_id: Optional[str] = None,
    ):
        self.services = services
        self.queue = services.queue
        self.poll_interval = poll_interval or services.settings.queue_poll_interval
        self.worker_id = worker_id or f"worker-{os.getpid()}"
        self._shutdown_event = threading.Event()

        logger.info(f"Worker {self.worker_id} initialized (poll interval {self.poll_interval}s)")

    def _handle_shutdown(self, signum, frame):
        logger.info(f"Worker {self.worker_id} received shutdown signal")
        self._shutdown_event.set()

    def drain(self) -> int:
        """Process queued jobs until the queue is empty or shutdown is requested."""
        processed = 0
        while not self._shutdown_event.is_set():
            job = self.queue.process_next_job()
            if job is None:
                break
            processed += 1
            if job.status == ExportStatus.PENDING:
                delay = backoff_delay(job.attempt, self.services.settings.retry_base_delay)
                if self._shutdown_event.wait(delay):
                    break
        return processed

    def run_once(self) -> int:
        self.queue.recover_pending()
        processed = self.drain()
        logger.info(f"Worker {self.worker_id} processed {processed} attempt(s)")
        return processed

    def run(self):
        """Poll until a shutdown signal arrives."""
        for sig in (signal.SIGINT, signal.SIGTERM):
            signal.signal(sig, self._handle_shutdown)

        self.services.cleanup.start()
        logger.info(f"Worker {self.worker_id} starting...")
        self.queue.recover_pending()
        try:
            while not self._shutdown_event.is_set():
                try:
                    self.queue.recover_pending(reset_interrupted=False)
                    self.drain()
                except Exception as e:
                    logger.error(f"Error in poll loop: {e}")
                self._shutdown_event.wait(self.poll_interval)
        finally:
            self.services.stop()
            logger.info("Worker cleanup complete")


def main():
    """Main entry point for the worker."""
    parser = argparse.ArgumentParser(description="Farm Exports Worker")
    parser.add_argument(
        "--poll-interval", "-p",
        type=float,
        default=float(os.environ.get("EXPORT_QUEUE_POLL_INTERVAL", "5.0")),
        help="Seconds between job store polls (default: 5.0)"
    )
    parser.add_argument(
        "--output-dir", "-o",
        type=str,
        default=None,
        help="Directory for generated files (default: EXPORT_OUTPUT_DIR)"
    )
    parser.add_argument(
        "--worker-id",
        type=str,
        default=os.environ.get("WORKER_ID"),
        help="Unique worker identifier (default: auto-generated)"
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Drain the pending jobs and exit"
    )

    args = parser.parse_args()

    settings = Settings.from_env()
    if args.output_dir:
        settings.output_dir = args.output_dir
    if settings.job_store == "memory":
        logger.warning("EXPORT_JOB_STORE is 'memory'; only jobs created by this process are visible")

    try:
        services = build_services(settings)
    except Exception as e:
        logger.error(f"Could not start worker: {e}")
        sys.exit(1)

    worker = ExportWorker(services, poll_interval=args.poll_interval, worker_id=args.worker_id)

    if args.once:
        worker.run_once()
        services.stop()
    else:
        try:
            worker.run()
        except KeyboardInterrupt:
            logger.info("Worker interrupted")

    logger.info("Worker stopped")


if __name__ == "__main__":
    main()
