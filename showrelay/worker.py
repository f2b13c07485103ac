"""Job runner: a bounded pool that executes each job in isolation.

Every job runs in its own process by default, so a crash in adapter code only
takes down that job. A fixed number of dispatcher threads bounds how many job
processes exist at once. ``thread`` isolation runs the orchestrator directly
in the dispatcher thread (tests, constrained hosts).
"""

from __future__ import annotations

import argparse
import logging
import multiprocessing
import queue
import sys
import threading
from typing import Any, Callable, Dict, List, Optional

from watchfiles import watch

from .config import Settings, configure_logging
from .jobs import ERROR, StatusStore
from .jobs.scanner import enqueue_pending
from .orchestrator import JobOrchestrator, build_orchestrator
from .organizers import ArchiveManager
from .trackers import ProgressTracker


logger = logging.getLogger("relay.worker")


def process_job(job_id: str, settings: Settings) -> None:
    """Entry point of a job process. Uncaught errors end the process with a non-zero exit code."""
    configure_logging(settings.log_dir, name=f"job-{job_id}")
    record = build_orchestrator(settings).run(job_id)
    logging.getLogger("relay.worker").info(f"{job_id} finished: {record.status} ({record.message})")


class JobRunner:
    def __init__(
        self,
        settings: Settings,
        orchestrator_factory: Callable[[Settings], JobOrchestrator] = build_orchestrator,
        target: Callable[[str, Settings], None] = process_job,
    ):
        self.settings = settings
        self.orchestrator_factory = orchestrator_factory
        self.target = target
        self.store = StatusStore(
            settings.received_dir, archive_manager=ArchiveManager(settings.archive_dir, settings.received_dir)
        )
        self.progress_tracker = ProgressTracker()
        self._queue: "queue.Queue[Optional[str]]" = queue.Queue()
        self._lock = threading.Lock()
        self._active: Dict[str, threading.Event] = {}
        self._threads: List[threading.Thread] = []
        self._closed = False

    def start(self) -> None:
        with self._lock:
            if self._threads or self._closed:
                return
            for i in range(max(1, self.settings.max_workers)):
                t = threading.Thread(target=self._dispatch_loop, name=f"job-dispatch-{i}", daemon=True)
                t.start()
                self._threads.append(t)

    def submit(self, job_id: str) -> bool:
        """Queue a job. Returns False if it is already queued or running."""
        with self._lock:
            if self._closed:
                raise RuntimeError("JobRunner is shut down")
            if job_id in self._active:
                return False
            self._active[job_id] = threading.Event()
        self.start()
        self.progress_tracker.increment_submitted()
        self._queue.put(job_id)
        return True

    def is_active(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._active

    def wait(self, job_id: str, timeout: Optional[float] = None) -> bool:
        """Block until the job is no longer queued or running."""
        with self._lock:
            event = self._active.get(job_id)
        if event is None:
            return True
        return event.wait(timeout)

    def stats(self) -> Dict[str, Any]:
        stats = self.progress_tracker.get_stats()
        with self._lock:
            stats["active"] = sorted(self._active)
        stats["workers"] = self.settings.max_workers
        stats["isolation"] = self.settings.isolation
        return stats

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            threads = list(self._threads)
        for _ in threads:
            self._queue.put(None)
        if wait:
            for t in threads:
                t.join()

    def _dispatch_loop(self) -> None:
        while True:
            job_id = self._queue.get()
            if job_id is None:
                self._queue.task_done()
                return
            try:
                self._run_job(job_id)
            except Exception:
                logger.exception(f"Job runner failed for {job_id}")
            finally:
                record = self.store.lookup(job_id)
                self.progress_tracker.record_finished(job_id, record.status if record else "unknown")
                with self._lock:
                    event = self._active.pop(job_id, None)
                if event is not None:
                    event.set()
                self._queue.task_done()

    def _run_job(self, job_id: str) -> None:
        logger.info(f"Starting {job_id} ({self.settings.isolation})")
        if self.settings.isolation == "thread":
            self.orchestrator_factory(self.settings).run(job_id)
            return

        ctx = multiprocessing.get_context(self.settings.start_method)
        process = ctx.Process(target=self.target, args=(job_id, self.settings), name=f"job-{job_id[:8]}")
        process.start()
        process.join()
        if process.exitcode == 0:
            return

        self.progress_tracker.increment_crashed()
        logger.error(f"Job process for {job_id} exited with code {process.exitcode}")
        # a dead process cannot release its own claim
        self.store.workspace(job_id).release_claim(pid=process.pid)
        record = self.store.get(job_id)
        if record is not None and record.is_terminal:
            return
        if self.store.workspace(job_id).exists():
            self.store.update(
                job_id, ERROR, f"Job worker exited unexpectedly (exit code {process.exitcode})", force=True
            )


def _status_changes(change, path: str) -> bool:
    return path.endswith("status.json")


def run_watch_worker(
    settings: Settings,
    stop_event: Optional[threading.Event] = None,
    runner: Optional[JobRunner] = None,
) -> None:
    """Start ready jobs whenever a status file in the received directory changes.

    The watch also wakes up every ``poll_seconds`` and rescans, so jobs missed
    by the file-system trigger are still picked up.
    """
    settings.ensure_dirs()
    own_runner = runner is None
    runner = runner or JobRunner(settings)
    store = runner.store
    reset = store.reset_stale_processing(settings.stale_processing_seconds)
    if reset:
        logger.info(f"Requeued {reset} stale processing jobs")
    enqueue_pending(store, runner)
    try:
        for _changes in watch(
            settings.received_dir,
            watch_filter=_status_changes,
            stop_event=stop_event,
            rust_timeout=settings.poll_seconds * 1000,
            yield_on_timeout=True,
        ):
            try:
                enqueue_pending(store, runner)
            except OSError:
                logger.exception(f"Scan of {settings.received_dir} failed; retrying on next change")
    finally:
        if own_runner:
            runner.shutdown()


def _main():
    parser = argparse.ArgumentParser(description="Background workers for showrelay")
    sub = parser.add_subparsers(dest="role", required=True)

    p_job = sub.add_parser("job", help="Process a single job in this process")
    p_job.add_argument("job_id")

    p_watch = sub.add_parser("watch", help="Run the file-system triggered worker")
    p_watch.add_argument("--reload", action="store_true", help="Restart on code changes (dev)")

    args = parser.parse_args()
    settings = Settings.from_env()

    if args.role == "job":
        process_job(args.job_id, settings)
        return

    if args.reload:
        from pathlib import Path
        from watchfiles import run_process

        # re-run without --reload in the child
        run_process(
            Path(__file__).parent,
            target=f"{sys.executable} -m showrelay.worker watch",
            target_type="command",
        )
        return
    configure_logging(settings.log_dir, name="watch_worker")
    run_watch_worker(settings)


if __name__ == "__main__":
    _main()
