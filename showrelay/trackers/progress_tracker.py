"""Progress tracking for the job runner."""

import threading
from typing import Dict


class ProgressTracker:
    """Tracks job counters and the most recently finished jobs."""

    RECENT_LIMIT = 50

    def __init__(self):
        """Initialize the progress tracker."""
        self._lock = threading.Lock()
        self.stats = self._empty()

    def _empty(self) -> Dict:
        return {
            "submitted": 0,
            "finished": 0,
            "errors": 0,
            "crashed": 0,
            "recent": [],
        }

    def increment_submitted(self):
        """Increment the submitted counter."""
        with self._lock:
            self.stats["submitted"] += 1

    def record_finished(self, job_id: str, status: str):
        """Record a job whose run has ended.

        Args:
            job_id: The job that finished
            status: Its final status as read from the store
        """
        with self._lock:
            self.stats["finished"] += 1
            if status == "error":
                self.stats["errors"] += 1
            self.stats["recent"].append({"job_id": job_id, "status": status})
            del self.stats["recent"][: -self.RECENT_LIMIT]

    def increment_crashed(self):
        """Increment the crashed counter (job process died)."""
        with self._lock:
            self.stats["crashed"] += 1

    def get_stats(self) -> Dict:
        """Get current statistics.

        Returns:
            Dictionary containing current stats
        """
        with self._lock:
            stats = dict(self.stats)
            stats["recent"] = list(self.stats["recent"])
            return stats
