"""Execution statistics for the table function runtime."""

import threading
from typing import Any, Dict, Optional


class ExecutionStats:
    """Track execution statistics for the runtime.

    Partitions may finish on worker threads, so updates take a lock.
    """

    def __init__(self):
        """Initialize execution statistics."""
        self._lock = threading.Lock()
        self.invocations = 0
        self.failed_invocations = 0
        self.partitions = 0
        self.failed_partitions = 0
        self.rows_in = 0
        self.rows_out = 0
        self.total_time = 0.0
        self.last_error: Optional[BaseException] = None

    def record_invocation(self, duration: float, error: Optional[BaseException] = None):
        with self._lock:
            self.invocations += 1
            self.total_time += duration
            if error is not None:
                self.failed_invocations += 1
                self.last_error = error

    def record_partition(
        self, rows_in: int, rows_out: int, error: Optional[BaseException] = None
    ):
        with self._lock:
            self.partitions += 1
            self.rows_in += rows_in
            self.rows_out += rows_out
            if error is not None:
                self.failed_partitions += 1
                self.last_error = error

    def get_avg_invocation_time(self) -> float:
        """Get the average invocation time.

        Returns:
            Average time in seconds, or 0 if no invocations ran
        """
        if self.invocations == 0:
            return 0.0
        return self.total_time / self.invocations

    def get_summary(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "invocations": self.invocations,
                "failed_invocations": self.failed_invocations,
                "partitions": self.partitions,
                "failed_partitions": self.failed_partitions,
                "rows_in": self.rows_in,
                "rows_out": self.rows_out,
                "avg_invocation_time": self.get_avg_invocation_time(),
                "last_error": str(self.last_error) if self.last_error else None,
            }
