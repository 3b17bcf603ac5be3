"""Performance monitoring utilities for the efficiency audit engines."""
import time
import logging
import threading
import functools
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger("pipeaudit-api.perf")


def timed(func: Callable) -> Callable:
    """
    Decorator that measures and logs execution time for synchronous functions,
    and records the duration against the function's qualified name in the
    module-level ``tracker``.

    Usage::

        @timed
        def summarize_block(self, block):
            ...
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start = time.perf_counter()
        try:
            return func(*args, **kwargs)
        except Exception:
            tracker.record_operation_error(func.__qualname__)
            raise
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            tracker.record_operation_duration(func.__qualname__, duration_ms)
            logger.debug(
                "function timed",
                extra={
                    "function": func.__qualname__,
                    "duration_ms": duration_ms,
                },
            )
    return wrapper


class PerformanceTracker:
    """
    Thread-safe in-memory tracker for audit throughput.

    Tracks:
    - Blocks audited and reports health-scored
    - Per-operation call durations
    - Slowest operation seen
    - Error count broken down by operation name
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._blocks_audited: int = 0
        self._reports_scored: int = 0
        self._operation_durations: Dict[str, list] = {}   # operation -> [duration_ms, ...]
        self._error_counts: Dict[str, int] = {}           # operation -> count
        self._slowest_operation: Optional[str] = None
        self._slowest_operation_ms: float = 0.0

    # ------------------------------------------------------------------
    # Public write API
    # ------------------------------------------------------------------

    def record_blocks_audited(self, count: int = 1) -> None:
        with self._lock:
            self._blocks_audited += count

    def record_report_scored(self) -> None:
        with self._lock:
            self._reports_scored += 1

    def record_operation_duration(self, operation: str, duration_ms: float) -> None:
        with self._lock:
            self._operation_durations.setdefault(operation, []).append(duration_ms)

            if duration_ms > self._slowest_operation_ms:
                self._slowest_operation_ms = duration_ms
                self._slowest_operation = operation

    def record_operation_error(self, operation: str) -> None:
        with self._lock:
            self._error_counts[operation] = self._error_counts.get(operation, 0) + 1

    # ------------------------------------------------------------------
    # Public read API
    # ------------------------------------------------------------------

    def get_metrics(self) -> Dict[str, Any]:
        """
        Return a snapshot of all collected metrics.

        Returns
        -------
        dict with keys:
            blocks_audited              : int
            reports_scored              : int
            slowest_operation           : str | None
            slowest_operation_ms        : float
            error_count                 : int   (total across all operations)
            error_count_by_operation    : dict  {operation: count}
            operation_avg_durations_ms  : dict  {operation: avg_ms}
        """
        with self._lock:
            op_avgs: Dict[str, float] = {}
            for op, durations in self._operation_durations.items():
                op_avgs[op] = round(sum(durations) / len(durations), 2) if durations else 0.0

            return {
                "blocks_audited": self._blocks_audited,
                "reports_scored": self._reports_scored,
                "slowest_operation": self._slowest_operation,
                "slowest_operation_ms": round(self._slowest_operation_ms, 2),
                "error_count": sum(self._error_counts.values()),
                "error_count_by_operation": dict(self._error_counts),
                "operation_avg_durations_ms": op_avgs,
            }

    def reset(self) -> None:
        """Reset all counters (useful in tests)."""
        with self._lock:
            self._blocks_audited = 0
            self._reports_scored = 0
            self._operation_durations.clear()
            self._error_counts.clear()
            self._slowest_operation = None
            self._slowest_operation_ms = 0.0


# Module-level singleton; import this instance everywhere else.
tracker = PerformanceTracker()
