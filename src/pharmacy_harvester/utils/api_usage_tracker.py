"""
API usage tracker - count outbound provider calls per run.

Counters are kept in memory and are safe to update from worker threads.
The summary is attached to the run's statistics block.
"""
import logging
import threading
from collections import Counter
from typing import Dict

logger = logging.getLogger(__name__)


class ApiCallTracker:
    """Track calls, failures and results per provider operation."""

    def __init__(self):
        self._lock = threading.Lock()
        self._calls: Counter = Counter()
        self._failures: Counter = Counter()
        self._results: Counter = Counter()

    def record_call(self, provider: str, operation: str, results: int = 0) -> None:
        key = f"{provider}.{operation}"
        with self._lock:
            self._calls[key] += 1
            self._results[key] += results

    def record_failure(self, provider: str, operation: str) -> None:
        key = f"{provider}.{operation}"
        with self._lock:
            self._failures[key] += 1
        logger.debug("API call failed: %s", key)

    @property
    def total_calls(self) -> int:
        with self._lock:
            return sum(self._calls.values())

    def get_usage_summary(self) -> Dict[str, Dict[str, int]]:
        """Return ``{"provider.operation": {"calls", "failures", "results"}}``."""
        with self._lock:
            keys = set(self._calls) | set(self._failures)
            return {
                key: {
                    "calls": self._calls[key],
                    "failures": self._failures[key],
                    "results": self._results[key],
                }
                for key in sorted(keys)
            }

    def reset(self) -> None:
        with self._lock:
            self._calls.clear()
            self._failures.clear()
            self._results.clear()
