"""Run-scoped deadline and a bounded worker pool with index-addressed result slots."""
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Generic, List, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class Deadline:
    """Wall-clock budget checked cooperatively before each unit of work."""

    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.seconds = seconds
        self.expires_at = clock() + seconds

    @property
    def remaining(self) -> float:
        return max(0.0, self.expires_at - self._clock())

    @property
    def expired(self) -> bool:
        return self._clock() >= self.expires_at


@dataclass
class PoolResult(Generic[R]):
    """``results[i]`` belongs to ``items[i]``; ``None`` marks a unit skipped by the deadline."""
    results: List[Optional[R]]
    skipped: int = 0

    def completed(self) -> List[R]:
        return [r for r in self.results if r is not None]


class BoundedPool:
    """Runs ``fn`` over items on at most ``workers`` threads.

    Each worker writes only its own slot, so no locking is needed. A unit
    that has started always runs to completion; units not yet started when
    the deadline passes are skipped.
    """

    def __init__(self, workers: int, deadline: Optional[Deadline] = None):
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self.workers = workers
        self.deadline = deadline

    def map(self, fn: Callable[[T], R], items: Sequence[T]) -> PoolResult[R]:
        slots: List[Optional[R]] = [None] * len(items)
        started = [False] * len(items)
        if not items:
            return PoolResult(slots)

        def run(index: int) -> None:
            if self.deadline is not None and self.deadline.expired:
                return
            started[index] = True
            slots[index] = fn(items[index])

        with ThreadPoolExecutor(max_workers=min(self.workers, len(items))) as executor:
            futures = [executor.submit(run, i) for i in range(len(items))]
            for future in futures:
                future.result()

        skipped = started.count(False)
        if skipped:
            logger.info("Deadline reached: %d of %d work units skipped", skipped, len(items))
        return PoolResult(slots, skipped)
