"""Retry policy shared by every provider adapter."""
import logging
from typing import Callable, TypeVar

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_incrementing,
)

from ..exceptions import ProviderError, QuotaExceededError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _is_retryable(exc: BaseException) -> bool:
    # Quota exhaustion already had its own backoff inside the adapter
    return isinstance(exc, ProviderError) and not isinstance(exc, QuotaExceededError)


class RetryPolicy:
    """Bounded retries with linear backoff.

    Attempt ``n`` (0-based) that fails waits ``backoff * (n + 1)`` seconds before
    the next one. Only ``ProviderError`` is retried; the last failure is re-raised
    unchanged once ``retries + 1`` attempts are spent.
    """

    def __init__(self, retries: int = 2, backoff: float = 0.4, sleep: Callable[[float], None] = None):
        if retries < 0:
            raise ValueError("retries cannot be negative")
        self.retries = retries
        self.backoff = backoff
        self._sleep = sleep

    @classmethod
    def from_config(cls, config) -> "RetryPolicy":
        return cls(retries=config.retries, backoff=config.retry_backoff)

    def _retrying(self) -> Retrying:
        kwargs = dict(
            stop=stop_after_attempt(self.retries + 1),
            wait=wait_incrementing(start=self.backoff, increment=self.backoff),
            retry=retry_if_exception(_is_retryable),
            before_sleep=before_sleep_log(logger, logging.DEBUG),
            reraise=True,
        )
        if self._sleep is not None:
            kwargs["sleep"] = self._sleep
        return Retrying(**kwargs)

    def call(self, fn: Callable[..., T], *args, **kwargs) -> T:
        return self._retrying()(fn, *args, **kwargs)
