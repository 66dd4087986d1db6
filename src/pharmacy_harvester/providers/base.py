"""
Common provider adapter contract.

Every adapter turns a ``ProviderQuery`` into a list of ``Candidate`` objects.
``fetch`` is the adapter boundary: provider failures are logged there and
degrade to an empty list, so callers never need to handle them.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import requests

from ..exceptions import MalformedPayloadError, ProviderError, ProviderUnavailableError
from ..models import Candidate, ProviderQuery, ProviderType, QueryKind
from ..utils.api_usage_tracker import ApiCallTracker
from ..utils.retry import RetryPolicy

logger = logging.getLogger(__name__)


def build_session(user_agent: str) -> requests.Session:
    session = requests.Session()
    session.headers.update({"User-Agent": user_agent, "Accept": "application/json"})
    return session


class ProviderAdapter(ABC):
    """Base class for geodata sources.

    Subclasses set ``name`` and ``provider_type``, declare the query kinds they
    understand in ``supported_kinds`` and implement ``_fetch``.
    """

    name = "provider"
    provider_type: ProviderType = ProviderType.GOOGLE
    supported_kinds = (QueryKind.NEARBY, QueryKind.TEXT)

    def __init__(self, config, session: Optional[requests.Session] = None,
                 retry_policy: Optional[RetryPolicy] = None,
                 tracker: Optional[ApiCallTracker] = None):
        self.config = config
        self.session = session or build_session(config.user_agent)
        self.retry_policy = retry_policy or RetryPolicy.from_config(config)
        self.tracker = tracker or ApiCallTracker()

    @property
    def enabled(self) -> bool:
        return True

    def supports(self, query: ProviderQuery) -> bool:
        return query.kind in self.supported_kinds

    def fetch(self, query: ProviderQuery) -> List[Candidate]:
        """Run ``query`` against the provider; never raises for provider failures."""
        if not self.enabled or not self.supports(query):
            return []
        operation = query.kind.value
        try:
            candidates = self.retry_policy.call(self._fetch, query)
        except ProviderError as exc:
            self.tracker.record_failure(self.name, operation)
            logger.warning("%s degraded to empty result: %s", self.name, exc)
            return []
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            self.tracker.record_failure(self.name, operation)
            logger.warning("%s degraded to empty result: %s",
                           self.name, MalformedPayloadError(str(exc), provider=self.name))
            return []
        self.tracker.record_call(self.name, operation, results=len(candidates))
        return candidates

    @abstractmethod
    def _fetch(self, query: ProviderQuery) -> List[Candidate]:
        """Provider-specific request and mapping; may raise ``ProviderError``."""

    def _request_json(self, url: str, *, method: str = "GET", params: Optional[Dict[str, Any]] = None,
                      data: Optional[Dict[str, Any]] = None, headers: Optional[Dict[str, str]] = None,
                      timeout: Optional[float] = None) -> Any:
        """Issue one HTTP request and decode its JSON body.

        Raises:
            ProviderUnavailableError: network error, timeout or non-2xx status.
            MalformedPayloadError: the body is not JSON.
        """
        try:
            response = self.session.request(
                method, url, params=params, data=data, headers=headers,
                timeout=timeout or self.config.fetch_timeout,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise ProviderUnavailableError(f"{url}: {exc}", provider=self.name) from exc
        try:
            return response.json()
        except ValueError as exc:
            raise MalformedPayloadError(f"{url}: response is not JSON", provider=self.name) from exc


def require_list(payload: Any, key: str, provider: str) -> List[Dict[str, Any]]:
    """Return ``payload[key]`` as a list, treating a missing key as empty."""
    if not isinstance(payload, dict):
        raise MalformedPayloadError(f"expected an object, got {type(payload).__name__}", provider=provider)
    items = payload.get(key) or []
    if not isinstance(items, list):
        raise MalformedPayloadError(f"'{key}' is not a list", provider=provider)
    return items
