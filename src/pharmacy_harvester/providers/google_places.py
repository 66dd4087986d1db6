"""Google Places adapter: nearby and text search with optional Place Details.

Pagination
----------
A search returns at most ``max_pages`` pages. Google needs a short warm-up
before a ``next_page_token`` becomes valid, so the adapter sleeps
``page_delay`` seconds before each follow-up page. ``OVER_QUERY_LIMIT``
sleeps ``quota_backoff`` seconds and retries the same page, at most
``max_quota_retries`` times.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Optional

import googlemaps  # type: ignore
from googlemaps.exceptions import ApiError, Timeout, TransportError

from ..exceptions import ProviderUnavailableError, QuotaExceededError
from ..models import Candidate, ProviderQuery, ProviderType, QueryKind
from ..normalization import normalize_candidate
from .base import ProviderAdapter

logger = logging.getLogger(__name__)

DETAIL_FIELDS = [
    "place_id",
    "name",
    "formatted_address",
    "geometry",
    "formatted_phone_number",
    "international_phone_number",
    "website",
    "opening_hours",
    "rating",
]

_QUOTA_STATUS = "OVER_QUERY_LIMIT"
# Returned when a page token is used before it is ready; ends pagination quietly
_STALE_TOKEN_STATUS = "INVALID_REQUEST"


def _weekday_text(result: Dict[str, Any]) -> Optional[str]:
    hours = result.get("opening_hours") or {}
    lines = hours.get("weekday_text") or []
    return "; ".join(lines) or None


class GooglePlacesProvider(ProviderAdapter):
    """Google Places through the ``googlemaps`` client."""

    name = "google"
    provider_type = ProviderType.GOOGLE

    def __init__(self, config, gmaps: googlemaps.Client | None = None,
                 sleep: Callable[[float], None] = time.sleep, **kwargs):
        super().__init__(config, **kwargs)
        self._client = gmaps
        self._sleep = sleep

    @property
    def enabled(self) -> bool:
        return self._client is not None or bool(self.config.google_api_key)

    @property
    def client(self) -> googlemaps.Client:
        if self._client is None:
            try:
                self._client = googlemaps.Client(
                    key=self.config.google_api_key,
                    timeout=self.config.fetch_timeout,
                    retry_over_query_limit=False,
                )
            except ValueError as exc:
                raise ProviderUnavailableError(f"cannot create client: {exc}", provider=self.name) from exc
        return self._client

    def _fetch(self, query: ProviderQuery) -> List[Candidate]:
        if query.kind == QueryKind.NEARBY:
            params = {
                "location": (query.lat, query.lng),
                "radius": query.radius or self.config.google_radius_m,
                "language": query.language,
            }
            if query.keyword:
                params["keyword"] = query.keyword
            else:
                params["type"] = "pharmacy"
            pages = self._paginate(self.client.places_nearby, "nearby", params)
        else:
            params = {
                "query": query.text,
                "language": query.language,
                "region": self.config.country_iso.lower(),
            }
            pages = self._paginate(self.client.places, "text", params)

        seen = set()
        candidates = []
        for result in pages:
            place_id = result.get("place_id")
            if not place_id or place_id in seen:
                continue
            seen.add(place_id)
            if self.config.fetch_details:
                result = self._with_details(result)
            candidates.append(self._to_candidate(result))
        return candidates

    def _paginate(self, search: Callable[..., Dict[str, Any]], operation: str,
                  params: Dict[str, Any]) -> List[Dict[str, Any]]:
        results: List[Dict[str, Any]] = []
        token = None
        pages = 0
        quota_hits = 0
        while pages < self.config.max_pages:
            if token:
                self._sleep(self.config.page_delay)
                call_params = {"page_token": token}
            else:
                call_params = params
            try:
                response = search(**call_params)
            except ApiError as exc:
                if exc.status == _QUOTA_STATUS:
                    quota_hits += 1
                    if quota_hits > self.config.max_quota_retries:
                        if results:
                            logger.warning("Google quota exhausted after %d pages; keeping partial results", pages)
                            break
                        raise QuotaExceededError("OVER_QUERY_LIMIT retries exhausted", provider=self.name) from exc
                    logger.info("Google OVER_QUERY_LIMIT; backing off %.1fs", self.config.quota_backoff)
                    self._sleep(self.config.quota_backoff)
                    continue
                if exc.status == _STALE_TOKEN_STATUS and token:
                    break
                if results:
                    logger.warning("Google %s search stopped on status %s", operation, exc.status)
                    break
                raise ProviderUnavailableError(f"{operation} search failed: {exc}", provider=self.name) from exc
            except (Timeout, TransportError) as exc:
                if results:
                    logger.warning("Google %s search stopped: %s", operation, exc)
                    break
                raise ProviderUnavailableError(f"{operation} search failed: {exc}", provider=self.name) from exc

            self.tracker.record_call(self.name, f"{operation}_page", results=len(response.get("results") or []))
            results.extend(response.get("results") or [])
            pages += 1
            token = response.get("next_page_token")
            if not token:
                break
        return results

    def _with_details(self, result: Dict[str, Any]) -> Dict[str, Any]:
        """Merge Place Details into a search result; the search result wins on failure."""
        try:
            details = self.client.place(result["place_id"], fields=DETAIL_FIELDS,
                                        language="en").get("result") or {}
        except (ApiError, Timeout, TransportError) as exc:
            self.tracker.record_failure(self.name, "details")
            logger.debug("Place details failed for %s: %s", result.get("place_id"), exc)
            return result
        finally:
            self._sleep(self.config.detail_delay)
        self.tracker.record_call(self.name, "details", results=1 if details else 0)
        return {**result, **{k: v for k, v in details.items() if v}}

    def _to_candidate(self, result: Dict[str, Any]) -> Candidate:
        location = (result.get("geometry") or {}).get("location") or {}
        lat, lng = location.get("lat"), location.get("lng")
        return normalize_candidate(
            ProviderType.GOOGLE,
            name=result.get("name"),
            address=result.get("vicinity") or result.get("formatted_address"),
            lat=lat if isinstance(lat, (int, float)) else None,
            lng=lng if isinstance(lng, (int, float)) else None,
            phone=result.get("international_phone_number") or result.get("formatted_phone_number"),
            website=result.get("website"),
            opening_hours=_weekday_text(result),
            place_id=result.get("place_id"),
            google_rating=result.get("rating"),
            bbox=self.config.country_bbox,
        )
