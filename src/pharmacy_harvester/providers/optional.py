"""Secondary commercial providers: Foursquare, HERE and TomTom.

Each one issues a single nearby call around the query center. A provider
without a credential is disabled and contributes nothing.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List

from ..models import Candidate, ProviderQuery, ProviderType, QueryKind
from ..normalization import normalize_candidate
from .base import ProviderAdapter, require_list

logger = logging.getLogger(__name__)

DEFAULT_TERM = "pharmacy"


class _CenteredProvider(ProviderAdapter):
    """Adapter that needs a center point for every query."""

    credential_field = ""

    @property
    def api_key(self) -> str:
        return getattr(self.config, self.credential_field, "")

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def supports(self, query: ProviderQuery) -> bool:
        return super().supports(query) and query.lat is not None and query.lng is not None

    @staticmethod
    def _term(query: ProviderQuery) -> str:
        return query.text or query.keyword or DEFAULT_TERM

    def _radius(self, query: ProviderQuery) -> int:
        return query.radius or self.config.google_radius_m

    def _normalize(self, **fields: Any) -> Candidate:
        return normalize_candidate(self.provider_type, bbox=self.config.country_bbox, **fields)


class FoursquareProvider(_CenteredProvider):
    name = "fsq"
    provider_type = ProviderType.FSQ
    credential_field = "foursquare_api_key"

    URL = "https://api.foursquare.com/v3/places/search"
    PHARMACY_CATEGORY = "13032"

    def _fetch(self, query: ProviderQuery) -> List[Candidate]:
        payload = self._request_json(
            self.URL,
            params={
                "ll": f"{query.lat},{query.lng}",
                "radius": self._radius(query),
                "categories": self.PHARMACY_CATEGORY,
                "query": self._term(query),
                "limit": 50,
            },
            headers={"Authorization": self.api_key},
        )
        return [self._from_result(r) for r in require_list(payload, "results", self.name)]

    def _from_result(self, result: Dict[str, Any]) -> Candidate:
        main = (result.get("geocodes") or {}).get("main") or {}
        return self._normalize(
            name=result.get("name"),
            address=(result.get("location") or {}).get("formatted_address"),
            lat=main.get("latitude"),
            lng=main.get("longitude"),
            website=result.get("website"),
        )


class HereProvider(_CenteredProvider):
    name = "here"
    provider_type = ProviderType.HERE
    credential_field = "here_api_key"

    URL = "https://discover.search.hereapi.com/v1/discover"

    def _fetch(self, query: ProviderQuery) -> List[Candidate]:
        payload = self._request_json(
            self.URL,
            params={
                "at": f"{query.lat},{query.lng}",
                "q": self._term(query),
                "limit": 50,
                "apiKey": self.api_key,
            },
        )
        return [self._from_item(i) for i in require_list(payload, "items", self.name)]

    def _from_item(self, item: Dict[str, Any]) -> Candidate:
        position = item.get("position") or {}
        contacts = item.get("contacts") or [{}]
        www = contacts[0].get("www") or [{}]
        phones = contacts[0].get("phone") or []
        return self._normalize(
            name=item.get("title"),
            address=(item.get("address") or {}).get("label"),
            lat=position.get("lat"),
            lng=position.get("lng"),
            phone=[p.get("value") for p in phones if p.get("value")],
            website=www[0].get("value"),
        )


class TomTomProvider(_CenteredProvider):
    """Category search only; free-text queries are not supported."""

    name = "tomtom"
    provider_type = ProviderType.TOMTOM
    credential_field = "tomtom_api_key"
    supported_kinds = (QueryKind.NEARBY,)

    URL = "https://api.tomtom.com/search/2/nearbySearch/.json"
    PHARMACY_CATEGORY = "9554"

    def _fetch(self, query: ProviderQuery) -> List[Candidate]:
        payload = self._request_json(
            self.URL,
            params={
                "key": self.api_key,
                "lat": query.lat,
                "lon": query.lng,
                "radius": self._radius(query),
                "categorySet": self.PHARMACY_CATEGORY,
                "limit": 100,
            },
        )
        return [self._from_result(r) for r in require_list(payload, "results", self.name)]

    def _from_result(self, result: Dict[str, Any]) -> Candidate:
        poi = result.get("poi") or {}
        position = result.get("position") or {}
        return self._normalize(
            name=poi.get("name"),
            address=(result.get("address") or {}).get("freeformAddress"),
            lat=position.get("lat"),
            lng=position.get("lon"),
            phone=poi.get("phone"),
            website=poi.get("url"),
        )
