"""OpenStreetMap adapter backed by the Overpass API."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..exceptions import ProviderError, ProviderUnavailableError
from ..models import BoundingBox, Candidate, ProviderQuery, ProviderType, QueryKind
from ..normalization import normalize_candidate
from .base import ProviderAdapter, require_list

logger = logging.getLogger(__name__)

# Server-side query budget in seconds; the HTTP timeout is configured separately
_SERVER_TIMEOUT = 240

_PHARMACY_TAGS = (
    ("amenity", "pharmacy", ("node", "way", "relation")),
    ("healthcare", "pharmacy", ("node", "way", "relation")),
    ("shop", "chemist", ("node", "way")),
)


def build_pharmacy_query(country_iso: str) -> str:
    selectors = "\n".join(
        f'  {element}["{key}"="{value}"](area.a);'
        for key, value, elements in _PHARMACY_TAGS
        for element in elements
    )
    return (
        f"[out:json][timeout:{_SERVER_TIMEOUT}];\n"
        f'area["ISO3166-1"="{country_iso}"][admin_level=2]->.a;\n'
        f"(\n{selectors}\n);\n"
        "out tags center;"
    )


def build_bbox_query(country_iso: str) -> str:
    return f'[out:json][timeout:25];rel["ISO3166-1"="{country_iso}"]["admin_level"="2"];out ids bb;'


def _first(tags: Dict[str, str], *keys: str) -> Optional[str]:
    for key in keys:
        if tags.get(key):
            return tags[key]
    return None


class OverpassProvider(ProviderAdapter):
    """Whole-country pharmacy scan, tried against each mirror in order."""

    name = "osm"
    provider_type = ProviderType.OSM
    supported_kinds = (QueryKind.COUNTRY,)

    def _post(self, query: str) -> Any:
        errors = []
        for mirror in self.config.overpass_mirrors:
            try:
                return self._request_json(mirror, method="POST", data={"data": query},
                                          timeout=self.config.overpass_timeout)
            except ProviderError as exc:
                logger.info("Overpass mirror %s failed: %s", mirror, exc)
                errors.append(str(exc))
        raise ProviderUnavailableError(f"all Overpass mirrors failed ({len(errors)})", provider=self.name)

    def _fetch(self, query: ProviderQuery) -> List[Candidate]:
        payload = self._post(build_pharmacy_query(self.config.country_iso))
        candidates = []
        for element in require_list(payload, "elements", self.name):
            candidate = self._to_candidate(element)
            if candidate is not None:
                candidates.append(candidate)
        logger.info("Overpass returned %d pharmacies", len(candidates))
        return candidates

    def _to_candidate(self, element: Dict[str, Any]) -> Optional[Candidate]:
        if element.get("type") == "node":
            lat, lng = element.get("lat"), element.get("lon")
        else:
            center = element.get("center") or {}
            lat, lng = center.get("lat"), center.get("lon")
        if lat is None or lng is None:
            return None
        tags = element.get("tags") or {}
        street = " ".join(p for p in (tags.get("addr:street"), tags.get("addr:housenumber")) if p)
        return normalize_candidate(
            ProviderType.OSM,
            name=tags.get("name"),
            name_en=tags.get("name:en"),
            address=street or None,
            city_name=tags.get("addr:city"),
            lat=lat,
            lng=lng,
            phone=_first(tags, "phone", "contact:phone"),
            email=_first(tags, "email", "contact:email"),
            website=_first(tags, "website", "contact:website"),
            opening_hours=tags.get("opening_hours"),
            osm_type=element.get("type"),
            osm_id=element.get("id"),
            bbox=self.config.country_bbox,
        )

    def fetch_country_bbox(self) -> BoundingBox:
        """Bounds of the admin-level-2 relation, or the configured box on any failure."""
        try:
            payload = self._post(build_bbox_query(self.config.country_iso))
            bounds = require_list(payload, "elements", self.name)[0]["bounds"]
            return BoundingBox(
                min_lat=float(bounds["minlat"]),
                min_lng=float(bounds["minlon"]),
                max_lat=float(bounds["maxlat"]),
                max_lng=float(bounds["maxlon"]),
            )
        except (ProviderError, IndexError, KeyError, TypeError, ValueError) as exc:
            logger.info("Using configured country bbox: %s", exc)
            return self.config.country_bbox
