"""
Mapping of provider payload fields into the canonical ``Candidate`` shape.

Every adapter funnels its results through ``normalize_candidate`` so that
defaults, opening-hours classification, the national bounding-box invariant
and the reliability score are applied in exactly one place.
"""
from __future__ import annotations

import logging
from typing import Iterable, Optional, Union

from ..models import BoundingBox, Candidate, ProviderType
from .hours import classify_opening_hours
from .text import clamp

logger = logging.getLogger(__name__)

UNKNOWN_NAME = "Unknown Pharmacy"
UNKNOWN_ADDRESS = "Address not available"

BASE_SCORE = 50
PHONE_BONUS = 15
WEBSITE_BONUS = 15
ADDRESS_BONUS = 10
HOURS_BONUS = 10
TRUSTED_SOURCE_BONUS = 10
PLACE_ID_BONUS = 10
MIN_ADDRESS_LENGTH = 10


def reliability_score(
    *,
    phone: Optional[str] = None,
    website: Optional[str] = None,
    address: Optional[str] = None,
    opening_hours: Optional[str] = None,
    source_type: Optional[ProviderType] = None,
    place_id: Optional[str] = None,
) -> int:
    """Heuristic 0-100 confidence from field completeness and provider trust."""
    score = BASE_SCORE
    if phone:
        score += PHONE_BONUS
    if website:
        score += WEBSITE_BONUS
    if address and len(address) > MIN_ADDRESS_LENGTH:
        score += ADDRESS_BONUS
    if opening_hours:
        score += HOURS_BONUS
    if source_type == ProviderType.OSM:
        score += TRUSTED_SOURCE_BONUS
    if place_id:
        score += PLACE_ID_BONUS
    return min(100, max(0, score))


def _join(value: Union[None, str, Iterable[str]]) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip() or None
    joined = ", ".join(v for v in value if v)
    return joined or None


def _coordinate(value) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def normalize_candidate(
    source_type: ProviderType,
    *,
    name: Optional[str] = None,
    name_en: Optional[str] = None,
    address: Optional[str] = None,
    city_name: Optional[str] = None,
    lat=None,
    lng=None,
    phone: Union[None, str, Iterable[str]] = None,
    email: Union[None, str, Iterable[str]] = None,
    website: Optional[str] = None,
    opening_hours: Optional[str] = None,
    place_id: Optional[str] = None,
    osm_type: Optional[str] = None,
    osm_id: Optional[int] = None,
    google_rating: Optional[float] = None,
    bbox: Optional[BoundingBox] = None,
) -> Candidate:
    """Build a canonical candidate from loosely-typed provider fields.

    Args:
        source_type: Provider that produced the observation.
        bbox: National bounding box; coordinates outside it are dropped.

    Returns:
        A frozen ``Candidate`` with hours classified and reliability scored.
    """
    name = clamp(name) or None
    address = clamp(address) or None
    phone_text = _join(phone)
    email_text = _join(email)
    website = (website or "").strip() or None

    lat_f, lng_f = _coordinate(lat), _coordinate(lng)
    if lat_f is None or lng_f is None:
        lat_f = lng_f = None
    elif bbox is not None and not bbox.contains(lat_f, lng_f):
        logger.debug("Dropping out-of-country coordinates %s,%s for %s", lat_f, lng_f, name)
        lat_f = lng_f = None

    score = reliability_score(
        phone=phone_text,
        website=website,
        address=address,
        opening_hours=opening_hours,
        source_type=source_type,
        place_id=place_id,
    )

    return Candidate(
        name=name or UNKNOWN_NAME,
        name_en=clamp(name_en) or name or UNKNOWN_NAME,
        address=address or UNKNOWN_ADDRESS,
        source_type=source_type,
        city_name=clamp(city_name) or None,
        lat=lat_f,
        lng=lng_f,
        phone=phone_text,
        email=email_text,
        website=website,
        opening_hours=opening_hours or None,
        place_id=place_id or None,
        osm_type=osm_type or None,
        osm_id=osm_id,
        google_rating=google_rating,
        hours=classify_opening_hours(opening_hours),
        reliability_score=score,
    )
