"""
Data models for the pharmacy harvester.

This module defines the core data structures shared by providers, the
deduplication engine and the reconciliation engine.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class ProviderType(str, Enum):
    """The data source a candidate was observed in."""
    GOOGLE = "GOOGLE"
    OSM = "OSM"
    FSQ = "FSQ"
    HERE = "HERE"
    TOMTOM = "TOMTOM"
    FZO = "FZO"
    MONTEFARM = "MONTEFARM"
    BENU = "BENU"


class QueryKind(str, Enum):
    """Shape of a provider query."""
    NEARBY = "nearby"
    TEXT = "text"
    COUNTRY = "country"


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned lat/lng box."""
    min_lat: float
    min_lng: float
    max_lat: float
    max_lng: float

    def contains(self, lat: float, lng: float) -> bool:
        return self.min_lat <= lat <= self.max_lat and self.min_lng <= lng <= self.max_lng

    def polygon(self) -> List[tuple]:
        """Closed ring of (lat, lng) corners."""
        return [
            (self.min_lat, self.min_lng),
            (self.min_lat, self.max_lng),
            (self.max_lat, self.max_lng),
            (self.max_lat, self.min_lng),
            (self.min_lat, self.min_lng),
        ]


@dataclass(frozen=True)
class CityCenter:
    """Seed coordinates for one city."""
    slug: str
    lat: float
    lng: float
    radius: int
    name_me: Optional[str] = None
    name_en: Optional[str] = None


@dataclass(frozen=True)
class ProviderQuery:
    """Query descriptor handed to a provider adapter.

    Attributes:
        kind: nearby (center + radius), text (free text) or country scan.
        lat, lng, radius: search center for nearby queries, in metres.
        keyword: optional keyword for nearby queries.
        text: free-text query for text searches.
        language: preferred response language.
    """
    kind: QueryKind
    lat: Optional[float] = None
    lng: Optional[float] = None
    radius: Optional[int] = None
    keyword: Optional[str] = None
    text: Optional[str] = None
    language: str = "sr"

    @classmethod
    def nearby(cls, lat: float, lng: float, radius: int, keyword: Optional[str] = None,
               language: str = "sr") -> ProviderQuery:
        return cls(QueryKind.NEARBY, lat=lat, lng=lng, radius=radius, keyword=keyword, language=language)

    @classmethod
    def free_text(cls, text: str, language: str = "sr", lat: Optional[float] = None,
                  lng: Optional[float] = None, radius: Optional[int] = None) -> ProviderQuery:
        return cls(QueryKind.TEXT, lat=lat, lng=lng, radius=radius, text=text, language=language)

    @classmethod
    def country(cls) -> ProviderQuery:
        return cls(QueryKind.COUNTRY)


@dataclass(frozen=True)
class OpeningHours:
    """Opening hours classified into day buckets."""
    is_24h: bool = False
    open_sunday: bool = False
    hours_monfri: str = "N/A"
    hours_sat: str = "N/A"
    hours_sun: str = "N/A"


@dataclass(frozen=True)
class Candidate:
    """One normalized observation of a pharmacy from one provider.

    Candidates that survive deduplication are the run's canonical entities;
    ``source_type`` records which provider contributed them.
    """
    name: str
    name_en: str
    address: str
    source_type: ProviderType
    city_name: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None
    opening_hours: Optional[str] = None
    place_id: Optional[str] = None
    osm_type: Optional[str] = None
    osm_id: Optional[int] = None
    google_rating: Optional[float] = None
    hours: OpeningHours = field(default_factory=OpeningHours)
    reliability_score: int = 50

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None

    @property
    def osm_key(self) -> Optional[str]:
        if self.osm_type and self.osm_id is not None:
            return f"{self.osm_type}:{self.osm_id}"
        return None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["source_type"] = self.source_type.value
        return data


@dataclass(frozen=True)
class RegistryRow:
    """Raw text row scraped from a registry or chain document."""
    raw: str
    source_type: ProviderType


@dataclass(frozen=True)
class ParsedRow:
    """Fields recovered from a registry row; never carries coordinates."""
    source_type: ProviderType
    name: Optional[str] = None
    address: Optional[str] = None
    city_name: Optional[str] = None
    emails: tuple = ()
    phones: tuple = ()


@dataclass
class PharmacyRecord:
    """A stored pharmacy row."""
    name_me: str
    name_en: str
    address: str
    lat: float
    lng: float
    city_id: int
    phone: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None
    is_24h: bool = False
    open_sunday: bool = False
    hours_monfri: str = "N/A"
    hours_sat: str = "N/A"
    hours_sun: str = "N/A"
    google_place_id: Optional[str] = None
    google_rating: Optional[float] = None
    opening_hours: Optional[str] = None
    active: bool = True
    last_online_sync: Optional[datetime] = None
    id: Optional[int] = None

    # Fields compared on update; id, city_id and active are not reported as changes
    MAPPED_FIELDS = (
        "name_me", "name_en", "address", "lat", "lng", "phone", "email", "website",
        "is_24h", "open_sunday", "hours_monfri", "hours_sat", "hours_sun",
        "google_place_id", "google_rating", "opening_hours",
    )

    @classmethod
    def from_entity(cls, entity: Candidate, city_id: int, synced_at: Optional[datetime] = None) -> PharmacyRecord:
        """Map a canonical entity onto the stored shape."""
        website = entity.website if entity.website and entity.website.strip() else None
        return cls(
            name_me=entity.name or "Unknown Pharmacy",
            name_en=entity.name_en or entity.name or "Unknown Pharmacy",
            address=entity.address or "Address not available",
            lat=entity.lat,
            lng=entity.lng,
            city_id=city_id,
            phone=entity.phone or None,
            email=entity.email or None,
            website=website,
            is_24h=entity.hours.is_24h,
            open_sunday=entity.hours.open_sunday,
            hours_monfri=entity.hours.hours_monfri or "N/A",
            hours_sat=entity.hours.hours_sat or "N/A",
            hours_sun=entity.hours.hours_sun or "N/A",
            google_place_id=entity.place_id or None,
            google_rating=entity.google_rating,
            opening_hours=entity.opening_hours or None,
            active=True,
            last_online_sync=synced_at,
        )

    def mapped_values(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in self.MAPPED_FIELDS}

    def to_dict(self) -> Dict[str, Any]:
        data = {name: getattr(self, name) for name in self.__dataclass_fields__}
        if self.last_online_sync is not None:
            data["last_online_sync"] = self.last_online_sync.isoformat()
        return data
