"""
Harvest configuration.

A single immutable ``HarvestConfig`` value is built once at startup (from the
environment or a config file) and injected into the orchestrator, providers
and planner. Nothing else in the package reads process environment.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, List, Mapping, Optional, Tuple

from dotenv import load_dotenv

from ..models import BoundingBox

logger = logging.getLogger(__name__)

COUNTRY_ISO = "ME"
USER_AGENT = "pharmacy-harvester/5.0"

DEFAULT_BBOX = BoundingBox(min_lat=41.85, min_lng=18.40, max_lat=43.60, max_lng=20.35)

OVERPASS_MIRRORS: Tuple[str, ...] = (
    "https://overpass-api.de/api/interpreter",
    "https://overpass.kumi.systems/api/interpreter",
    "https://overpass.openstreetmap.fr/api/interpreter",
)

FZO_URL = "https://fzocg.me/wp-content/uploads/2023/11/Spisak-apoteka-za-sajt.pdf"
MONTEFARM_URL = "https://montefarm.co.me/en/apoteke/"
BENU_URL = "https://www.benu.me/apoteke"

# Logical provider name -> env vars checked in order
CREDENTIAL_ENV = {
    "google": ("GOOGLE_MAP_API", "GOOGLE_API_KEY"),
    "foursquare": ("FSQ_API_KEY",),
    "here": ("HERE_API_KEY",),
    "tomtom": ("TOMTOM_API_KEY",),
}


@dataclass(frozen=True)
class HarvestConfig:
    """Every tunable of a harvest run.

    Durations are in seconds, radii in metres.
    """
    # Credentials; an empty value disables that provider
    google_api_key: str = ""
    foursquare_api_key: str = ""
    here_api_key: str = ""
    tomtom_api_key: str = ""

    # Network
    fetch_timeout: float = 20.0
    overpass_timeout: float = 35.0
    retries: int = 2
    retry_backoff: float = 0.4
    user_agent: str = USER_AGENT

    # Google pacing
    page_delay: float = 2.3
    quota_backoff: float = 6.0
    max_quota_retries: int = 3
    detail_delay: float = 0.1
    fetch_details: bool = False
    max_pages: int = 3

    # Coverage planning
    h3_resolution: int = 6
    google_radius_m: int = 2000
    expansion_radius_m: int = 800
    max_expansion_seeds: int = 250
    completeness_threshold: int = 15
    city_clip_factor: float = 3.0

    # Orchestration
    concurrency: int = 6
    run_deadline: float = 360.0
    geocode_delay: float = 0.12

    # Geography and sources
    country_iso: str = COUNTRY_ISO
    country_bbox: BoundingBox = DEFAULT_BBOX
    overpass_mirrors: Tuple[str, ...] = OVERPASS_MIRRORS
    fzo_url: str = FZO_URL
    montefarm_url: str = MONTEFARM_URL
    benu_url: str = BENU_URL

    def __post_init__(self):
        if self.concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if self.retries < 0:
            raise ValueError("retries cannot be negative")
        if self.max_expansion_seeds < 0:
            raise ValueError("max_expansion_seeds cannot be negative")
        if not 0 <= self.h3_resolution <= 15:
            raise ValueError("h3_resolution must be between 0 and 15")

    @property
    def credentials(self) -> Dict[str, str]:
        return {
            "google": self.google_api_key,
            "foursquare": self.foursquare_api_key,
            "here": self.here_api_key,
            "tomtom": self.tomtom_api_key,
        }

    def missing_credentials(self) -> List[str]:
        """Logical names of providers disabled for lack of a credential."""
        return sorted(name for name, value in self.credentials.items() if not value)

    def with_overrides(self, **changes: Any) -> HarvestConfig:
        return replace(self, **changes)

    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None, load_env_file: bool = True) -> HarvestConfig:
        """Read credentials and tunables from environment variables once.

        Variable names follow the deployment conventions (``FETCH_TIMEOUT_MS``,
        ``H3_RES``, ``MAX_EXPANSION_SEEDS`` ...). Millisecond values are
        converted to seconds.
        """
        if env is None:
            if load_env_file:
                load_dotenv()
            env = os.environ

        def _credential(name: str) -> str:
            for var in CREDENTIAL_ENV[name]:
                value = env.get(var)
                if value:
                    return value
            return ""

        def _int(var: str, default: int) -> int:
            raw = env.get(var)
            if raw in (None, ""):
                return default
            try:
                return int(raw)
            except ValueError:
                logger.warning("Invalid %s=%r, using default %s", var, raw, default)
                return default

        def _ms(var: str, default_seconds: float) -> float:
            return _int(var, int(default_seconds * 1000)) / 1000.0

        defaults = cls()
        return cls(
            google_api_key=_credential("google"),
            foursquare_api_key=_credential("foursquare"),
            here_api_key=_credential("here"),
            tomtom_api_key=_credential("tomtom"),
            fetch_timeout=_ms("FETCH_TIMEOUT_MS", defaults.fetch_timeout),
            overpass_timeout=_ms("OVERPASS_TIMEOUT_MS", defaults.overpass_timeout),
            h3_resolution=_int("H3_RES", defaults.h3_resolution),
            google_radius_m=_int("GOOGLE_RADIUS_M", defaults.google_radius_m),
            expansion_radius_m=_int("EXPANSION_RADIUS_M", defaults.expansion_radius_m),
            max_expansion_seeds=_int("MAX_EXPANSION_SEEDS", defaults.max_expansion_seeds),
            concurrency=_int("CONCURRENCY", defaults.concurrency),
            retries=_int("RETRIES", defaults.retries),
            page_delay=_ms("GOOGLE_PAGE_DELAY_MS", defaults.page_delay),
            quota_backoff=_ms("GOOGLE_OQL_SLEEP_MS", defaults.quota_backoff),
        )
