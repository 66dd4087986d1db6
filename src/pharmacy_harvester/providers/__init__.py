"""Provider adapters and document scrapers."""
from typing import Dict, Optional

import requests

from ..utils.api_usage_tracker import ApiCallTracker
from .base import ProviderAdapter, build_session
from .google_places import GooglePlacesProvider
from .optional import FoursquareProvider, HereProvider, TomTomProvider
from .overpass import OverpassProvider
from .registry import (
    BenuScraper,
    FzoRegistryScraper,
    MontefarmScraper,
    RegistryScraper,
    parse_benu_row,
    parse_fzo_row,
    parse_montefarm_row,
    parse_row,
)


class ProviderSet:
    """The adapters one harvest run talks to."""

    def __init__(self, google: ProviderAdapter, osm: OverpassProvider,
                 secondary: Dict[str, ProviderAdapter], registries: Dict[str, RegistryScraper]):
        self.google = google
        self.osm = osm
        self.secondary = secondary
        self.registries = registries

    @classmethod
    def from_config(cls, config, tracker: Optional[ApiCallTracker] = None,
                    session: Optional[requests.Session] = None) -> "ProviderSet":
        tracker = tracker or ApiCallTracker()
        session = session or build_session(config.user_agent)
        shared = dict(session=session, tracker=tracker)
        return cls(
            google=GooglePlacesProvider(config, **shared),
            osm=OverpassProvider(config, **shared),
            secondary={
                "fsq": FoursquareProvider(config, **shared),
                "here": HereProvider(config, **shared),
                "tomtom": TomTomProvider(config, **shared),
            },
            registries={
                "fzo": FzoRegistryScraper(config, **shared),
                "montefarm": MontefarmScraper(config, **shared),
                "benu": BenuScraper(config, **shared),
            },
        )

    def geocoders(self):
        """Enabled adapters, Google first, used to locate registry rows."""
        return [p for p in [self.google, *self.secondary.values()] if p.enabled]

    def enabled_names(self):
        return [p.name for p in [self.google, self.osm, *self.secondary.values()] if p.enabled]


__all__ = [
    "BenuScraper",
    "FoursquareProvider",
    "FzoRegistryScraper",
    "GooglePlacesProvider",
    "HereProvider",
    "MontefarmScraper",
    "OverpassProvider",
    "ProviderAdapter",
    "ProviderSet",
    "RegistryScraper",
    "TomTomProvider",
    "parse_benu_row",
    "parse_fzo_row",
    "parse_montefarm_row",
    "parse_row",
]
