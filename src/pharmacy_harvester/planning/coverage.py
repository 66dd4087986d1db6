"""
Geo coverage planner.

Decides which provider queries a city run issues, in four passes:

1. a city baseline (plain nearby search, keyword variants, chain and
   qualifier text searches per municipality);
2. a country-wide hex sweep, only when the baseline found too little;
3. seed expansion: small-radius searches around every discovered pharmacy
   to catch clusters the first passes missed;
4. a single nearby query for the secondary providers.

The planner only builds ``ProviderQuery`` values; it never performs I/O.
"""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence

from ..config.cities import MUNICIPALITIES
from ..models import BoundingBox, Candidate, CityCenter, ParsedRow, ProviderQuery
from ..normalization import geokey
from .hexgrid import H3Tessellator, Tessellator

logger = logging.getLogger(__name__)

# Multilingual search vocabulary
KW_CORE = ["apoteka", "апотека", "pharmacy", "chemist", "ljekarna", "barnatore"]
KW_QUAL = ["dežurna apoteka", "24h apoteka", "non stop apoteka", "hitna apoteka", "24/7 pharmacy", "apteka"]
KW_CHAINS = ["Montefarm", "BENU", "Galenika"]
LANGS = ["sr", "hr", "en", "sq", "it", "de", "bs", "me", "fr", "es"]

BASELINE_KEYWORDS = 5
BASELINE_LANGS = 2
TEXT_TERMS = 3
EXPANSION_KEYWORDS = 3
OPTIONAL_TERM = "pharmacy"
COUNTRY_NAME = "Montenegro"
COUNTRY_NAME_LOCAL = "Crna Gora"


class CoveragePlanner:
    """Builds the query plan for one city run.

    Args:
        config: ``HarvestConfig`` supplying radii, seed cap and H3 resolution.
        tessellator: geometry collaborator for the country sweep; defaults to
            H3 at ``config.h3_resolution``.
        municipalities: names combined with chain/qualifier terms in text search.
    """

    def __init__(self, config, tessellator: Optional[Tessellator] = None,
                 municipalities: Optional[Sequence[str]] = None):
        self.config = config
        self.tessellator = tessellator or H3Tessellator(config.h3_resolution)
        self.municipalities = list(MUNICIPALITIES if municipalities is None else municipalities)

    def baseline_queries(self, center: CityCenter) -> List[ProviderQuery]:
        langs = LANGS[:BASELINE_LANGS]
        queries = [ProviderQuery.nearby(center.lat, center.lng, center.radius, language=langs[0])]
        for lang in langs:
            for keyword in KW_CORE[:BASELINE_KEYWORDS]:
                queries.append(ProviderQuery.nearby(center.lat, center.lng, center.radius,
                                                    keyword=keyword, language=lang))
        terms = KW_CHAINS[:TEXT_TERMS] + KW_QUAL[:TEXT_TERMS]
        for municipality in self.municipalities:
            for lang in langs:
                for term in terms:
                    queries.append(ProviderQuery.free_text(f"{term} {municipality}", language=lang))
        return queries

    def needs_country_scan(self, found: int) -> bool:
        return found < self.config.completeness_threshold

    def country_grid_queries(self, bbox: BoundingBox) -> List[ProviderQuery]:
        centroids = self.tessellator.centroids(bbox.polygon())
        logger.info("Country sweep covers %d cells at resolution %s", len(centroids),
                    getattr(self.tessellator, "resolution", "?"))
        return [ProviderQuery.nearby(lat, lng, self.config.google_radius_m) for lat, lng in centroids]

    def select_seeds(self, seeds: Iterable[Candidate]) -> List[Candidate]:
        """First ``max_expansion_seeds`` seeds with distinct coordinates."""
        cap = self.config.max_expansion_seeds
        chosen: List[Candidate] = []
        seen = set()
        for seed in seeds:
            if len(chosen) >= cap:
                break
            key = geokey(seed.lat, seed.lng)
            if key is None or key in seen:
                continue
            seen.add(key)
            chosen.append(seed)
        return chosen

    def expansion_queries(self, seeds: Iterable[Candidate]) -> List[List[ProviderQuery]]:
        """One group of small-radius queries per selected seed.

        Each group holds an unkeyworded search plus ``KW_CORE[:3]`` keyword
        searches, all at ``expansion_radius_m``.
        """
        radius = self.config.expansion_radius_m
        groups = []
        for seed in self.select_seeds(seeds):
            group = [ProviderQuery.nearby(seed.lat, seed.lng, radius)]
            group.extend(ProviderQuery.nearby(seed.lat, seed.lng, radius, keyword=kw)
                         for kw in KW_CORE[:EXPANSION_KEYWORDS])
            groups.append(group)
        return groups

    def optional_queries(self, center: CityCenter) -> List[ProviderQuery]:
        return [ProviderQuery.nearby(center.lat, center.lng, center.radius, keyword=OPTIONAL_TERM)]

    def geocode_queries(self, row: ParsedRow, center: CityCenter) -> List[ProviderQuery]:
        """Free-text lookups for a registry row, most specific first."""
        texts = []
        if row.name and row.city_name:
            texts.append(f"Apoteka {row.name} {row.city_name}, {COUNTRY_NAME}")
        if row.city_name:
            texts.append(f"apoteka {row.city_name} {COUNTRY_NAME_LOCAL}")
        return [ProviderQuery.free_text(text, lat=center.lat, lng=center.lng, radius=center.radius)
                for text in texts]
