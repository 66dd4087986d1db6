"""
Deduplication of one run's candidate pool.

Stage A drops exact repeats by external place id, native OSM id or rounded
coordinates. Stage B buckets the survivors by coordinates (or by name when
coordinates are missing) and drops near-identical names inside a bucket.
Neither stage merges fields: the first kept candidate wins as-is.
"""
import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, Iterable, List

from ..models import Candidate
from ..normalization import geokey, name_similarity, normalize_name

logger = logging.getLogger(__name__)

FUZZY_THRESHOLD = 0.8


@dataclass
class DedupStats:
    """Counts of candidates removed, by the key that matched."""
    place_id: int = 0
    osm_id: int = 0
    geokey: int = 0
    fuzzy_name: int = 0

    @property
    def total(self) -> int:
        return self.place_id + self.osm_id + self.geokey + self.fuzzy_name

    def to_dict(self) -> Dict[str, int]:
        return {
            "place_id": self.place_id,
            "osm_id": self.osm_id,
            "geokey": self.geokey,
            "fuzzy_name": self.fuzzy_name,
            "total": self.total,
        }


def exact_dedupe(items: Iterable[Candidate], stats: DedupStats = None) -> List[Candidate]:
    """Keep the first candidate per place id, OSM id and geokey.

    Keys are registered in that order as each one is checked, so a candidate
    dropped on its OSM id or geokey has already claimed its place id.
    """
    stats = stats if stats is not None else DedupStats()
    seen_place, seen_osm, seen_geo = set(), set(), set()
    kept = []
    for item in items:
        if item.place_id:
            if item.place_id in seen_place:
                stats.place_id += 1
                continue
            seen_place.add(item.place_id)
        osm_key = item.osm_key
        if osm_key:
            if osm_key in seen_osm:
                stats.osm_id += 1
                continue
            seen_osm.add(osm_key)
        geo = geokey(item.lat, item.lng)
        if geo:
            if geo in seen_geo:
                stats.geokey += 1
                continue
            seen_geo.add(geo)
        kept.append(item)
    return kept


def fuzzy_merge(items: Iterable[Candidate], stats: DedupStats = None,
                threshold: float = FUZZY_THRESHOLD) -> List[Candidate]:
    """Within each location bucket, drop names at least ``threshold`` similar to a kept one."""
    stats = stats if stats is not None else DedupStats()
    buckets: "OrderedDict[str, List[Candidate]]" = OrderedDict()
    for item in items:
        key = geokey(item.lat, item.lng) or f"~{normalize_name(item.name)}"
        buckets.setdefault(key, []).append(item)

    merged = []
    for bucket in buckets.values():
        kept: List[Candidate] = []
        for item in sorted(bucket, key=lambda c: normalize_name(c.name)):
            if any(name_similarity(item.name, other.name) >= threshold for other in kept):
                stats.fuzzy_name += 1
                continue
            kept.append(item)
        merged.extend(kept)
    return merged


def deduplicate(items: Iterable[Candidate], stats: DedupStats = None) -> List[Candidate]:
    """Run both stages and order the canonical set by normalized name."""
    stats = stats if stats is not None else DedupStats()
    pool = list(items)
    canonical = fuzzy_merge(exact_dedupe(pool, stats), stats)
    canonical.sort(key=lambda c: normalize_name(c.name))
    logger.info("Deduplicated %d candidates into %d entities", len(pool), len(canonical))
    return canonical
