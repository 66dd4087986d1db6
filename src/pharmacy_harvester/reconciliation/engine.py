"""
Reconciliation of a run's canonical entities against the persisted store.

Each entity is matched in strict priority order, stopping at the first hit:

1. external place id;
2. (city, normalized name);
3. any record of the city within a ±0.001° box around the coordinates.

A match is overwritten in full and stamped with the sync time; no match
creates a new record. Writes are sequential, one entity at a time, and a
failure on one entity never aborts the batch.
"""
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from ..models import Candidate, PharmacyRecord
from .store import PROXIMITY_DELTA, PharmacyStore

logger = logging.getLogger(__name__)

MATCH_PLACE_ID = "google_place_id"
MATCH_NAME = "name_match"
MATCH_COORDINATES = "coordinates"

REVIEW_THRESHOLD = 70


@dataclass
class ReconcileResult:
    """Counts plus the per-entity action log of one reconciliation pass."""
    created: int = 0
    updated: int = 0
    errors: int = 0
    actions: List[Dict[str, Any]] = field(default_factory=list)
    error_log: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.created + self.updated


def _field_changes(old: PharmacyRecord, new: PharmacyRecord) -> List[Dict[str, Any]]:
    old_values, new_values = old.mapped_values(), new.mapped_values()
    return [
        {"field": name, "old": old_values[name], "new": new_values[name]}
        for name in PharmacyRecord.MAPPED_FIELDS
        if old_values[name] != new_values[name]
    ]


def _precheck(entity: Candidate) -> Optional[str]:
    if not entity.has_coordinates:
        return "missing coordinates"
    if not entity.name:
        return "missing name"
    if not entity.address:
        return "missing address"
    return None


class Reconciler:
    """Upserts canonical entities into a ``PharmacyStore``."""

    def __init__(self, store: PharmacyStore, clock: Callable[[], datetime] = None,
                 proximity_delta: float = PROXIMITY_DELTA):
        self.store = store
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.proximity_delta = proximity_delta

    def find_match(self, entity: Candidate, city_id: int) -> Tuple[Optional[PharmacyRecord], Optional[str]]:
        if entity.place_id:
            existing = self.store.find_by_external_id(entity.place_id)
            if existing is not None:
                return existing, MATCH_PLACE_ID
        existing = self.store.find_by_city_and_name(city_id, entity.name)
        if existing is not None:
            return existing, MATCH_NAME
        existing = self.store.find_by_bounding_box(city_id, entity.lat, entity.lng, self.proximity_delta)
        if existing is not None:
            return existing, MATCH_COORDINATES
        return None, None

    def reconcile(self, entities: Sequence[Candidate], city_id: int) -> ReconcileResult:
        result = ReconcileResult()
        for entity in entities:
            problem = _precheck(entity)
            if problem:
                result.errors += 1
                logger.debug("Skipping %s: %s", entity.name, problem)
                continue
            try:
                result.actions.append(self._reconcile_one(entity, city_id, result))
            except Exception as exc:
                result.errors += 1
                result.error_log.append({
                    "pharmacy": entity.name or "Unknown",
                    "error": str(exc),
                    "google_place_id": entity.place_id,
                })
                logger.warning("Failed to persist %s: %s", entity.name, exc)
        logger.info("Reconciled %d entities: %d created, %d updated, %d errors",
                    len(entities), result.created, result.updated, result.errors)
        return result

    def _reconcile_one(self, entity: Candidate, city_id: int, result: ReconcileResult) -> Dict[str, Any]:
        incoming = PharmacyRecord.from_entity(entity, city_id, synced_at=self.clock())
        existing, method = self.find_match(entity, city_id)
        action = {
            "name": incoming.name_me,
            "google_place_id": incoming.google_place_id,
            "reliability": entity.reliability_score,
            "requires_review": entity.reliability_score < REVIEW_THRESHOLD,
            "entity": entity,
        }
        if existing is not None:
            changes = _field_changes(existing, incoming)
            saved = self.store.update(replace(incoming, id=existing.id))
            result.updated += 1
            action.update(id=saved.id, action="updated", match_method=method, changes=changes)
        else:
            saved = self.store.create(incoming)
            result.created += 1
            action.update(id=saved.id, action="created", match_method=None, changes=[])
        return action
