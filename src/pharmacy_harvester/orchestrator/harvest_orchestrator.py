"""
Harvest orchestrator for the pharmacy harvester.

This module contains the HarvestOrchestrator class that drives one city run
end to end: baseline fetch, seed expansion, secondary providers, registry
geocoding, deduplication and reconciliation against the store.
"""
import math
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..config.cities import CityRegistry
from ..dedup import DedupStats, deduplicate, exact_dedupe
from ..exceptions import MissingCityConfigError, ParseFailureError
from ..models import Candidate, CityCenter, ParsedRow, ProviderQuery, RegistryRow
from ..normalization import normalize_candidate
from ..observability.logging import bind_context, get_structured_logger
from ..planning import CoveragePlanner
from ..providers import ProviderSet, parse_row
from ..reconciliation import PharmacyStore, ReconcileResult, Reconciler
from ..utils.api_usage_tracker import ApiCallTracker
from . import report
from .concurrency import BoundedPool, Deadline
from .state_manager import StateManager

logger = get_structured_logger(__name__)

METRES_PER_DEGREE = 111000


class HarvestState(str, Enum):
    IDLE = "IDLE"
    FETCHING_BASELINE = "FETCHING_BASELINE"
    EXPANDING_SEEDS = "EXPANDING_SEEDS"
    FETCHING_OPTIONAL = "FETCHING_OPTIONAL"
    PARSING_REGISTRIES = "PARSING_REGISTRIES"
    DEDUPING = "DEDUPING"
    RECONCILING = "RECONCILING"
    DONE = "DONE"
    FAILED = "FAILED"


@dataclass
class HarvestResult:
    """Outcome of one city run. Always returned unless the city is unknown."""
    run_id: str
    city_slug: str
    city_name: Optional[str] = None
    state: HarvestState = HarvestState.IDLE
    success: bool = True
    entities: List[Candidate] = field(default_factory=list)
    existing_count: int = 0
    online_count: int = 0
    created: int = 0
    updated: int = 0
    errors: int = 0
    timed_out: bool = False
    warnings: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    search_stats: Dict[str, Any] = field(default_factory=dict)
    coverage: Dict[str, Any] = field(default_factory=dict)
    quality: Dict[str, Any] = field(default_factory=dict)
    completeness: Dict[str, int] = field(default_factory=dict)
    actions: List[Dict[str, Any]] = field(default_factory=list)
    error_log: List[Dict[str, Any]] = field(default_factory=list)
    dedup_stats: Dict[str, int] = field(default_factory=dict)
    api_usage: Dict[str, Dict[str, int]] = field(default_factory=dict)
    duration_seconds: float = 0.0
    message: str = ""

    @property
    def processed(self) -> int:
        return self.created + self.updated

    def to_dict(self) -> Dict[str, Any]:
        actions = [{k: v for k, v in a.items() if k != "entity"} for a in self.actions]
        return {
            "run_id": self.run_id,
            "city_slug": self.city_slug,
            "city_name": self.city_name,
            "state": self.state.value,
            "success": self.success,
            "processed": self.processed,
            "created": self.created,
            "updated": self.updated,
            "errors": self.errors,
            "existing_count": self.existing_count,
            "online_count": self.online_count,
            "timed_out": self.timed_out,
            "warnings": list(self.warnings),
            "recommendations": list(self.recommendations),
            "search_stats": dict(self.search_stats),
            "coverage": dict(self.coverage),
            "quality": dict(self.quality),
            "completeness": dict(self.completeness),
            "pharmacies": actions,
            "error_log": list(self.error_log),
            "dedup_stats": dict(self.dedup_stats),
            "api_usage": dict(self.api_usage),
            "duration_seconds": round(self.duration_seconds, 3),
            "message": self.message,
        }


def distance_m(lat: float, lng: float, center_lat: float, center_lng: float) -> float:
    """Equirectangular distance in metres; accurate enough at city scale."""
    d_lat = (lat - center_lat) * METRES_PER_DEGREE
    d_lng = (lng - center_lng) * METRES_PER_DEGREE * math.cos(math.radians(center_lat))
    return math.sqrt(d_lat ** 2 + d_lng ** 2)


class HarvestOrchestrator:
    """
    Coordinates one harvest run for a city.

    The run moves through these states:
    IDLE -> FETCHING_BASELINE -> EXPANDING_SEEDS -> FETCHING_OPTIONAL ->
    PARSING_REGISTRIES -> DEDUPING -> RECONCILING -> DONE

    Provider failures never leave the adapters; only an unknown city moves
    the run to FAILED, and that error is re-raised to the caller.
    """

    STAGES = [
        HarvestState.FETCHING_BASELINE,
        HarvestState.EXPANDING_SEEDS,
        HarvestState.FETCHING_OPTIONAL,
        HarvestState.PARSING_REGISTRIES,
        HarvestState.DEDUPING,
        HarvestState.RECONCILING,
    ]

    def __init__(self, config, store: PharmacyStore, providers: Optional[ProviderSet] = None,
                 planner: Optional[CoveragePlanner] = None, cities: Optional[CityRegistry] = None,
                 state_manager: Optional[StateManager] = None, tracker: Optional[ApiCallTracker] = None,
                 sleep: Callable[[float], None] = time.sleep):
        """
        Args:
            config: Immutable ``HarvestConfig`` for every component.
            store: Persisted pharmacy store.
            providers: Adapters to query; built from ``config`` when omitted.
            planner: Coverage planner; built from ``config`` when omitted.
            cities: City registry; the bundled registry when omitted.
            state_manager: Optional SQLite stage tracker.
        """
        self.config = config
        self.store = store
        self.tracker = tracker or ApiCallTracker()
        self.providers = providers or ProviderSet.from_config(config, tracker=self.tracker)
        self.planner = planner or CoveragePlanner(config)
        self.cities = cities or CityRegistry()
        self.state_manager = state_manager
        self.reconciler = Reconciler(store)
        self._sleep = sleep
        self.state = HarvestState.IDLE

    # ------------------------------------------------------------------
    # State handling
    # ------------------------------------------------------------------

    def _transition(self, result: HarvestResult, state: HarvestState):
        self.state = state
        result.state = state
        if self.state_manager is not None:
            self.state_manager.set_run_state(result.run_id, state.value)

    def _execute_stage(self, result: HarvestResult, state: HarvestState, stage_fn: Callable, *args, **kwargs):
        """Run one stage with state tracking and stage_start/stage_completed events."""
        stage_name = state.value.lower()
        stage_logger = bind_context(self._run_logger, {"stage": stage_name})
        self._transition(result, state)

        start = time.time()
        stage_logger.info("stage_start", extra={"event": "stage_start"})
        if self.state_manager is not None:
            self.state_manager.update_stage_status(result.run_id, stage_name, "in_progress")
        try:
            stage_result = stage_fn(*args, **kwargs)
        except Exception as e:
            if self.state_manager is not None:
                self.state_manager.update_stage_status(result.run_id, stage_name, "failed")
            stage_logger.error(f"Stage '{stage_name}' failed: {e}", extra={"event": "stage_error"}, exc_info=True)
            raise

        result_count = len(stage_result) if hasattr(stage_result, "__len__") else None
        if self.state_manager is not None:
            self.state_manager.update_stage_status(result.run_id, stage_name, "completed", result_count)
        duration_ms = int((time.time() - start) * 1000)
        stage_logger.info("stage_completed", extra={"event": "stage_completed", "duration_ms": duration_ms,
                                                     "result_count": result_count})
        return stage_result

    def _check_deadline(self, result: HarvestResult, what: str) -> bool:
        """True when the run may start ``what``; records one warning when it may not."""
        if not self._deadline.expired:
            return True
        if not result.timed_out:
            result.timed_out = True
            warning = f"Run deadline of {self.config.run_deadline:.0f}s reached before {what}; returning partial results"
            result.warnings.append(warning)
            self._run_logger.warning(warning, extra={"event": "deadline_reached"})
        return False

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(self, city_slug: str) -> HarvestResult:
        """
        Execute one harvest for ``city_slug``.

        Returns:
            HarvestResult with counts, warnings and recommendations.

        Raises:
            MissingCityConfigError: no seed coordinates for ``city_slug``.
        """
        started = time.time()
        run_id = str(uuid.uuid4())
        self._run_logger = get_structured_logger(__name__, base_context={"run_id": run_id, "city": city_slug})
        self._run_logger.info("run_start", extra={"event": "run_start"})
        self._deadline = Deadline(self.config.run_deadline)
        self.state = HarvestState.IDLE

        result = HarvestResult(run_id=run_id, city_slug=city_slug)
        if self.state_manager is not None:
            self.state_manager.start_run(run_id, city_slug)

        try:
            center = self.cities.resolve(city_slug)
        except MissingCityConfigError as e:
            self._transition(result, HarvestState.FAILED)
            result.success = False
            self._run_logger.error(str(e), extra={"event": "run_error"})
            raise

        result.city_name = center.name_en
        for provider in self.config.missing_credentials():
            result.warnings.append(f"{provider} disabled: no API key configured")
        city_id = self.store.ensure_city(center)
        result.existing_count = self.store.count_active(city_id)

        osm, google_city = self._execute_stage(result, HarvestState.FETCHING_BASELINE,
                                               self._fetch_baseline, result, center)
        expansion = self._execute_stage(result, HarvestState.EXPANDING_SEEDS,
                                        self._expand_seeds, result, osm + google_city)
        optional = self._execute_stage(result, HarvestState.FETCHING_OPTIONAL,
                                       self._fetch_optional, result, center)
        registry_hits = self._execute_stage(result, HarvestState.PARSING_REGISTRIES,
                                            self._parse_registries, result, center)

        stats = DedupStats()
        entities = self._execute_stage(result, HarvestState.DEDUPING, self._dedupe_and_clip,
                                       osm + google_city + expansion + optional + registry_hits, center, stats)
        result.entities = entities
        result.online_count = len(entities)
        result.dedup_stats = stats.to_dict()
        result.search_stats = report.search_stats(entities, time.time() - started)
        result.completeness = report.completeness(entities)

        reconciled = self._execute_stage(result, HarvestState.RECONCILING, self._reconcile,
                                         result, entities, center, city_id)
        self._finish(result, reconciled, city_id, started)
        self._transition(result, HarvestState.DONE)
        self._run_logger.info("run_completed", extra={"event": "run_completed", "created_count": result.created,
                                                      "updated_count": result.updated, "error_count": result.errors})
        return result

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _search_all(self, provider, queries: Sequence[ProviderQuery], workers: int) -> List[Candidate]:
        pool = BoundedPool(workers, self._deadline)
        outcome = pool.map(provider.fetch, list(queries))
        return [c for batch in outcome.completed() for c in batch]

    def _fetch_baseline(self, result: HarvestResult, center: CityCenter):
        osm = []
        if self._check_deadline(result, "the OSM baseline"):
            osm = self.providers.osm.fetch(ProviderQuery.country())

        google = self.providers.google
        if not google.enabled:
            return osm, []

        google_city = []
        if self._check_deadline(result, "the Google city sweep"):
            google_city = exact_dedupe(self._search_all(
                google, self.planner.baseline_queries(center), self.config.concurrency))

        if self.planner.needs_country_scan(len(google_city)) and self._check_deadline(result, "the country sweep"):
            bbox = self.providers.osm.fetch_country_bbox()
            grid = self.planner.country_grid_queries(bbox)
            workers = max(2, self.config.concurrency // 2)
            google_city = exact_dedupe(google_city + self._search_all(google, grid, workers))
        return osm, google_city

    def _expand_seeds(self, result: HarvestResult, discovered: List[Candidate]) -> List[Candidate]:
        google = self.providers.google
        if not google.enabled or not self._check_deadline(result, "seed expansion"):
            return []
        groups = self.planner.expansion_queries(exact_dedupe(discovered))

        def run_group(queries: List[ProviderQuery]) -> List[Candidate]:
            return [c for query in queries for c in google.fetch(query)]

        outcome = BoundedPool(self.config.concurrency, self._deadline).map(run_group, groups)
        if outcome.skipped:
            self._check_deadline(result, "the remaining seed expansions")
        return exact_dedupe(c for batch in outcome.completed() for c in batch)

    def _fetch_optional(self, result: HarvestResult, center: CityCenter) -> List[Candidate]:
        providers = [p for p in self.providers.secondary.values() if p.enabled]
        if not providers or not self._check_deadline(result, "the secondary providers"):
            return []
        queries = self.planner.optional_queries(center)
        tasks = [(p, q) for p in providers for q in queries]
        outcome = BoundedPool(self.config.concurrency, self._deadline).map(lambda t: t[0].fetch(t[1]), tasks)
        return exact_dedupe(c for batch in outcome.completed() for c in batch)

    def _parse_registries(self, result: HarvestResult, center: CityCenter) -> List[Candidate]:
        if not self._check_deadline(result, "the registry documents"):
            return []
        scrapers = list(self.providers.registries.values())
        outcome = BoundedPool(self.config.concurrency, self._deadline).map(lambda s: s.fetch_rows(), scrapers)
        rows: List[RegistryRow] = [row for batch in outcome.completed() for row in batch]

        parsed: List[ParsedRow] = []
        for row in rows:
            try:
                parsed.append(parse_row(row))
            except ParseFailureError as e:
                logger.debug(f"Dropping registry row: {e}")
        self._run_logger.info("registry_rows_parsed", extra={"event": "registry_rows_parsed",
                                                             "rows": len(rows), "parsed": len(parsed)})

        geocoders = self.providers.geocoders()
        if not geocoders:
            return []
        hits = []
        for row in parsed:
            if not self._check_deadline(result, "geocoding the remaining registry rows"):
                break
            hit = self._geocode(row, center, geocoders)
            if hit is not None:
                hits.append(hit)
        return hits

    def _geocode(self, row: ParsedRow, center: CityCenter, geocoders) -> Optional[Candidate]:
        """First provider hit with coordinates, carrying the row's own fields."""
        for query in self.planner.geocode_queries(row, center):
            for provider in geocoders:
                best = next((c for c in provider.fetch(query) if c.has_coordinates), None)
                if best is not None:
                    return normalize_candidate(
                        best.source_type,
                        name=row.name or best.name,
                        name_en=best.name_en if not row.name else None,
                        address=row.address or best.address,
                        city_name=row.city_name or best.city_name,
                        lat=best.lat,
                        lng=best.lng,
                        phone=list(row.phones) or best.phone,
                        email=list(row.emails) or best.email,
                        website=best.website,
                        opening_hours=best.opening_hours,
                        place_id=best.place_id,
                        google_rating=best.google_rating,
                        bbox=self.config.country_bbox,
                    )
            self._sleep(self.config.geocode_delay)
        return None

    def _dedupe_and_clip(self, candidates: List[Candidate], center: CityCenter,
                         stats: DedupStats) -> List[Candidate]:
        canonical = deduplicate(candidates, stats)
        max_distance = center.radius * self.config.city_clip_factor
        return [
            c for c in canonical
            if c.has_coordinates and distance_m(c.lat, c.lng, center.lat, center.lng) <= max_distance
        ]

    def _reconcile(self, result: HarvestResult, entities: List[Candidate], center: CityCenter,
                   city_id: int) -> ReconcileResult:
        if not entities:
            return ReconcileResult()
        reconciled = self.reconciler.reconcile(entities, city_id)
        for action in reconciled.actions:
            self._run_logger.info(report.entity_log_line(center.slug, action["action"], action["entity"]),
                                  extra={"event": "entity_" + action["action"]})
        return reconciled

    def _finish(self, result: HarvestResult, reconciled: ReconcileResult, city_id: int, started: float):
        result.created = reconciled.created
        result.updated = reconciled.updated
        result.errors = reconciled.errors
        result.actions = reconciled.actions
        result.error_log = reconciled.error_log
        result.api_usage = self.tracker.get_usage_summary()
        result.duration_seconds = time.time() - started
        result.search_stats["processing_time_seconds"] = round(result.duration_seconds)

        city_name = result.city_name or result.city_slug
        if result.online_count == 0:
            result.warnings.append("No online pharmacy data found")
            result.recommendations = list(report.EMPTY_HARVEST_RECOMMENDATIONS)
            result.message = f"No online pharmacies found for {city_name}"
            result.coverage = report.coverage_block(result.existing_count, result.existing_count, 0, 0, 0)
            return

        after = self.store.count_active(city_id)
        result.coverage = report.coverage_block(result.existing_count, after, result.online_count,
                                                result.processed, result.errors)
        result.quality = report.quality_block(result.actions)
        result.recommendations = report.generate_recommendations(result.created, result.updated,
                                                                 result.errors, result.online_count)
        result.message = f"Successfully synced {result.processed} pharmacies for {city_name}"
