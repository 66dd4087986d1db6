import io
import json
import logging

import pytest

from pharmacy_harvester.config import CityRegistry
from pharmacy_harvester.exceptions import MissingCityConfigError
from pharmacy_harvester.models import ProviderType, QueryKind, RegistryRow
from pharmacy_harvester.orchestrator import HARVEST_STAGES, HarvestOrchestrator, HarvestState, StateManager
from pharmacy_harvester.orchestrator.report import EMPTY_HARVEST_RECOMMENDATIONS
from pharmacy_harvester.planning import CoveragePlanner, Tessellator
from pharmacy_harvester.providers import ProviderSet


class SingleCellTessellator(Tessellator):
    def centroids(self, polygon):
        return [(42.43, 19.26)]


class StaticScraper:
    def __init__(self, rows):
        self.rows = rows

    def fetch_rows(self):
        return list(self.rows)


@pytest.fixture
def planner(config):
    return CoveragePlanner(config, tessellator=SingleCellTessellator(), municipalities=["Podgorica"])


@pytest.fixture
def world(candidate_factory):
    """Canned provider answers around Podgorica."""
    return {
        "a": candidate_factory("Apoteka Centar", place_id="p1", lat=42.4304, lng=19.2594),
        "b": candidate_factory("Apoteka Sloboda", place_id="p2", lat=42.4400, lng=19.2700),
        "c": candidate_factory("Apoteka Zora", place_id="p3", lat=42.4350, lng=19.2650),
        "osm": candidate_factory("Apoteka Osm", source_type=ProviderType.OSM, osm_type="node", osm_id=9,
                                 lat=42.4500, lng=19.2500),
        "far": candidate_factory("Apoteka Pljevlja", source_type=ProviderType.OSM, osm_type="node", osm_id=10,
                                 lat=43.3575, lng=19.3581),
        "geo": candidate_factory("Kruna Pharmacy", place_id="p9", lat=42.4200, lng=19.2500),
    }


def _google_responder(world):
    def respond(query):
        if query.kind == QueryKind.NEARBY and query.keyword is None:
            if query.radius == 15000:
                return [world["a"], world["b"]]
            if query.radius == 800 and query.lat == world["a"].lat:
                return [world["c"]]
        if query.kind == QueryKind.TEXT and query.text.startswith("Apoteka Kruna"):
            return [world["geo"]]
        return []
    return respond


def _provider_set(config, fake_provider, world, google_enabled=True):
    return ProviderSet(
        google=fake_provider(config, _google_responder(world), name="google", enabled=google_enabled),
        osm=fake_provider(config, lambda q: [world["osm"], world["far"]] if q.kind == QueryKind.COUNTRY else [],
                          name="osm"),
        secondary={},
        registries={"fzo": StaticScraper([
            RegistryRow('Apoteka "Kruna", Podgorica, tel 020 555 666', ProviderType.FZO),
            RegistryRow("Pharmacy list 2023", ProviderType.FZO),
        ])},
    )


def _orchestrator(config, store, providers, planner, **kwargs):
    return HarvestOrchestrator(config, store, providers=providers, planner=planner, sleep=lambda s: None, **kwargs)


def test_run_without_credentials_degrades_to_empty_result(config, store, offline_session):
    providers = ProviderSet.from_config(config, session=offline_session)

    result = HarvestOrchestrator(config, store, providers=providers, sleep=lambda s: None).run("podgorica")

    assert result.success is True
    assert result.state == HarvestState.DONE
    assert result.online_count == 0
    assert result.created == 0
    assert result.recommendations == EMPTY_HARVEST_RECOMMENDATIONS
    assert "google disabled: no API key configured" in result.warnings
    assert "No online pharmacy data found" in result.warnings
    assert result.coverage["before"] == result.coverage["after"] == 0


def test_unknown_city_fails_and_reraises(config, store, tmp_path, fake_provider, world, planner):
    state_manager = StateManager(db_path=str(tmp_path / "state.db"))
    orchestrator = _orchestrator(config, store, _provider_set(config, fake_provider, world), planner,
                                 state_manager=state_manager)

    with pytest.raises(MissingCityConfigError):
        orchestrator.run("atlantis")

    assert orchestrator.state == HarvestState.FAILED
    assert state_manager.list_runs()[0]["state"] == "FAILED"


def test_full_run_merges_all_sources(config, store, fake_provider, world, planner):
    providers = _provider_set(config, fake_provider, world)

    result = _orchestrator(config, store, providers, planner).run("podgorica")

    names = [e.name for e in result.entities]
    assert names == ["Apoteka Centar", "Apoteka Osm", "Apoteka Sloboda", "Apoteka Zora", "Kruna"]
    assert result.online_count == 5
    assert (result.created, result.updated, result.errors) == (5, 0, 0)
    assert result.success is True
    assert result.recommendations == ["Successfully added 5 new pharmacies to your database"]
    kruna = result.entities[-1]
    assert kruna.place_id == "p9"
    assert kruna.phone == "+38220555666"
    assert store.count_active(store.ensure_city(CityRegistry().resolve("podgorica"))) == 5

def test_second_run_updates_instead_of_creating(config, store, fake_provider, world, planner):
    _orchestrator(config, store, _provider_set(config, fake_provider, world), planner).run("podgorica")

    second = _orchestrator(config, store, _provider_set(config, fake_provider, world), planner).run("podgorica")

    assert second.created == 0
    assert second.updated == 5
    assert second.existing_count == 5
    assert second.coverage["improvement"] == "0%"


def test_country_scan_runs_when_baseline_is_thin(config, store, fake_provider, world, planner):
    providers = _provider_set(config, fake_provider, world)
    _orchestrator(config, store, providers, planner).run("podgorica")
    assert any(q.radius == config.google_radius_m and (q.lat, q.lng) == (42.43, 19.26)
               for q in providers.google.queries)


def test_seed_expansion_respects_cap(config, store, fake_provider, world):
    cfg = config.with_overrides(max_expansion_seeds=2)
    planner = CoveragePlanner(cfg, tessellator=SingleCellTessellator(), municipalities=["Podgorica"])
    providers = _provider_set(cfg, fake_provider, world)

    _orchestrator(cfg, store, providers, planner).run("podgorica")

    centers = {(q.lat, q.lng) for q in providers.google.queries if q.radius == cfg.expansion_radius_m}
    assert len(centers) == 2


def test_disabled_google_skips_google_stages(config, store, fake_provider, world, planner):
    providers = _provider_set(config, fake_provider, world, google_enabled=False)

    result = _orchestrator(config, store, providers, planner).run("podgorica")

    assert providers.google.queries == []
    assert [e.name for e in result.entities] == ["Apoteka Osm"]


def test_expired_deadline_returns_partial_result(config, store, fake_provider, world, planner):
    cfg = config.with_overrides(run_deadline=0)
    providers = _provider_set(cfg, fake_provider, world)

    result = _orchestrator(cfg, store, providers, planner).run("podgorica")

    assert result.timed_out is True
    assert result.success is True
    assert result.state == HarvestState.DONE
    assert result.online_count == 0
    assert len([w for w in result.warnings if "deadline" in w]) == 1
    assert providers.google.queries == []


def test_stage_progress_is_recorded(config, store, tmp_path, fake_provider, world, planner):
    state_manager = StateManager(db_path=str(tmp_path / "state.db"))
    orchestrator = _orchestrator(config, store, _provider_set(config, fake_provider, world), planner,
                                 state_manager=state_manager)

    result = orchestrator.run("podgorica")

    assert state_manager.get_run_state(result.run_id) == "DONE"
    assert state_manager.get_run_stages(result.run_id) == {stage: "completed" for stage in HARVEST_STAGES}


def test_stage_events_are_logged_as_json(config, store, fake_provider, world, planner):
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    run_logger = logging.getLogger("pharmacy_harvester.orchestrator.harvest_orchestrator")
    run_logger.addHandler(handler)
    try:
        result = _orchestrator(config, store, _provider_set(config, fake_provider, world), planner).run("podgorica")
    finally:
        run_logger.removeHandler(handler)

    events = [json.loads(line) for line in stream.getvalue().splitlines() if line.strip()]
    completed = [e["stage"] for e in events if e.get("event") == "stage_completed"]
    assert completed == HARVEST_STAGES
    assert all(e["run_id"] == result.run_id for e in events)
    assert all("duration_ms" in e for e in events if e.get("event") == "stage_completed")


def test_result_serializes_without_entities(config, store, fake_provider, world, planner):
    result = _orchestrator(config, store, _provider_set(config, fake_provider, world), planner).run("podgorica")

    data = result.to_dict()

    assert data["processed"] == 5
    assert all("entity" not in p for p in data["pharmacies"])
    assert json.loads(json.dumps(data, default=str))["city_slug"] == "podgorica"


def test_run_completed_event_carries_counts(config, store, offline_session):
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    run_logger = logging.getLogger("pharmacy_harvester.orchestrator.harvest_orchestrator")
    run_logger.addHandler(handler)
    try:
        providers = ProviderSet.from_config(config, session=offline_session)
        result = HarvestOrchestrator(config, store, providers=providers, sleep=lambda s: None).run("podgorica")
    finally:
        run_logger.removeHandler(handler)

    events = [json.loads(line) for line in stream.getvalue().splitlines() if line.strip()]
    completed = [e for e in events if e.get("event") == "run_completed"]
    assert result.state == HarvestState.DONE
    assert len(completed) == 1
    assert (completed[0]["created_count"], completed[0]["updated_count"], completed[0]["error_count"]) == (0, 0, 0)
