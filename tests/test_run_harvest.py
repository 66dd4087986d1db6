import json

import pytest

from pharmacy_harvester import run_harvest
from pharmacy_harvester.orchestrator import HarvestResult, HarvestState


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for var in ("GOOGLE_MAP_API", "GOOGLE_API_KEY", "FSQ_API_KEY", "HERE_API_KEY", "TOMTOM_API_KEY"):
        monkeypatch.delenv(var, raising=False)


def test_list_cities(capsys):
    assert run_harvest.main(["--list-cities"]) == 0
    slugs = capsys.readouterr().out.split()
    assert "podgorica" in slugs
    assert "herceg-novi" in slugs


def test_city_is_required():
    assert run_harvest.main([]) == 2


def test_missing_config_file(tmp_path):
    assert run_harvest.main(["--city", "bar", "--config", str(tmp_path / "nope.yaml")]) == 2


def test_unknown_city_exit_code(tmp_path):
    code = run_harvest.main(["--city", "atlantis", "--db", str(tmp_path / "p.db"),
                             "--state-db", str(tmp_path / "s.db")])
    assert code == 1


def test_successful_run_prints_summary_and_exports(tmp_path, monkeypatch, capsys, candidate_factory):
    class StubOrchestrator:
        def __init__(self, config, store, state_manager=None):
            self.config = config

        def run(self, city_slug):
            return HarvestResult(
                run_id="r1", city_slug=city_slug, city_name="Bar", state=HarvestState.DONE,
                entities=[candidate_factory("Apoteka Bar", lat=42.09, lng=19.09)], online_count=1, created=1,
                recommendations=["Successfully added 1 new pharmacies to your database"],
            )

    monkeypatch.setattr(run_harvest, "HarvestOrchestrator", StubOrchestrator)
    out_dir = tmp_path / "export"

    code = run_harvest.main(["--city", "bar", "--db", str(tmp_path / "p.db"), "--state-db", str(tmp_path / "s.db"),
                             "--export-dir", str(out_dir)])

    assert code == 0
    printed = capsys.readouterr().out
    assert "Harvest r1 for Bar: DONE" in printed
    assert "created: 1" in printed
    assert (out_dir / "pharmacies-bar.csv").exists()
    summary = json.loads((out_dir / "harvest-bar.json").read_text(encoding="utf-8"))
    assert summary["created"] == 1
