import json
from pathlib import Path

import pytest

from pharmacy_harvester.config import load_config
from pharmacy_harvester.models import BoundingBox


def _write_yaml(tmp_path, text):
    path = tmp_path / "harvest.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_yaml_with_env_substitution_and_inheritance(tmp_path):
    path = _write_yaml(tmp_path, """
env: prod
concurrency: 4
api_keys:
  google: ${GOOGLE_KEY}
  here: ${HERE_KEY:-here-default}
environments:
  prod:
    concurrency: 8
    max_expansion_seeds: 100
""")
    cfg = load_config(str(path), env={"GOOGLE_KEY": "AIza-from-env"})
    assert cfg.google_api_key == "AIza-from-env"
    assert cfg.here_api_key == "here-default"
    assert cfg.concurrency == 8
    assert cfg.max_expansion_seeds == 100


def test_json_config_with_bbox_and_mirrors(tmp_path):
    path = tmp_path / "harvest.json"
    path.write_text(json.dumps({
        "country_bbox": {"min_lat": 1, "min_lng": 2, "max_lat": 3, "max_lng": 4},
        "overpass_mirrors": ["https://example.org/api/interpreter"],
        "page_delay": 0,
    }), encoding="utf-8")
    cfg = load_config(str(path), env={"UNUSED": "1"})
    assert cfg.country_bbox == BoundingBox(1.0, 2.0, 3.0, 4.0)
    assert cfg.overpass_mirrors == ("https://example.org/api/interpreter",)
    assert cfg.page_delay == 0


def test_unknown_keys_are_rejected(tmp_path):
    path = _write_yaml(tmp_path, "concurency: 3\n")
    with pytest.raises(ValueError, match="Unknown top-level config keys"):
        load_config(str(path), env={"X": "1"})


@pytest.mark.parametrize("text", [
    "retries: two\n",
    "page_delay: -1\n",
    "max_pages: 1.5\n",
    "country_bbox: [1, 2]\n",
])
def test_invalid_values_are_rejected(tmp_path, text):
    path = _write_yaml(tmp_path, text)
    with pytest.raises(ValueError):
        load_config(str(path), env={"X": "1"})


def test_missing_environment_entry_is_an_error(tmp_path):
    path = _write_yaml(tmp_path, "env: staging\nenvironments:\n  prod: {}\n")
    with pytest.raises(ValueError, match="environments"):
        load_config(str(path), env={"X": "1"})


def test_bundled_example_config_loads():
    example = Path(__file__).resolve().parents[2] / "config" / "harvest.example.yaml"
    cfg = load_config(str(example), env={"GOOGLE_MAP_API": "AIza-example"})
    assert cfg.google_api_key == "AIza-example"
    assert cfg.fetch_details is True
    assert cfg.missing_credentials() == ["foursquare", "here", "tomtom"]
