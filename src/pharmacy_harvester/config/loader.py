"""Load a ``HarvestConfig`` from a JSON or YAML file."""
import json
import os
import re
from pathlib import Path
from typing import Any, Dict, Mapping, MutableMapping, Optional

import yaml

from ..models import BoundingBox
from .settings import HarvestConfig

_ENV_TOKEN = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")

_NUMERIC_KEYS = {
    "fetch_timeout", "overpass_timeout", "retry_backoff", "page_delay", "quota_backoff",
    "detail_delay", "city_clip_factor", "run_deadline", "geocode_delay",
}
_INT_KEYS = {
    "retries", "max_quota_retries", "max_pages", "h3_resolution", "google_radius_m",
    "expansion_radius_m", "max_expansion_seeds", "completeness_threshold", "concurrency",
}


def _substitute_env(value: Any, env: Mapping[str, str]) -> Any:
    """
    Recursively substitute environment variables in strings using
    ${VAR} or ${VAR:-default} syntax. Dicts and lists are processed recursively.
    """
    if isinstance(value, str):
        prev = value
        for _ in range(5):  # guard against pathological nesting
            cur = _ENV_TOKEN.sub(lambda m: env.get(m.group(1), m.group(2) or ""), prev)
            if cur == prev:
                break
            prev = cur
        return prev
    if isinstance(value, list):
        return [_substitute_env(v, env) for v in value]
    if isinstance(value, dict):
        return {k: _substitute_env(v, env) for k, v in value.items()}
    return value


def _deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    result = dict(base)
    for k, v in overlay.items():
        if isinstance(v, dict) and isinstance(result.get(k), dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _validate(cfg: MutableMapping[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = dict(cfg)
    out.pop("env", None)
    out.pop("environments", None)

    # Credentials may be grouped under api_keys
    api_keys = out.pop("api_keys", None)
    if api_keys is not None:
        if not isinstance(api_keys, dict):
            raise ValueError("api_keys must be a dict if provided")
        for name in ("google", "foursquare", "here", "tomtom"):
            if api_keys.get(name):
                out[f"{name}_api_key"] = str(api_keys[name])

    unknown = set(out) - set(HarvestConfig.field_names())
    if unknown:
        raise ValueError(f"Unknown top-level config keys: {sorted(unknown)}")

    for key in _NUMERIC_KEYS & set(out):
        if isinstance(out[key], bool) or not isinstance(out[key], (int, float)):
            raise ValueError(f"{key} must be a number")
        if out[key] < 0:
            raise ValueError(f"{key} cannot be negative")
    for key in _INT_KEYS & set(out):
        if isinstance(out[key], bool) or not isinstance(out[key], int):
            raise ValueError(f"{key} must be an integer")

    if "country_bbox" in out:
        bbox = out["country_bbox"]
        if not isinstance(bbox, dict):
            raise ValueError("country_bbox must be a mapping of min_lat/min_lng/max_lat/max_lng")
        try:
            out["country_bbox"] = BoundingBox(**{k: float(v) for k, v in bbox.items()})
        except TypeError as exc:
            raise ValueError(f"Invalid country_bbox: {exc}") from exc
    if "overpass_mirrors" in out:
        mirrors = out["overpass_mirrors"]
        if not isinstance(mirrors, list) or not all(isinstance(m, str) for m in mirrors):
            raise ValueError("overpass_mirrors must be a list of URLs")
        out["overpass_mirrors"] = tuple(mirrors)
    return out


def load_config(path: str, env: Optional[Mapping[str, str]] = None) -> HarvestConfig:
    """
    Load configuration from a JSON/YAML file, apply environment variable
    substitution and optional environment inheritance, and validate keys.

    Parameters:
        path: Path to the config file.
        env: Mapping of environment variables to substitute; defaults to os.environ.

    Returns:
        An immutable HarvestConfig.
    """
    env = env or os.environ

    path_obj = Path(path)
    with open(path_obj, "r", encoding="utf-8") as f:
        if path_obj.suffix.lower() in (".yaml", ".yml"):
            raw = yaml.safe_load(f)
        else:
            raw = json.load(f)

    if not isinstance(raw, dict):
        raise ValueError("Top-level config must be a mapping")

    base_cfg = dict(raw)
    env_name = base_cfg.get("env")
    if env_name is not None:
        env_map = base_cfg.get("environments")
        if not isinstance(env_map, dict) or not isinstance(env_map.get(env_name), dict):
            raise ValueError("env specified but matching entry not found in environments")
        base_cfg = _deep_merge(base_cfg, env_map[env_name])

    return HarvestConfig(**_validate(_substitute_env(base_cfg, env)))
