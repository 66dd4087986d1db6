"""Dump a run's canonical entities to JSON and CSV."""
import json
import logging
from pathlib import Path
from typing import Dict, List, Sequence, Union

import pandas as pd

from .models import Candidate

logger = logging.getLogger(__name__)

# Column order of the CSV; nested hours are flattened into their buckets
EXPORT_COLUMNS = [
    "name", "name_en", "address", "city_name", "lat", "lng", "phone", "email", "website",
    "opening_hours", "is_24h", "open_sunday", "hours_monfri", "hours_sat", "hours_sun",
    "source_type", "place_id", "osm_type", "osm_id", "google_rating", "reliability_score",
]


def entity_rows(entities: Sequence[Candidate]) -> List[Dict]:
    rows = []
    for entity in entities:
        row = entity.to_dict()
        row.update(row.pop("hours"))
        rows.append(row)
    return rows


def export_entities(entities: Sequence[Candidate], output_dir: Union[str, Path],
                    basename: str = "pharmacies") -> Path:
    """
    Save entities to ``<basename>.json`` and ``<basename>.csv`` under ``output_dir``.

    Returns:
        Path to the saved JSON file.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    json_output_file = output_dir / f"{basename}.json"
    csv_output_file = output_dir / f"{basename}.csv"

    rows = entity_rows(entities)
    with open(json_output_file, "w", encoding="utf-8") as f:
        json.dump(rows, f, indent=2, ensure_ascii=False)

    df = pd.DataFrame(rows, columns=EXPORT_COLUMNS)
    df.to_csv(csv_output_file, index=False)

    logger.info(f"Saved {len(rows)} pharmacies to {output_dir}")
    return json_output_file
