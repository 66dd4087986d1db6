"""Command-line entry point for a single-city harvest.

Example:
    # Harvest one city with credentials from the environment / .env
    python -m pharmacy_harvester.run_harvest --city podgorica

    # Use a config file, a specific store and export the canonical set
    python -m pharmacy_harvester.run_harvest --city bar --config config/harvest.yaml \\
        --db pharmacies.db --export-dir output
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from pharmacy_harvester.config import CityRegistry, HarvestConfig, load_config
from pharmacy_harvester.exceptions import MissingCityConfigError
from pharmacy_harvester.export import export_entities
from pharmacy_harvester.observability.logging import add_run_log_file, get_structured_logger
from pharmacy_harvester.orchestrator import HarvestOrchestrator, StateManager, report
from pharmacy_harvester.reconciliation import SQLitePharmacyStore

# Configure basic logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s (%(filename)s:%(lineno)d)",
    datefmt="%Y-%m-%d %H:%M:%S"
)

logger = logging.getLogger(__name__)


def _parse_args(argv=None) -> argparse.Namespace:
    """Parse command-line arguments for the harvest runner."""
    parser = argparse.ArgumentParser(
        description="Harvest pharmacy listings for one city and reconcile them with the store."
    )
    parser.add_argument("--city", type=str, help="City slug, e.g. podgorica or herceg-novi.")
    parser.add_argument("--config", type=str, help="Optional JSON/YAML configuration file.")
    parser.add_argument("--db", type=str, default="pharmacies.db", help="SQLite pharmacy store.")
    parser.add_argument("--state-db", type=str, default="harvest_state.db", help="SQLite run-state database.")
    parser.add_argument("--export-dir", type=str, help="Write the canonical set as JSON and CSV here.")
    parser.add_argument("--log-dir", type=str, help="Also write the run's JSON log lines to this directory.")
    parser.add_argument("--list-cities", action="store_true", help="Print the configured city slugs and exit.")
    parser.add_argument(
        "--reset",
        action="store_true",
        help="Clear recorded run state before starting."
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    """Run one harvest; returns a process exit code."""
    args = _parse_args(argv)

    if args.list_cities:
        print("\n".join(CityRegistry().slugs()))
        return 0
    if not args.city:
        logger.error("--city is required")
        return 2

    if args.config:
        config_path = Path(args.config)
        if not config_path.is_file():
            logger.error(f"Configuration file not found at: {config_path}")
            return 2
        config = load_config(str(config_path))
    else:
        config = HarvestConfig.from_env()

    state_manager = StateManager(db_path=args.state_db)
    if args.reset:
        logger.info("Resetting harvest state as requested.")
        state_manager.reset_state()

    store = SQLitePharmacyStore(args.db)
    orchestrator = HarvestOrchestrator(config, store, state_manager=state_manager)
    if args.log_dir:
        add_run_log_file(get_structured_logger("pharmacy_harvester.orchestrator.harvest_orchestrator"),
                         args.log_dir, args.city)

    try:
        result = orchestrator.run(args.city)
    except MissingCityConfigError as e:
        logger.error(str(e))
        return 1
    finally:
        store.close()

    print(report.summary_text(result))
    if args.export_dir:
        export_entities(result.entities, args.export_dir, basename=f"pharmacies-{args.city}")
        with open(Path(args.export_dir) / f"harvest-{args.city}.json", "w", encoding="utf-8") as f:
            json.dump(result.to_dict(), f, indent=2, ensure_ascii=False, default=str)
    return 0


if __name__ == "__main__":
    sys.exit(main())
