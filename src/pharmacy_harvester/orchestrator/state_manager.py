import logging
import sqlite3
from typing import Dict, List, Optional

# Harvest stages in order of execution
HARVEST_STAGES = [
    "fetching_baseline",
    "expanding_seeds",
    "fetching_optional",
    "parsing_registries",
    "deduping",
    "reconciling",
]

STAGE_STATUSES = ("pending", "in_progress", "completed", "failed", "skipped")


class StateManager:
    """Records the stage status of every harvest run in a SQLite database."""

    def __init__(self, db_path: str = 'harvest_state.db'):
        """Initializes the StateManager and creates its tables."""
        self.db_path = db_path
        self._ensure_initialized()

    def _get_connection(self):
        """Returns a new database connection."""
        return sqlite3.connect(self.db_path)

    def _ensure_initialized(self):
        """Ensures the database and required tables exist."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS harvest_runs (
                    run_id TEXT PRIMARY KEY,
                    city_slug TEXT NOT NULL,
                    state TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS harvest_stages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    run_id TEXT NOT NULL,
                    stage TEXT NOT NULL,
                    status TEXT NOT NULL CHECK(status IN ('pending', 'in_progress', 'completed', 'failed', 'skipped')),
                    result_count INTEGER,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    UNIQUE(run_id, stage)
                )
            ''')
            conn.commit()

    def start_run(self, run_id: str, city_slug: str):
        """Registers a run and its stages as 'pending'."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            try:
                cursor.execute("INSERT INTO harvest_runs (run_id, city_slug, state) VALUES (?, ?, 'IDLE')",
                               (run_id, city_slug))
            except sqlite3.IntegrityError:
                logging.warning(f"Run '{run_id}' is already registered.")
                return
            cursor.executemany("INSERT INTO harvest_stages (run_id, stage, status) VALUES (?, ?, 'pending')",
                               [(run_id, stage) for stage in HARVEST_STAGES])
            conn.commit()

    def set_run_state(self, run_id: str, state: str):
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("UPDATE harvest_runs SET state = ?, updated_at = CURRENT_TIMESTAMP WHERE run_id = ?",
                           (state, run_id))
            conn.commit()

    def get_run_state(self, run_id: str) -> Optional[str]:
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT state FROM harvest_runs WHERE run_id = ?", (run_id,))
            result = cursor.fetchone()
            return result[0] if result else None

    def update_stage_status(self, run_id: str, stage: str, status: str, result_count: Optional[int] = None):
        """Updates the status of one stage of a run."""
        if status not in STAGE_STATUSES:
            raise ValueError(f"Unknown stage status: {status}")
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "INSERT INTO harvest_stages (run_id, stage, status, result_count) VALUES (?, ?, ?, ?) "
                "ON CONFLICT(run_id, stage) DO UPDATE SET status = excluded.status, "
                "result_count = COALESCE(excluded.result_count, harvest_stages.result_count), "
                "updated_at = CURRENT_TIMESTAMP",
                (run_id, stage, status, result_count),
            )
            conn.commit()

    def get_stage_status(self, run_id: str, stage: str) -> Optional[str]:
        """Retrieves the status of a specific stage of a run."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT status FROM harvest_stages WHERE run_id = ? AND stage = ?", (run_id, stage))
            result = cursor.fetchone()
            return result[0] if result else None

    def get_run_stages(self, run_id: str) -> Dict[str, str]:
        """Stage -> status for a run, in execution order."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT stage, status FROM harvest_stages WHERE run_id = ?", (run_id,))
            statuses = dict(cursor.fetchall())
        return {stage: statuses[stage] for stage in HARVEST_STAGES if stage in statuses}

    def list_runs(self, city_slug: Optional[str] = None) -> List[Dict[str, str]]:
        """Most recent runs first."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            if city_slug:
                cursor.execute("SELECT run_id, city_slug, state, created_at FROM harvest_runs "
                               "WHERE city_slug = ? ORDER BY created_at DESC, rowid DESC", (city_slug,))
            else:
                cursor.execute("SELECT run_id, city_slug, state, created_at FROM harvest_runs "
                               "ORDER BY created_at DESC, rowid DESC")
            return [dict(zip(("run_id", "city_slug", "state", "created_at"), row)) for row in cursor.fetchall()]

    def reset_state(self):
        """Clears all run records from the database."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM harvest_stages")
            cursor.execute("DELETE FROM harvest_runs")
            conn.commit()
