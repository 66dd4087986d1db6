"""Persisted pharmacy store contract and its SQLite implementation."""
import logging
import sqlite3
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime
from typing import List, Optional

from ..exceptions import PersistenceConflictError
from ..models import CityCenter, PharmacyRecord
from ..normalization import normalize_name

logger = logging.getLogger(__name__)

PROXIMITY_DELTA = 0.001

_COLUMNS = (
    "name_me", "name_en", "address", "lat", "lng", "city_id", "phone", "email", "website",
    "is_24h", "open_sunday", "hours_monfri", "hours_sat", "hours_sun", "google_place_id",
    "google_rating", "opening_hours", "active", "last_online_sync",
)


class PharmacyStore(ABC):
    """Lookup and write operations the reconciler needs."""

    @abstractmethod
    def find_by_external_id(self, place_id: str) -> Optional[PharmacyRecord]:
        ...

    @abstractmethod
    def find_by_city_and_name(self, city_id: int, name: str) -> Optional[PharmacyRecord]:
        ...

    @abstractmethod
    def find_by_bounding_box(self, city_id: int, lat: float, lng: float,
                             delta: float = PROXIMITY_DELTA) -> Optional[PharmacyRecord]:
        ...

    @abstractmethod
    def create(self, record: PharmacyRecord) -> PharmacyRecord:
        ...

    @abstractmethod
    def update(self, record: PharmacyRecord) -> PharmacyRecord:
        ...

    @abstractmethod
    def count_active(self, city_id: int) -> int:
        ...

    @abstractmethod
    def ensure_city(self, city: CityCenter) -> int:
        """Return the id of ``city``, creating its row on first use."""


class SQLitePharmacyStore(PharmacyStore):
    """Pharmacy store on a single SQLite connection.

    Records are never deleted; ``google_place_id`` is unique.
    """

    def __init__(self, db_path: str = "pharmacies.db"):
        self.db_path = db_path
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_initialized()

    def _ensure_initialized(self):
        with self._conn:
            self._conn.execute('''
                CREATE TABLE IF NOT EXISTS cities (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    slug TEXT UNIQUE NOT NULL,
                    name_me TEXT,
                    name_en TEXT
                )
            ''')
            self._conn.execute('''
                CREATE TABLE IF NOT EXISTS pharmacies (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name_me TEXT NOT NULL,
                    name_key TEXT NOT NULL,
                    name_en TEXT,
                    address TEXT,
                    lat REAL NOT NULL,
                    lng REAL NOT NULL,
                    city_id INTEGER NOT NULL REFERENCES cities(id),
                    phone TEXT,
                    email TEXT,
                    website TEXT,
                    is_24h INTEGER NOT NULL DEFAULT 0,
                    open_sunday INTEGER NOT NULL DEFAULT 0,
                    hours_monfri TEXT,
                    hours_sat TEXT,
                    hours_sun TEXT,
                    google_place_id TEXT UNIQUE,
                    google_rating REAL,
                    opening_hours TEXT,
                    active INTEGER NOT NULL DEFAULT 1,
                    last_online_sync TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')
            self._conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_pharmacies_city_name ON pharmacies (city_id, name_key)"
            )

    def close(self):
        self._conn.close()

    @staticmethod
    def _to_record(row: Optional[sqlite3.Row]) -> Optional[PharmacyRecord]:
        if row is None:
            return None
        synced = row["last_online_sync"]
        return PharmacyRecord(
            id=row["id"],
            name_me=row["name_me"],
            name_en=row["name_en"],
            address=row["address"],
            lat=row["lat"],
            lng=row["lng"],
            city_id=row["city_id"],
            phone=row["phone"],
            email=row["email"],
            website=row["website"],
            is_24h=bool(row["is_24h"]),
            open_sunday=bool(row["open_sunday"]),
            hours_monfri=row["hours_monfri"],
            hours_sat=row["hours_sat"],
            hours_sun=row["hours_sun"],
            google_place_id=row["google_place_id"],
            google_rating=row["google_rating"],
            opening_hours=row["opening_hours"],
            active=bool(row["active"]),
            last_online_sync=datetime.fromisoformat(synced) if synced else None,
        )

    @staticmethod
    def _values(record: PharmacyRecord) -> List:
        values = []
        for column in _COLUMNS:
            value = getattr(record, column)
            if isinstance(value, bool):
                value = int(value)
            elif isinstance(value, datetime):
                value = value.isoformat()
            values.append(value)
        return values

    def _fetch_one(self, sql: str, params) -> Optional[PharmacyRecord]:
        return self._to_record(self._conn.execute(sql, params).fetchone())

    def find_by_external_id(self, place_id):
        if not place_id:
            return None
        return self._fetch_one("SELECT * FROM pharmacies WHERE google_place_id = ?", (place_id,))

    def find_by_city_and_name(self, city_id, name):
        key = normalize_name(name)
        if not key:
            return None
        return self._fetch_one(
            "SELECT * FROM pharmacies WHERE city_id = ? AND name_key = ? ORDER BY id LIMIT 1",
            (city_id, key),
        )

    def find_by_bounding_box(self, city_id, lat, lng, delta=PROXIMITY_DELTA):
        return self._fetch_one(
            "SELECT * FROM pharmacies WHERE city_id = ? AND lat BETWEEN ? AND ? "
            "AND lng BETWEEN ? AND ? ORDER BY id LIMIT 1",
            (city_id, lat - delta, lat + delta, lng - delta, lng + delta),
        )

    def create(self, record):
        placeholders = ", ".join("?" for _ in range(len(_COLUMNS) + 1))
        try:
            with self._conn:
                cursor = self._conn.execute(
                    f"INSERT INTO pharmacies (name_key, {', '.join(_COLUMNS)}) VALUES ({placeholders})",
                    [normalize_name(record.name_me)] + self._values(record),
                )
        except sqlite3.IntegrityError as exc:
            raise PersistenceConflictError(f"cannot create '{record.name_me}': {exc}") from exc
        return replace(record, id=cursor.lastrowid)

    def update(self, record):
        if record.id is None:
            raise ValueError("cannot update a record without an id")
        assignments = ", ".join(f"{column} = ?" for column in _COLUMNS)
        try:
            with self._conn:
                self._conn.execute(
                    f"UPDATE pharmacies SET name_key = ?, {assignments}, "
                    "updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                    [normalize_name(record.name_me)] + self._values(record) + [record.id],
                )
        except sqlite3.IntegrityError as exc:
            raise PersistenceConflictError(f"cannot update pharmacy {record.id}: {exc}") from exc
        return record

    def get(self, pharmacy_id: int) -> Optional[PharmacyRecord]:
        return self._fetch_one("SELECT * FROM pharmacies WHERE id = ?", (pharmacy_id,))

    def list_city(self, city_id: int) -> List[PharmacyRecord]:
        rows = self._conn.execute("SELECT * FROM pharmacies WHERE city_id = ? ORDER BY id", (city_id,))
        return [self._to_record(row) for row in rows.fetchall()]

    def count_active(self, city_id):
        row = self._conn.execute(
            "SELECT COUNT(*) FROM pharmacies WHERE city_id = ? AND active = 1", (city_id,)
        ).fetchone()
        return row[0]

    def ensure_city(self, city):
        row = self._conn.execute("SELECT id FROM cities WHERE slug = ?", (city.slug,)).fetchone()
        if row is not None:
            return row["id"]
        with self._conn:
            cursor = self._conn.execute(
                "INSERT INTO cities (slug, name_me, name_en) VALUES (?, ?, ?)",
                (city.slug, city.name_me, city.name_en),
            )
        logger.info("Created city row for %s", city.slug)
        return cursor.lastrowid
