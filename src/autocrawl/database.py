# src/autocrawl/database.py
"""Persistence layer for visited URLs, invalid URLs and extracted records."""

import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, List, Dict, Any
import logging

from autocrawl.config import settings
from autocrawl.constants import PENDING_URLS_LIMIT
from autocrawl.models import InvalidRecord, PartRecord, VehicleRecord, VisitedRecord

logger = logging.getLogger(__name__)

CREATE_TABLES_SQL = [
    """
    CREATE TABLE IF NOT EXISTS visited_urls (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        url TEXT UNIQUE NOT NULL,
        visited_at TIMESTAMP NOT NULL,
        relevance_score REAL,
        content_type TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS vehicles (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        url_id INTEGER,
        year INTEGER,
        brand TEXT,
        model TEXT,
        condition TEXT,
        description TEXT,
        extracted_at TIMESTAMP NOT NULL,
        FOREIGN KEY (url_id) REFERENCES visited_urls(id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS parts (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        url_id INTEGER,
        part_name TEXT,
        part_number TEXT,
        brand TEXT,
        compatible_vehicle TEXT,
        description TEXT,
        extracted_at TIMESTAMP NOT NULL,
        FOREIGN KEY (url_id) REFERENCES visited_urls(id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS invalid_urls (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        url TEXT UNIQUE NOT NULL,
        error_type TEXT NOT NULL,
        error_message TEXT,
        failed_at TIMESTAMP NOT NULL,
        retry_count INTEGER DEFAULT 0
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_vehicles_brand ON vehicles(brand)",
    "CREATE INDEX IF NOT EXISTS idx_vehicles_year ON vehicles(year)",
    "CREATE INDEX IF NOT EXISTS idx_parts_brand ON parts(brand)",
    "CREATE INDEX IF NOT EXISTS idx_invalid_error_type ON invalid_urls(error_type)",
]

# Vehicles merge on (brand, model, year); NULL columns never collide in SQLite
CREATE_VEHICLE_UNIQUE_INDEX_SQL = (
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_vehicles_unique_brand_model_year "
    "ON vehicles(brand, model, year)"
)

UPSERT_VEHICLE_SQL = """
INSERT INTO vehicles (url_id, year, brand, model, condition, description, extracted_at)
VALUES (?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(brand, model, year) DO UPDATE SET
    url_id = COALESCE(excluded.url_id, url_id),
    condition = COALESCE(excluded.condition, condition),
    description = COALESCE(excluded.description, description),
    extracted_at = excluded.extracted_at
"""

INSERT_VEHICLE_SQL = """
INSERT INTO vehicles (url_id, year, brand, model, condition, description, extracted_at)
VALUES (?, ?, ?, ?, ?, ?, ?)
"""


def _now() -> str:
    return datetime.now().isoformat(sep=" ")


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


class AbstractDatabase(ABC):
    """Abstract base class defining the crawl store interface."""

    @abstractmethod
    def connect(self) -> None:
        """Establish database connection."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close database connection."""
        pass

    @abstractmethod
    def create_schema(self) -> None:
        """Create the necessary database tables."""
        pass

    @abstractmethod
    def is_url_visited(self, url: str) -> bool:
        """Return True if a visited record exists for the URL."""
        pass

    @abstractmethod
    def get_visited(self, url: str) -> Optional[VisitedRecord]:
        """Return the visited record for the URL, if any."""
        pass

    @abstractmethod
    def mark_url_visited(
        self,
        url: str,
        relevance_score: Optional[float] = None,
        content_type: Optional[str] = None,
    ) -> int:
        """Record the URL as visited and return its row id.

        Visiting an already visited URL refreshes its score, content type
        and timestamp and returns the existing id.
        """
        pass

    @abstractmethod
    def is_url_invalid(self, url: str) -> Optional[InvalidRecord]:
        """Return the invalid record for the URL, if any."""
        pass

    @abstractmethod
    def mark_url_invalid(self, url: str, error_type: str, error_message: Optional[str] = None) -> InvalidRecord:
        """Insert an invalid record with retry_count 0 or bump an existing one.

        Returns:
            The record as stored after the write.
        """
        pass

    @abstractmethod
    def save_vehicle(self, vehicle: VehicleRecord) -> None:
        """Upsert a vehicle keyed on (brand, model, year)."""
        pass

    @abstractmethod
    def save_part(self, part: PartRecord) -> None:
        """Append a part record."""
        pass

    @abstractmethod
    def get_pending_urls(self, limit: int = PENDING_URLS_LIMIT) -> List[str]:
        """Visited URLs with no extracted vehicle or part, newest first."""
        pass

    @abstractmethod
    def get_stats(self) -> Dict[str, int]:
        """Row counts per table."""
        pass


class LocalSqliteDatabase(AbstractDatabase):
    """SQLite database implementation for local storage."""

    def __init__(self, db_url: Optional[str] = None):
        """Initialize local SQLite database.

        Args:
            db_url: Database URL (sqlite:///path/to/db.db). Defaults to settings.DATABASE_URL.
        """
        self.db_url = db_url or settings.DATABASE_URL
        self.db_path = self.db_url.replace("sqlite:///", "")
        self.conn: Optional[sqlite3.Connection] = None
        self._vehicle_upsert = True
        self.connect()
        self.create_schema()

    def connect(self) -> None:
        """Establish SQLite connection."""
        self.conn = sqlite3.connect(self.db_path)
        self.conn.row_factory = sqlite3.Row
        logger.debug(f"Connected to local SQLite database: {self.db_path}")

    def close(self) -> None:
        """Close SQLite connection."""
        if self.conn:
            self.conn.close()
            self.conn = None
            logger.debug("Closed local SQLite connection")

    def create_schema(self) -> None:
        """Create the crawl tables and indexes if they don't exist."""
        with self.conn:
            for statement in CREATE_TABLES_SQL:
                self.conn.execute(statement)
        try:
            with self.conn:
                self.conn.execute(CREATE_VEHICLE_UNIQUE_INDEX_SQL)
        except sqlite3.IntegrityError as e:
            # Pre-existing duplicates; fall back to plain inserts
            self._vehicle_upsert = False
            logger.warning(f"⚠️  Could not create unique vehicle index ({e}), vehicles will be appended")
        logger.debug("Schema verified/created for local SQLite")

    # --- Visited URLs ---

    def is_url_visited(self, url: str) -> bool:
        cursor = self.conn.execute("SELECT 1 FROM visited_urls WHERE url = ?", (url,))
        return cursor.fetchone() is not None

    def get_visited(self, url: str) -> Optional[VisitedRecord]:
        cursor = self.conn.execute("SELECT * FROM visited_urls WHERE url = ?", (url,))
        row = cursor.fetchone()
        if row is None:
            return None
        return VisitedRecord(
            id=row['id'],
            url=row['url'],
            relevance_score=row['relevance_score'],
            content_type=row['content_type'],
            visited_at=_parse_timestamp(row['visited_at']),
        )

    def mark_url_visited(
        self,
        url: str,
        relevance_score: Optional[float] = None,
        content_type: Optional[str] = None,
    ) -> int:
        with self.conn:
            self.conn.execute(
                """
                INSERT INTO visited_urls (url, visited_at, relevance_score, content_type)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(url) DO UPDATE SET
                    visited_at = excluded.visited_at,
                    relevance_score = excluded.relevance_score,
                    content_type = excluded.content_type
                """,
                (url, _now(), relevance_score, content_type),
            )
        row = self.conn.execute("SELECT id FROM visited_urls WHERE url = ?", (url,)).fetchone()
        logger.debug(f"Marked visited (id={row['id']}): {url}")
        return row['id']

    # --- Invalid URLs ---

    def is_url_invalid(self, url: str) -> Optional[InvalidRecord]:
        cursor = self.conn.execute("SELECT * FROM invalid_urls WHERE url = ?", (url,))
        row = cursor.fetchone()
        if row is None:
            return None
        return InvalidRecord(
            id=row['id'],
            url=row['url'],
            error_type=row['error_type'],
            error_message=row['error_message'],
            retry_count=row['retry_count'],
            failed_at=_parse_timestamp(row['failed_at']),
        )

    def mark_url_invalid(self, url: str, error_type: str, error_message: Optional[str] = None) -> InvalidRecord:
        with self.conn:
            existing = self.conn.execute(
                "SELECT id FROM invalid_urls WHERE url = ?", (url,)
            ).fetchone()
            if existing:
                self.conn.execute(
                    """
                    UPDATE invalid_urls
                    SET retry_count = retry_count + 1,
                        error_message = ?,
                        failed_at = ?
                    WHERE url = ?
                    """,
                    (error_message or "retry failed", _now(), url),
                )
            else:
                self.conn.execute(
                    """
                    INSERT INTO invalid_urls (url, error_type, error_message, failed_at, retry_count)
                    VALUES (?, ?, ?, ?, 0)
                    """,
                    (url, error_type, error_message, _now()),
                )
        return self.is_url_invalid(url)

    # --- Extracted records ---

    def save_vehicle(self, vehicle: VehicleRecord) -> None:
        sql = UPSERT_VEHICLE_SQL if self._vehicle_upsert else INSERT_VEHICLE_SQL
        with self.conn:
            self.conn.execute(
                sql,
                (
                    vehicle.url_id,
                    vehicle.year,
                    vehicle.brand,
                    vehicle.model,
                    vehicle.condition,
                    vehicle.description,
                    _now(),
                ),
            )
        logger.debug(f"Saved vehicle: {vehicle.year} {vehicle.brand} {vehicle.model}")

    def save_part(self, part: PartRecord) -> None:
        with self.conn:
            self.conn.execute(
                """
                INSERT INTO parts (url_id, part_name, part_number, brand, compatible_vehicle, description, extracted_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    part.url_id,
                    part.part_name,
                    part.part_number,
                    part.brand,
                    part.compatible_vehicle,
                    part.description,
                    _now(),
                ),
            )
        logger.debug(f"Saved part: {part.part_name}")

    # --- Reporting ---

    def get_pending_urls(self, limit: int = PENDING_URLS_LIMIT) -> List[str]:
        cursor = self.conn.execute(
            """
            SELECT v.url
            FROM visited_urls v
            LEFT JOIN vehicles veh ON v.id = veh.url_id
            LEFT JOIN parts p ON v.id = p.url_id
            WHERE veh.id IS NULL AND p.id IS NULL
            ORDER BY v.visited_at DESC
            LIMIT ?
            """,
            (limit,),
        )
        return [row['url'] for row in cursor.fetchall()]

    def get_stats(self) -> Dict[str, int]:
        stats: Dict[str, Any] = {}
        for key, table in (
            ("vehicles", "vehicles"),
            ("parts", "parts"),
            ("urls", "visited_urls"),
            ("invalid_urls", "invalid_urls"),
        ):
            row = self.conn.execute(f"SELECT COUNT(*) AS count FROM {table}").fetchone()
            stats[key] = row['count'] if row else 0
        return stats


def get_db_client(
    backend: Optional[str] = None,
    **kwargs,
) -> AbstractDatabase:
    """Factory function to create the appropriate database client.

    Args:
        backend: Database backend ('local'). Defaults to settings.DB_BACKEND.
        **kwargs: Additional arguments passed to the database constructor.

    Returns:
        An instance of AbstractDatabase.

    Raises:
        ValueError: If an unknown backend is specified.
    """
    backend = backend or settings.DB_BACKEND

    if backend == "local":
        logger.info("Using local SQLite database backend")
        return LocalSqliteDatabase(**kwargs)
    raise ValueError(
        f"Unknown database backend: '{backend}'. "
        "Supported backends: 'local'"
    )
