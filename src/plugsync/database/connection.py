"""Database connection management for the check-in record store."""

import logging
import sqlite3
from datetime import UTC, datetime

import aiosqlite

# Register datetime adapters to avoid Python 3.12+ deprecation warning
# See: https://docs.python.org/3/library/sqlite3.html#adapter-and-converter-recipes


def _adapt_datetime(val: datetime) -> str:
    """Convert datetime to a UTC ISO format string for SQLite storage."""
    if val.tzinfo is None:
        val = val.replace(tzinfo=UTC)
    return val.astimezone(UTC).isoformat()


def _convert_datetime(val: bytes) -> datetime:
    """Convert ISO format string from SQLite to an aware datetime."""
    result = datetime.fromisoformat(val.decode())
    if result.tzinfo is None:
        result = result.replace(tzinfo=UTC)
    return result


# Register adapters and converters
sqlite3.register_adapter(datetime, _adapt_datetime)
sqlite3.register_converter("datetime", _convert_datetime)
sqlite3.register_converter("DATETIME", _convert_datetime)

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE check_in (
    record_name TEXT PRIMARY KEY,
    chargepoint TEXT NOT NULL,
    latitude REAL,
    longitude REAL,
    reason INTEGER NOT NULL,
    comment TEXT,
    plug TEXT,
    source INTEGER NOT NULL DEFAULT 0,
    timestamp DATETIME NOT NULL,
    modified_at DATETIME NOT NULL,
    created_by TEXT,
    deleted INTEGER NOT NULL DEFAULT 0,
    change_tag TEXT NOT NULL,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX idx_check_in_chargepoint_ts ON check_in (chargepoint, timestamp);
CREATE INDEX idx_check_in_modified ON check_in (modified_at, record_name);
CREATE INDEX idx_check_in_source_ts ON check_in (source, timestamp);

CREATE TABLE charge_point (
    record_name TEXT PRIMARY KEY,
    metadata_hash TEXT NOT NULL DEFAULT '',
    latitude REAL,
    longitude REAL,
    name TEXT NOT NULL DEFAULT '',
    reason INTEGER NOT NULL,
    reason_description TEXT,
    timestamp DATETIME NOT NULL,
    url TEXT NOT NULL DEFAULT '',
    change_tag TEXT NOT NULL,
    created_by TEXT,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE user_profile (
    record_name TEXT PRIMARY KEY,
    nickname TEXT,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
);
"""


class Database:
    """Manages the SQLite connection and schema of the record store."""

    def __init__(self, db_path: str = "plugsync.db"):
        self.db_path = db_path
        self.connection: aiosqlite.Connection | None = None

    async def connect(self) -> aiosqlite.Connection:
        """Establish database connection with optimized pragmas."""
        if self.connection is None:
            # Use PARSE_DECLTYPES to enable custom datetime converters
            self.connection = await aiosqlite.connect(
                self.db_path, detect_types=sqlite3.PARSE_DECLTYPES
            )
            self.connection.row_factory = aiosqlite.Row

            await self.connection.execute("PRAGMA journal_mode=WAL")
            await self.connection.execute("PRAGMA synchronous=NORMAL")
            await self.connection.execute("PRAGMA temp_store=MEMORY")
        return self.connection

    async def disconnect(self):
        """Close database connection."""
        if self.connection:
            await self.connection.close()
            self.connection = None

    async def initialize_schema(self):
        """Create the record store tables unless they already exist."""
        conn = await self.connect()

        cursor = await conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='check_in'"
        )
        table_exists = await cursor.fetchone()

        if table_exists:
            logger.debug("Database schema already exists, skipping initialization")
            return

        await conn.executescript(SCHEMA)
        await conn.commit()

    async def __aenter__(self):
        """Async context manager entry."""
        return await self.connect()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.disconnect()
