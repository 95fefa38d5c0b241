"""Pytest configuration and fixtures."""

import tempfile
from datetime import UTC, datetime
from pathlib import Path

import pytest

from plugsync.database import Database
from plugsync.models import ChargePointMetadata, Location
from plugsync.stores import RecordStore

SYNC_USER = "_plugsync"
NOW = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
async def temp_db():
    """Create a temporary SQLite database for testing."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as tmp:
        db_path = tmp.name

    # Initialize database with schema
    db = Database(db_path)
    await db.initialize_schema()

    yield db

    # Cleanup
    await db.disconnect()
    Path(db_path).unlink(missing_ok=True)


@pytest.fixture
async def db_connection(temp_db):
    """Provide a database connection for testing."""
    conn = await temp_db.connect()
    yield conn
    # Connection is cleaned up by temp_db fixture


@pytest.fixture
def record_store(db_connection):
    """Record store writing as the sync user."""
    return RecordStore(db_connection, SYNC_USER)


@pytest.fixture
def ladelog_payload():
    """Factory for raw GoingElectric fault log events as served by the chargEV DB."""

    def make(event_id, ge_id, modified, is_fault=True, comment="", source=1):
        return {
            "_id": event_id,
            "__t": "Ladelog",
            "source": source,
            "chargepoint": f"chargepoint-0-{ge_id}",
            "timestamp": modified.isoformat(),
            "modified": modified.isoformat(),
            "updatedAt": modified.isoformat(),
            "isFault": is_fault,
            "comment": comment,
        }

    return make


@pytest.fixture
def sample_metadata():
    """Registry details of GoingElectric chargepoint 42."""
    return ChargePointMetadata(
        external_id=42,
        name="Caf&eacute; Ladepunkt",
        location=Location(latitude=52.52, longitude=13.40),
        url="//www.goingelectric.de/stromtankstellen/42/",
        hash="abc123",
    )
