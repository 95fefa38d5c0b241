"""Repository for chargepoint status records."""

from ..models import ChargePointRecord, Location
from .base import BaseRepository


class ChargePointRepository(BaseRepository):
    """Handles database operations for chargepoint records."""

    async def insert(self, record: ChargePointRecord, change_tag: str, created_by: str | None):
        """Insert a new chargepoint record."""
        query = """
            INSERT INTO charge_point (
                record_name, metadata_hash, latitude, longitude, name, reason,
                reason_description, timestamp, url, change_tag, created_by
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """
        await self._execute(
            query,
            (
                record.record_name,
                record.metadata_hash,
                record.location.latitude,
                record.location.longitude,
                record.name,
                int(record.reason),
                record.reason_description,
                record.timestamp,
                record.url,
                change_tag,
                created_by,
            ),
        )

    async def update(self, record: ChargePointRecord, change_tag: str) -> bool:
        """
        Update a chargepoint record if its stored change tag still matches.

        Returns False when the record changed (or vanished) since it was read.
        """
        query = """
            UPDATE charge_point
            SET metadata_hash = ?,
                latitude = ?,
                longitude = ?,
                name = ?,
                reason = ?,
                reason_description = ?,
                timestamp = ?,
                url = ?,
                change_tag = ?,
                updated_at = CURRENT_TIMESTAMP
            WHERE record_name = ? AND change_tag = ?
        """
        cursor = await self._execute(
            query,
            (
                record.metadata_hash,
                record.location.latitude,
                record.location.longitude,
                record.name,
                int(record.reason),
                record.reason_description,
                record.timestamp,
                record.url,
                change_tag,
                record.record_name,
                record.change_tag,
            ),
        )
        return cursor.rowcount == 1

    async def get_by_id(self, record_name: str) -> ChargePointRecord | None:
        """Get chargepoint record by record name."""
        row = await self._fetchone(
            "SELECT * FROM charge_point WHERE record_name = ?", (record_name,)
        )
        if row:
            return self._row_to_model(row)
        return None

    async def get_by_names(self, record_names: list[str]) -> list[ChargePointRecord]:
        if not record_names:
            return []
        rows = await self._fetchall(
            f"SELECT * FROM charge_point WHERE record_name IN ({self._placeholders(record_names)})",
            tuple(record_names),
        )
        return [self._row_to_model(row) for row in rows]

    def _row_to_model(self, row) -> ChargePointRecord:
        """Convert database row to ChargePointRecord model."""
        return ChargePointRecord(
            record_name=row["record_name"],
            metadata_hash=row["metadata_hash"],
            location=Location(latitude=row["latitude"], longitude=row["longitude"]),
            name=row["name"],
            reason=row["reason"],
            reason_description=row["reason_description"],
            timestamp=row["timestamp"],
            url=row["url"],
            change_tag=row["change_tag"],
        )
