"""Repository for check-in records."""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from ..models import ChargeEventSource, CheckInRecord, Location
from .base import BaseRepository


@dataclass(frozen=True)
class CheckInQuery:
    """Filter for check-in queries; results are ordered by (modified_at, record_name)."""

    sources: Optional[tuple[ChargeEventSource, ...]] = None
    created_by: Optional[str] = None
    modified_after: Optional[datetime] = None
    include_deleted: bool = False


class CheckInRepository(BaseRepository):
    """Handles database operations for check-ins."""

    async def insert(self, record: CheckInRecord, change_tag: str, created_by: str | None) -> bool:
        """Insert a new check-in, reviving a tombstone of the same name.

        Returns False when a live check-in with that name already exists.
        """
        query = """
            INSERT INTO check_in (
                record_name, chargepoint, latitude, longitude, reason, comment,
                plug, source, timestamp, modified_at, created_by, deleted, change_tag
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0, ?)
            ON CONFLICT(record_name) DO UPDATE SET
                chargepoint = excluded.chargepoint,
                latitude = excluded.latitude,
                longitude = excluded.longitude,
                reason = excluded.reason,
                comment = excluded.comment,
                plug = excluded.plug,
                source = excluded.source,
                timestamp = excluded.timestamp,
                modified_at = excluded.modified_at,
                created_by = excluded.created_by,
                deleted = 0,
                change_tag = excluded.change_tag
            WHERE check_in.deleted = 1
        """
        cursor = await self._execute(
            query,
            (
                record.record_name,
                record.chargepoint,
                record.location.latitude if record.location else None,
                record.location.longitude if record.location else None,
                int(record.reason),
                record.comment,
                record.plug,
                int(record.source),
                record.timestamp,
                record.modified_at,
                record.created_by or created_by,
                change_tag,
            ),
        )
        return cursor.rowcount == 1

    async def get_by_names(self, record_names: list[str]) -> list[CheckInRecord]:
        """Get check-ins by record name, deleted ones included."""
        if not record_names:
            return []
        rows = await self._fetchall(
            f"SELECT * FROM check_in WHERE record_name IN ({self._placeholders(record_names)})",
            tuple(record_names),
        )
        return [self._row_to_model(row) for row in rows]

    async def get_latest_for_chargepoint(self, chargepoint: str) -> CheckInRecord | None:
        """Get the most recent live check-in for a chargepoint."""
        row = await self._fetchone(
            """
            SELECT * FROM check_in
            WHERE chargepoint = ? AND deleted = 0
            ORDER BY timestamp DESC
            LIMIT 1
            """,
            (chargepoint,),
        )
        if row:
            return self._row_to_model(row)
        return None

    async def get_last_timestamp(
        self, sources: Iterable[ChargeEventSource]
    ) -> datetime | None:
        """Timestamp of the newest live check-in originating from one of ``sources``."""
        sources = [int(source) for source in sources]
        if not sources:
            return None
        row = await self._fetchone(
            f"""
            SELECT timestamp FROM check_in
            WHERE source IN ({self._placeholders(sources)}) AND deleted = 0
            ORDER BY timestamp DESC
            LIMIT 1
            """,
            tuple(sources),
        )
        return row["timestamp"] if row else None

    async def query(
        self,
        check_in_query: CheckInQuery,
        limit: int,
        after: tuple[datetime, str] | None = None,
    ) -> list[CheckInRecord]:
        """Get up to ``limit`` check-ins matching the query, after the keyset position."""
        clauses = []
        params: list = []

        if not check_in_query.include_deleted:
            clauses.append("deleted = 0")
        if check_in_query.sources is not None:
            sources = [int(source) for source in check_in_query.sources]
            if not sources:
                return []
            clauses.append(f"source IN ({self._placeholders(sources)})")
            params.extend(sources)
        if check_in_query.created_by is not None:
            clauses.append("created_by = ?")
            params.append(check_in_query.created_by)
        if check_in_query.modified_after is not None:
            clauses.append("modified_at > ?")
            params.append(check_in_query.modified_after)
        if after is not None:
            clauses.append("(modified_at > ? OR (modified_at = ? AND record_name > ?))")
            params.extend([after[0], after[0], after[1]])

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = await self._fetchall(
            f"""
            SELECT * FROM check_in
            {where}
            ORDER BY modified_at ASC, record_name ASC
            LIMIT ?
            """,
            (*params, limit),
        )
        return [self._row_to_model(row) for row in rows]

    async def mark_deleted(self, record_names: list[str], deleted_at: datetime):
        """Tombstone check-ins so the deletion can be synchronized."""
        if not record_names:
            return
        await self._execute(
            f"""
            UPDATE check_in
            SET deleted = 1,
                modified_at = ?
            WHERE record_name IN ({self._placeholders(record_names)})
            """,
            (deleted_at, *record_names),
        )

    def _row_to_model(self, row) -> CheckInRecord:
        """Convert database row to CheckInRecord model."""
        location = None
        if row["latitude"] is not None and row["longitude"] is not None:
            location = Location(latitude=row["latitude"], longitude=row["longitude"])
        return CheckInRecord(
            record_name=row["record_name"],
            chargepoint=row["chargepoint"],
            location=location,
            reason=row["reason"],
            comment=row["comment"],
            plug=row["plug"],
            source=ChargeEventSource(row["source"]),
            timestamp=row["timestamp"],
            modified_at=row["modified_at"],
            created_by=row["created_by"],
            deleted=bool(row["deleted"]),
        )
