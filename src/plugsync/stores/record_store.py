"""Record store facade over the check-in database.

Implements the query, fetch, save and delete contract the synchronization
relies on: keyset pagination with opaque continuation handles, a maximum
request size with transparent bisection, atomic multi-record saves and
change tag checks on chargepoint records.
"""

import logging
import sqlite3
import uuid
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Iterable, Optional, TypeVar

import aiosqlite

from ..errors import StoreError, StoreRequestTooLarge, StoreWriteConflict
from ..models import ChargeEventSource, ChargePointRecord, CheckInRecord, UserRecord
from ..pagination import Batch
from ..repositories import (
    ChargePointRepository,
    CheckInQuery,
    CheckInRepository,
    UserRepository,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_REQUEST_SIZE = 200
DEFAULT_PAGE_SIZE = 100


class RecordType(str, Enum):
    CHECK_IN = "CheckIns"
    CHARGE_POINT = "ChargePoints"
    USER = "Users"


@dataclass
class QueryResult:
    """One page of a record store query."""

    records: list[CheckInRecord] = field(default_factory=list)
    more_coming: bool = False
    continuation: Optional[str] = None

    def to_batch(self) -> Batch[CheckInRecord]:
        return Batch(self.records, more_coming=self.more_coming, next_cursor=self.continuation)


def encode_continuation(record: CheckInRecord) -> str:
    return f"{record.modified_at.astimezone(UTC).isoformat()}|{record.record_name}"


def decode_continuation(handle: str) -> tuple[datetime, str]:
    try:
        modified_at, record_name = handle.split("|", 1)
        return datetime.fromisoformat(modified_at), record_name
    except ValueError as e:
        raise StoreError(f"invalid continuation handle: {handle!r}") from e


def new_change_tag() -> str:
    return uuid.uuid4().hex[:12]


class RecordStore:
    """
    Check-in record store backed by SQLite.

    ``user_record_name`` is the identity under which this process writes;
    it is stamped on created records so a later run can find its own output.
    """

    def __init__(
        self,
        connection: aiosqlite.Connection,
        user_record_name: str,
        max_request_size: int = DEFAULT_MAX_REQUEST_SIZE,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        self.conn = connection
        self.user_record_name = user_record_name
        self.max_request_size = max_request_size
        self.page_size = page_size

        self.check_in_repo = CheckInRepository(connection)
        self.cp_repo = ChargePointRepository(connection)
        self.user_repo = UserRepository(connection)

    def _check_request_size(self, size: int):
        if size > self.max_request_size:
            raise StoreRequestTooLarge(size, self.max_request_size)

    # Queries

    async def query(
        self,
        check_in_query: CheckInQuery,
        results_limit: int | None = None,
        continuation: str | None = None,
    ) -> QueryResult:
        """Fetch one page of check-ins matching ``check_in_query``."""
        limit = self.page_size if results_limit is None else min(results_limit, self.page_size)
        after = decode_continuation(continuation) if continuation else None

        # Ask for one extra row to learn whether another page exists.
        records = await self.check_in_repo.query(check_in_query, limit + 1, after)
        more_coming = len(records) > limit
        records = records[:limit]

        return QueryResult(
            records=records,
            more_coming=more_coming,
            continuation=encode_continuation(records[-1]) if more_coming and records else None,
        )

    async def get_latest_check_in(self, chargepoint: str) -> CheckInRecord | None:
        return await self.check_in_repo.get_latest_for_chargepoint(chargepoint)

    async def get_chargepoint(self, record_name: str) -> ChargePointRecord | None:
        return await self.cp_repo.get_by_id(record_name)

    async def get_last_timestamp_of_synchronized_record(
        self, sources: Iterable[ChargeEventSource]
    ) -> datetime | None:
        """Timestamp of the newest check-in that came from one of ``sources``."""
        return await self.check_in_repo.get_last_timestamp(sources)

    async def fetch_by_identity(self, record_type: RecordType, record_names: list[str]) -> list[Any]:
        """Fetch records by name, splitting requests the store rejects as too large."""
        fetchers = {
            RecordType.CHECK_IN: self.check_in_repo.get_by_names,
            RecordType.CHARGE_POINT: self.cp_repo.get_by_names,
            RecordType.USER: self.user_repo.get_by_names,
        }
        fetch = fetchers[record_type]

        async def fetch_chunk(names: list[str]) -> list[Any]:
            self._check_request_size(len(names))
            return await fetch(names)

        return await self._bisect(fetch_chunk, list(record_names))

    # Mutations

    async def save(self, records: Sequence[CheckInRecord | ChargePointRecord | UserRecord]):
        """
        Save all ``records`` in one transaction.

        Check-ins are created, chargepoint records are updated when their
        change tag matches the stored one and created when absent. Any
        mismatch rolls back the whole save and raises StoreWriteConflict.
        """
        self._check_request_size(len(records))
        try:
            for record in records:
                await self._save_one(record)
        except Exception:
            await self.conn.rollback()
            raise
        await self.conn.commit()

    async def _save_one(self, record):
        if isinstance(record, CheckInRecord):
            if not await self.check_in_repo.insert(
                record, new_change_tag(), self.user_record_name
            ):
                raise StoreWriteConflict(
                    record.record_name, f"check-in {record.record_name!r} already exists"
                )
        elif isinstance(record, ChargePointRecord):
            await self._save_chargepoint(record)
        elif isinstance(record, UserRecord):
            await self.user_repo.upsert(record)
        else:
            raise TypeError(f"cannot save {type(record).__name__}")

    async def _save_chargepoint(self, record: ChargePointRecord):
        tag = new_change_tag()
        if record.change_tag is None:
            try:
                await self.cp_repo.insert(record, tag, self.user_record_name)
            except sqlite3.IntegrityError as e:
                raise StoreWriteConflict(
                    record.record_name,
                    f"chargepoint {record.record_name!r} exists, change tag required",
                ) from e
        elif not await self.cp_repo.update(record, tag):
            raise StoreWriteConflict(record.record_name)

    async def delete(self, record_names: list[str]):
        """
        Delete check-ins by name, splitting requests the store rejects as too large.

        Check-ins are tombstoned so the deletion stays visible to queries
        that include deleted records.
        """

        async def delete_chunk(names: list[str]) -> list[str]:
            self._check_request_size(len(names))
            await self.check_in_repo.mark_deleted(names, datetime.now(UTC))
            await self.conn.commit()
            return names

        await self._bisect(delete_chunk, list(record_names))

    async def _bisect(
        self, operation: Callable[[list[str]], Awaitable[list[T]]], names: list[str]
    ) -> list[T]:
        if not names:
            return []
        try:
            return await operation(names)
        except StoreRequestTooLarge:
            if len(names) < 2:
                raise
            half = len(names) // 2
            logger.debug(f"Request of {len(names)} record(s) too large, splitting at {half}")
            first = await self._bisect(operation, names[:half])
            second = await self._bisect(operation, names[half:])
            return first + second
