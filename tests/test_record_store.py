"""Tests for the SQLite record store."""

from dataclasses import replace
from datetime import timedelta

import pytest

from plugsync.errors import StoreError, StoreRequestTooLarge, StoreWriteConflict
from plugsync.models import (
    ChargeEventSource,
    ChargePointRecord,
    CheckInRecord,
    Location,
    UserRecord,
)
from plugsync.repositories import CheckInQuery
from plugsync.stores import RecordStore, RecordType

from .conftest import NOW, SYNC_USER

LOCATION = Location(latitude=52.52, longitude=13.40)


def make_check_in(
    name,
    minutes=0,
    reason=100,
    source=ChargeEventSource.UPSTREAM,
    chargepoint="chargepoint-0-42",
    **kwargs,
):
    timestamp = NOW + timedelta(minutes=minutes)
    return CheckInRecord(
        record_name=name,
        chargepoint=chargepoint,
        location=LOCATION,
        reason=reason,
        timestamp=timestamp,
        modified_at=timestamp,
        source=source,
        **kwargs,
    )


def make_chargepoint(reason=101, change_tag=None):
    return ChargePointRecord(
        record_name="chargepoint-0-42",
        metadata_hash="abc",
        location=LOCATION,
        name="Test",
        reason=reason,
        timestamp=NOW,
        url="http://example.com",
        change_tag=change_tag,
    )


@pytest.mark.unit
class TestSave:
    """Test atomic saves and change tag checks."""

    async def test_save_creates_records(self, record_store):
        await record_store.save([make_check_in("ci-1", comment="ok"), make_chargepoint()])

        latest = await record_store.get_latest_check_in("chargepoint-0-42")
        assert latest.record_name == "ci-1"
        assert latest.timestamp == NOW
        assert latest.created_by == SYNC_USER
        assert latest.comment == "ok"

        chargepoint = await record_store.get_chargepoint("chargepoint-0-42")
        assert chargepoint.reason == 101
        assert chargepoint.change_tag

    async def test_update_with_matching_tag(self, record_store):
        await record_store.save([make_chargepoint()])
        stored = await record_store.get_chargepoint("chargepoint-0-42")

        await record_store.save([replace(make_chargepoint(reason=11), change_tag=stored.change_tag)])

        updated = await record_store.get_chargepoint("chargepoint-0-42")
        assert updated.reason == 11
        assert updated.change_tag != stored.change_tag

    async def test_stale_tag_rolls_back_whole_save(self, record_store):
        await record_store.save([make_chargepoint()])

        with pytest.raises(StoreWriteConflict) as exc_info:
            await record_store.save(
                [make_check_in("ci-1"), make_chargepoint(reason=11, change_tag="outdated")]
            )

        assert exc_info.value.record_name == "chargepoint-0-42"
        assert await record_store.get_latest_check_in("chargepoint-0-42") is None
        assert (await record_store.get_chargepoint("chargepoint-0-42")).reason == 101

    async def test_insert_over_existing_chargepoint_conflicts(self, record_store):
        await record_store.save([make_chargepoint()])

        with pytest.raises(StoreWriteConflict):
            await record_store.save([make_chargepoint(reason=11)])

    async def test_duplicate_check_in_conflicts(self, record_store):
        await record_store.save([make_check_in("ci-1")])

        with pytest.raises(StoreWriteConflict):
            await record_store.save([make_check_in("ci-1", minutes=5)])

    async def test_deleted_check_in_can_be_recreated(self, record_store):
        await record_store.save([make_check_in("ci-1")])
        await record_store.delete(["ci-1"])

        await record_store.save([make_check_in("ci-1", minutes=5, reason=10)])

        latest = await record_store.get_latest_check_in("chargepoint-0-42")
        assert latest.record_name == "ci-1"
        assert latest.reason == 10
        assert not latest.deleted

    async def test_unexpected_error_rolls_back(self, record_store):
        with pytest.raises(TypeError):
            await record_store.save([make_check_in("ci-1"), object()])

        await record_store.save([make_chargepoint()])

        assert await record_store.get_latest_check_in("chargepoint-0-42") is None

    async def test_request_too_large(self, db_connection):
        store = RecordStore(db_connection, SYNC_USER, max_request_size=1)

        with pytest.raises(StoreRequestTooLarge):
            await store.save([make_check_in("ci-1"), make_chargepoint()])


@pytest.mark.unit
class TestQuery:
    """Test filtered, paged check-in queries."""

    async def _seed(self, store):
        for index in range(5):
            await store.save([make_check_in(f"ci-{index}", minutes=index)])

    async def test_pages_with_continuation(self, db_connection):
        store = RecordStore(db_connection, SYNC_USER, page_size=2)
        await self._seed(store)

        names = []
        continuation = None
        pages = 0
        while True:
            result = await store.query(CheckInQuery(), continuation=continuation)
            pages += 1
            names.extend(record.record_name for record in result.records)
            if not result.more_coming:
                break
            continuation = result.continuation

        assert names == [f"ci-{index}" for index in range(5)]
        assert pages == 3

    async def test_results_limit(self, record_store):
        await self._seed(record_store)

        result = await record_store.query(CheckInQuery(), results_limit=2)

        assert [record.record_name for record in result.records] == ["ci-0", "ci-1"]
        assert result.more_coming

    async def test_filters(self, record_store):
        await self._seed(record_store)
        await record_store.save(
            [
                make_check_in(
                    "native-1",
                    minutes=10,
                    source=ChargeEventSource.TARGET_STORE_NATIVE,
                    created_by="user-1",
                )
            ]
        )

        native = await record_store.query(
            CheckInQuery(sources=(ChargeEventSource.TARGET_STORE_NATIVE,))
        )
        assert [record.record_name for record in native.records] == ["native-1"]

        mine = await record_store.query(CheckInQuery(created_by=SYNC_USER))
        assert len(mine.records) == 5

        recent = await record_store.query(
            CheckInQuery(modified_after=NOW + timedelta(minutes=3))
        )
        assert [record.record_name for record in recent.records] == ["ci-4", "native-1"]

    async def test_deleted_only_when_asked(self, record_store):
        await self._seed(record_store)
        await record_store.delete(["ci-4"])

        live = await record_store.query(CheckInQuery())
        assert "ci-4" not in [record.record_name for record in live.records]

        everything = await record_store.query(CheckInQuery(include_deleted=True))
        deleted = [record for record in everything.records if record.deleted]
        assert [record.record_name for record in deleted] == ["ci-4"]

    async def test_latest_skips_deleted(self, record_store):
        await self._seed(record_store)
        await record_store.delete(["ci-4"])

        latest = await record_store.get_latest_check_in("chargepoint-0-42")
        assert latest.record_name == "ci-3"

    async def test_last_timestamp_by_source(self, record_store):
        await self._seed(record_store)
        await record_store.save(
            [make_check_in("native-1", minutes=30, source=ChargeEventSource.TARGET_STORE_NATIVE)]
        )

        upstream = await record_store.get_last_timestamp_of_synchronized_record(
            [ChargeEventSource.UPSTREAM]
        )
        assert upstream == NOW + timedelta(minutes=4)

    async def test_last_timestamp_empty_store(self, record_store):
        assert (
            await record_store.get_last_timestamp_of_synchronized_record(
                [ChargeEventSource.UPSTREAM]
            )
            is None
        )

    async def test_invalid_continuation(self, record_store):
        with pytest.raises(StoreError):
            await record_store.query(CheckInQuery(), continuation="garbage")


@pytest.mark.unit
class TestBisection:
    """Test transparent splitting of oversized requests."""

    async def _seed_users(self, store):
        users = [UserRecord(record_name=f"user-{index}", nickname=f"nick-{index}") for index in range(10)]
        await store.save(users[:5])
        await store.save(users[5:])
        return [user.record_name for user in users]

    async def test_fetch_matches_unsplit_result(self, db_connection):
        small = RecordStore(db_connection, SYNC_USER, max_request_size=5)
        large = RecordStore(db_connection, SYNC_USER)
        names = await self._seed_users(small)

        split = await small.fetch_by_identity(RecordType.USER, names)
        unsplit = await large.fetch_by_identity(RecordType.USER, names)

        assert sorted(split, key=lambda user: user.record_name) == sorted(
            unsplit, key=lambda user: user.record_name
        )
        assert len(split) == 10

    async def test_fetch_splits_odd_sizes(self, db_connection):
        store = RecordStore(db_connection, SYNC_USER, max_request_size=2)
        names = await self._seed_users(RecordStore(db_connection, SYNC_USER))

        users = await store.fetch_by_identity(RecordType.USER, names[:7])

        assert {user.record_name for user in users} == set(names[:7])

    async def test_delete_splits(self, db_connection):
        store = RecordStore(db_connection, SYNC_USER, max_request_size=3)
        for index in range(7):
            await store.save([make_check_in(f"ci-{index}", minutes=index)])

        await store.delete([f"ci-{index}" for index in range(7)])

        records = await store.fetch_by_identity(
            RecordType.CHECK_IN, [f"ci-{index}" for index in range(7)]
        )
        assert len(records) == 7
        assert all(record.deleted for record in records)

    async def test_fetch_missing_names(self, record_store):
        assert await record_store.fetch_by_identity(RecordType.CHARGE_POINT, ["nope"]) == []
