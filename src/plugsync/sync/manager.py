"""Synchronization of check-ins between the chargEV DB and the record store."""

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import replace
from datetime import UTC, datetime
from typing import Any, Optional

import aiohttp

from ..config import SyncConfig
from ..database import Database
from ..errors import (
    EventError,
    MetadataLookupFailure,
    RegistryError,
    StoreWriteConflict,
    UnsupportedRegistry,
)
from ..logging_utils import log_error, log_sync_event
from ..models import (
    ChargeEventSource,
    ChargePointMetadata,
    ChargepointRef,
    CheckInEvent,
    CheckInRecord,
    FaultLogEvent,
    Registry,
    UserRecord,
)
from ..pagination import Batch, CursorReader, FetchPage
from ..plugins.base import SyncContext, SyncHook, SyncPlugin
from ..reconcile import reconcile
from ..repositories import CheckInQuery
from ..stores import ChargevDBClient, GoingElectricClient, RecordStore, RecordType
from ..transform import (
    check_in_event_to_payload,
    parse_event,
    to_chargepoint_record,
    to_check_in_record,
)
from .summary import SyncOptions, SyncSummary

logger = logging.getLogger(__name__)

DOWNLOAD = "download"
UPLOAD = "upload"


class CheckInsSyncManager:
    """
    Runs the check-in synchronization in either direction.

    download: new chargEV DB events are enriched with GoingElectric details,
    reconciled against the latest stored check-in of their chargepoint and
    saved to the record store together with the updated chargepoint record.

    upload: check-ins created natively in the record store are posted to
    the chargEV DB, with nicknames resolved from the record store users.

    Resume positions are always derived from the stores themselves; the
    manager keeps no state between runs.
    """

    def __init__(
        self,
        options: SyncOptions,
        source: ChargevDBClient,
        store: RecordStore,
        registry: GoingElectricClient,
        plugins: list[SyncPlugin] | None = None,
        foreign_sources: Iterable[ChargeEventSource] = (ChargeEventSource.UPSTREAM,),
        clock: Callable[[], datetime] | None = None,
    ):
        self.options = options
        self.source = source
        self.store = store
        self.registry = registry
        self.foreign_sources = tuple(foreign_sources)
        self.native_sources = tuple(
            kind for kind in ChargeEventSource if kind not in self.foreign_sources
        )
        self._clock = clock or (lambda: datetime.now(UTC))
        self._database: Database | None = None

        # Initialize plugin system
        self.plugins: list[SyncPlugin] = plugins or []
        self._plugin_hooks: dict[SyncHook, list[tuple[SyncPlugin, str]]] = {}
        self._register_plugins()

    @classmethod
    async def from_config(
        cls,
        config: SyncConfig,
        options: SyncOptions,
        plugins: list[SyncPlugin] | None = None,
    ) -> "CheckInsSyncManager":
        """Build a manager with real clients and an initialized record store."""
        database = Database(config.db_path)
        await database.initialize_schema()
        connection = await database.connect()

        manager = cls(
            options,
            source=ChargevDBClient(config.chargev_db_url, config.chargev_db_jwt),
            store=RecordStore(
                connection,
                config.user_record_name,
                max_request_size=config.max_request_size,
            ),
            registry=GoingElectricClient(
                config.ge_api_key,
                api_url=config.ge_api_url,
                delay_ms=config.ge_api_delay_ms,
                random_delay=True,
            ),
            plugins=plugins,
        )
        manager._database = database
        return manager

    async def initialize(self):
        """Initialize all plugins."""
        for plugin in self.plugins:
            await plugin.initialize(self)

    async def close(self):
        """Clean up plugins and close all clients."""
        for plugin in self.plugins:
            try:
                await plugin.cleanup(self)
            except Exception as e:
                log_error(
                    logger,
                    "plugin_cleanup_error",
                    f"Failed to clean up plugin {plugin.__class__.__name__}: {e}",
                    plugin=plugin.__class__.__name__,
                    exc_info=e,
                )
        await self.source.close()
        await self.registry.close()
        if self._database:
            await self._database.disconnect()

    def _now(self) -> datetime:
        return self._clock()

    def _store_pages(self, check_in_query: CheckInQuery) -> FetchPage:
        async def fetch_page(continuation: Optional[str], remaining: Optional[int]) -> Batch:
            result = await self.store.query(
                check_in_query, results_limit=remaining, continuation=continuation
            )
            return result.to_batch()

        return fetch_page

    def _is_native(self, payload: dict[str, Any]) -> bool:
        try:
            return ChargeEventSource(int(payload.get("source"))) in self.native_sources
        except (TypeError, ValueError):
            return False

    # Download: chargEV DB -> record store

    async def get_change_token(self) -> str | None:
        """
        Derive the change token for a delta download from the record store.

        The token is the timestamp (epoch milliseconds) of the newest stored
        check-in that came from a foreign source; check-ins created in the
        record store itself are ignored so our own writes never move it.
        """
        timestamp = await self.store.get_last_timestamp_of_synchronized_record(
            self.foreign_sources
        )
        if timestamp is None:
            return None

        if self.options.verbose:
            logger.info(
                f"Newest timestamp of synchronized CheckIn in the record store: {timestamp.isoformat()}"
            )
        return str(int(timestamp.timestamp() * 1000))

    async def purge_check_ins_synchronized_from_upstream(self, summary: SyncSummary) -> int:
        """Delete the check-ins a previous download created in the record store."""
        check_in_query = CheckInQuery(
            sources=self.foreign_sources,
            created_by=self.store.user_record_name,
        )
        reader = CursorReader(self._store_pages(check_in_query))

        # Tombstoned check-ins drop out of the query, so collect first.
        record_names = []
        async for batch in reader.stream():
            record_names.extend(record.record_name for record in batch.items)

        if not record_names:
            return 0

        if self.options.dry_run:
            log_sync_event(
                logger,
                "dry_run",
                f"[DRY-RUN] will delete {len(record_names)} record(s)",
                direction=DOWNLOAD,
                count=len(record_names),
            )
            return len(record_names)

        await self.store.delete(record_names)
        summary.deleted += len(record_names)
        log_sync_event(
            logger,
            "purged",
            f"{len(record_names)} record(s) deleted",
            direction=DOWNLOAD,
            count=len(record_names),
        )
        return len(record_names)

    async def _get_chargepoint_metadata(self, ref: ChargepointRef) -> ChargePointMetadata:
        if ref.registry is not Registry.GOING_ELECTRIC:
            raise UnsupportedRegistry("currently we support only the GoingElectric registry")

        try:
            chargepoints = await self.registry.fetch_metadata([ref.local_id])
        except (RegistryError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise MetadataLookupFailure(
                f"could not fetch chargepoint details for ge_id {ref.local_id}: {e}"
            ) from e

        if not chargepoints:
            raise MetadataLookupFailure(
                f"could not fetch chargepoint details for going electric chargepoint with ge_id: {ref.local_id}"
            )
        return chargepoints[0]

    async def create_check_in_for_charge_event(
        self, payload: dict[str, Any], summary: SyncSummary
    ):
        """Reconcile one chargEV DB event and save the resulting records."""
        chargepoint = payload.get("chargepoint")
        event_id = payload.get("_id") or payload.get("id")

        try:
            event = parse_event(payload)
            ref = ChargepointRef.parse(event.chargepoint)

            metadata = await self._get_chargepoint_metadata(ref)
            last_check_in = await self.store.get_latest_check_in(ref.value)
            check_in = to_check_in_record(event, metadata)

            now = self._now()
            decision = reconcile(
                check_in,
                last_check_in,
                from_fault_log=isinstance(event, FaultLogEvent),
                now=now,
            )
            if not decision.accepted:
                summary.skip(decision.verdict.value)
                log_sync_event(
                    logger,
                    "skipped",
                    f"{decision.verdict.value} CheckIn for {ref} skipped",
                    direction=DOWNLOAD,
                    chargepoint=ref.value,
                    event_id=event_id,
                    verdict=decision.verdict.value,
                )
                await self._execute_plugin_hooks(
                    SyncHook.AFTER_EVENT_SKIPPED,
                    DOWNLOAD,
                    {"event_id": event_id, "chargepoint": ref.value, "verdict": decision.verdict.value},
                )
                return

            chargepoint_record = to_chargepoint_record(metadata, check_in, last_check_in, now)
            existing = await self.store.get_chargepoint(ref.value)
            if existing:
                chargepoint_record = replace(chargepoint_record, change_tag=existing.change_tag)

            records = [check_in, chargepoint_record]
            if self.options.dry_run:
                log_sync_event(
                    logger,
                    "dry_run",
                    f"[DRY-RUN] will insert {check_in} for {chargepoint_record}.",
                    direction=DOWNLOAD,
                    chargepoint=ref.value,
                    event_id=event_id,
                    reason=chargepoint_record.reason,
                )
            else:
                await self.store.save(records)
                log_sync_event(
                    logger,
                    "accepted",
                    f"New {check_in} for {chargepoint_record} created.",
                    direction=DOWNLOAD,
                    chargepoint=ref.value,
                    event_id=event_id,
                    reason=chargepoint_record.reason,
                )

            summary.accepted += 1
            await self._execute_plugin_hooks(
                SyncHook.AFTER_EVENT_ACCEPTED,
                DOWNLOAD,
                {"event_id": event_id, "chargepoint": ref.value, "reason": chargepoint_record.reason},
                records=records,
            )

        except StoreWriteConflict as e:
            # Someone else changed the chargepoint since we read it; never retry blindly.
            summary.conflicts += 1
            log_error(
                logger,
                "write_conflict",
                f"ERROR: {e}. CheckIn not saved.",
                chargepoint=chargepoint,
                event_id=event_id,
            )
            await self._execute_plugin_hooks(
                SyncHook.AFTER_EVENT_FAILED,
                DOWNLOAD,
                {"event_id": event_id, "chargepoint": chargepoint, "error": type(e).__name__},
            )
        except EventError as e:
            summary.failed += 1
            log_error(
                logger,
                "event_error",
                f"ERROR: {e}. CheckIn skipped.",
                chargepoint=chargepoint,
                event_id=event_id,
                error=type(e).__name__,
            )
            await self._execute_plugin_hooks(
                SyncHook.AFTER_EVENT_FAILED,
                DOWNLOAD,
                {"event_id": event_id, "chargepoint": chargepoint, "error": type(e).__name__},
            )

    async def fetch_new_events_and_save_to_store(self) -> SyncSummary:
        """Download new chargEV DB events into the record store."""
        summary = SyncSummary(direction=DOWNLOAD, dry_run=self.options.dry_run)
        await self._execute_plugin_hooks(SyncHook.BEFORE_RUN, DOWNLOAD, {"init": self.options.init})

        if self.options.init:
            await self.purge_check_ins_synchronized_from_upstream(summary)
            change_token = None
        else:
            change_token = await self.get_change_token()

        if change_token:
            logger.info(f"using change token: {change_token}")
        summary.change_token = change_token

        reader = CursorReader(self.source.pages(change_token), item_cap=self.options.limit)
        async for batch in reader.stream():
            summary.batches += 1
            for payload in batch.items:
                if self._is_native(payload):
                    summary.ignored += 1
                    continue
                summary.processed += 1
                await self.create_check_in_for_charge_event(payload, summary)

        return await self._finish(summary)

    # Upload: record store -> chargEV DB

    async def get_upload_watermark(self) -> datetime | None:
        """Modification time of the newest check-in already uploaded to the chargEV DB."""
        latest = await self.source.get_latest_event(ChargeEventSource.TARGET_STORE_NATIVE)
        if latest is None:
            return None
        return latest.upstream_updated_at or latest.updated_at

    async def _resolve_nicknames(self, records: list[CheckInRecord]) -> dict[str, str]:
        user_ids = sorted({record.created_by for record in records if record.created_by})
        if not user_ids:
            return {}
        users: list[UserRecord] = await self.store.fetch_by_identity(RecordType.USER, user_ids)
        return {user.record_name: user.nickname for user in users if user.nickname}

    def _check_in_event_from_record(
        self, record: CheckInRecord, nicknames: dict[str, str]
    ) -> CheckInEvent:
        ChargepointRef.parse(record.chargepoint)
        return CheckInEvent(
            id=record.record_name,
            updated_at=record.modified_at,
            upstream_updated_at=record.modified_at,
            source=ChargeEventSource.TARGET_STORE_NATIVE,
            timestamp=record.timestamp,
            chargepoint=record.chargepoint,
            comment=record.comment or "",
            nickname=nicknames.get(record.created_by),
            user_id=record.created_by,
            reason=int(record.reason),
            plug=record.plug,
            record_name=record.record_name,
        )

    async def upload_check_ins(self, records: list[CheckInRecord], summary: SyncSummary):
        """Post one batch of record store check-ins to the chargEV DB."""
        summary.processed += len(records)
        nicknames = await self._resolve_nicknames(records)

        to_save: list[dict[str, Any]] = []
        to_delete: list[str] = []
        for record in records:
            if record.deleted:
                to_delete.append(record.record_name)
                continue
            try:
                event = self._check_in_event_from_record(record, nicknames)
            except EventError as e:
                summary.failed += 1
                log_error(
                    logger,
                    "event_error",
                    f"ERROR: {e}. CheckIn skipped.",
                    chargepoint=record.chargepoint,
                    record_name=record.record_name,
                )
                await self._execute_plugin_hooks(
                    SyncHook.AFTER_EVENT_FAILED,
                    UPLOAD,
                    {"record_name": record.record_name, "error": type(e).__name__},
                )
                continue
            to_save.append(check_in_event_to_payload(event))

        if not to_save and not to_delete:
            return

        if self.options.dry_run:
            log_sync_event(
                logger,
                "dry_run",
                f"[DRY-RUN] will post {len(to_save)} event(s) and delete {len(to_delete)}",
                direction=UPLOAD,
                saved=len(to_save),
                deleted=len(to_delete),
            )
        else:
            result = await self.source.post_events(to_save, to_delete)
            summary.deleted += result["deletedCount"]
            log_sync_event(
                logger,
                "posted",
                f"{len(to_save)} event(s) posted, {result['deletedCount']} deleted",
                direction=UPLOAD,
                saved=len(to_save),
                deleted=result["deletedCount"],
            )

        summary.accepted += len(to_save)
        await self._execute_plugin_hooks(
            SyncHook.AFTER_EVENT_ACCEPTED,
            UPLOAD,
            {"count": len(to_save), "deleted": len(to_delete)},
            records=to_save,
        )

    async def fetch_new_check_ins_and_upload_to_source(self) -> SyncSummary:
        """Upload check-ins created in the record store to the chargEV DB."""
        summary = SyncSummary(direction=UPLOAD, dry_run=self.options.dry_run)
        await self._execute_plugin_hooks(SyncHook.BEFORE_RUN, UPLOAD, {"init": self.options.init})

        if self.options.init:
            if self.options.dry_run:
                logger.info("[DRY-RUN] will delete all previously uploaded events")
            else:
                deleted = await self.source.delete_all(ChargeEventSource.TARGET_STORE_NATIVE)
                summary.deleted += deleted
                logger.info(f"{deleted} previously uploaded event(s) deleted")
            watermark = None
        else:
            watermark = await self.get_upload_watermark()

        if watermark:
            logger.info(f"uploading check-ins modified after {watermark.isoformat()}")
            summary.change_token = watermark.isoformat()

        check_in_query = CheckInQuery(
            sources=self.native_sources,
            modified_after=watermark,
            # A fresh upload has nothing to delete upstream.
            include_deleted=not self.options.init,
        )
        reader = CursorReader(self._store_pages(check_in_query), item_cap=self.options.limit)
        async for batch in reader.stream():
            summary.batches += 1
            await self.upload_check_ins(batch.items, summary)

        return await self._finish(summary)

    # Run

    async def run(self, download: bool = True, upload: bool = False) -> list[SyncSummary]:
        summaries = []
        if download:
            logger.info("# Download new events from chargEV DB and save them to the record store")
            summaries.append(await self.fetch_new_events_and_save_to_store())
        if upload:
            logger.info("# Fetch new check-ins from the record store and upload them to chargEV DB")
            summaries.append(await self.fetch_new_check_ins_and_upload_to_source())
        return summaries

    async def _finish(self, summary: SyncSummary) -> SyncSummary:
        summary.finish()
        log_sync_event(
            logger,
            "summary",
            f"Processed {summary.processed} record(s).",
            **summary.to_dict(),
        )
        await self._execute_plugin_hooks(
            SyncHook.AFTER_RUN, summary.direction, summary.to_dict(), result=summary
        )
        return summary

    def stats(self) -> dict[str, int]:
        return {
            "registry_requests": self.registry.request_count,
            "chargev_db_requests": self.source.request_count,
        }

    # Plugins

    def _register_plugins(self):
        """Register all plugins and build hook mapping."""
        for plugin in self.plugins:
            try:
                hooks = plugin.hooks()
                for hook, method_name in hooks.items():
                    self._plugin_hooks.setdefault(hook, []).append((plugin, method_name))
            except Exception as e:
                log_error(
                    logger,
                    "plugin_registration_error",
                    f"Failed to register plugin {plugin.__class__.__name__}: {e}",
                    plugin=plugin.__class__.__name__,
                    exc_info=e,
                )

    async def _execute_plugin_hooks(
        self,
        hook: SyncHook,
        direction: str,
        data: dict,
        records: list | None = None,
        result=None,
    ):
        """Execute all registered plugin hooks for a given lifecycle point."""
        if hook not in self._plugin_hooks:
            return

        context = SyncContext(
            manager=self,
            direction=direction,
            data=data,
            records=records,
            result=result,
        )

        for plugin, method_name in self._plugin_hooks[hook]:
            try:
                method = getattr(plugin, method_name)
                await method(context)
            except Exception as e:
                log_error(
                    logger,
                    "plugin_execution_error",
                    f"Error executing {plugin.__class__.__name__}.{method_name} for hook {hook.value}: {e}",
                    plugin=plugin.__class__.__name__,
                    hook=hook.value,
                    method=method_name,
                    exc_info=e,
                )
