"""Plugin for structured audit logging to Fluentd."""

import asyncio
from dataclasses import asdict, is_dataclass
from datetime import datetime
from typing import Any

from fluent import sender

from .base import SyncContext, SyncHook, SyncPlugin


class FluentdAuditPlugin(SyncPlugin):
    """
    Sends a structured audit trail of every sync decision to Fluentd.

    Example log entry:
    {
        "type": "sync",
        "dir": "download",
        "event": "accepted",
        "data": {"event_id": "abc", "chargepoint": "chargepoint-0-42", "reason": 100},
        "records": [...]
    }
    """

    def __init__(
        self,
        tag_prefix: str = "plugsync",
        host: str = "localhost",
        port: int = 24224,
        timeout: float = 3.0,
        buffer_overflow_handler: Any = None,
        nanosecond_precision: bool = False,
    ):
        """
        Initialize the Fluentd audit plugin.

        Args:
            tag_prefix: Prefix for Fluentd tags (default: "plugsync")
                       Tags will be: plugsync.accepted, plugsync.run, etc.
            host: Fluentd server hostname (default: "localhost")
            port: Fluentd server port (default: 24224)
            timeout: Connection timeout in seconds (default: 3.0)
            buffer_overflow_handler: Handler for buffer overflow (default: None)
            nanosecond_precision: Use nanosecond precision timestamps (default: False)
        """
        super().__init__()
        self.tag_prefix = tag_prefix
        self.host = host
        self.port = port
        self.timeout = timeout
        self.buffer_overflow_handler = buffer_overflow_handler
        self.nanosecond_precision = nanosecond_precision
        self.sender = None

    def hooks(self) -> dict[SyncHook, str]:
        return {
            SyncHook.AFTER_EVENT_ACCEPTED: "log_accepted",
            SyncHook.AFTER_EVENT_SKIPPED: "log_skipped",
            SyncHook.AFTER_EVENT_FAILED: "log_failed",
            SyncHook.AFTER_RUN: "log_run",
        }

    async def initialize(self, manager):
        """Create the Fluentd sender before the first run."""
        try:
            self.sender = sender.FluentSender(
                self.tag_prefix,
                host=self.host,
                port=self.port,
                timeout=self.timeout,
                buffer_overflow_handler=self.buffer_overflow_handler,
                nanosecond_precision=self.nanosecond_precision,
            )
        except Exception as e:
            self.logger.error(f"Failed to initialize Fluentd sender: {e}", exc_info=True)
            self.sender = None

    async def cleanup(self, manager):
        if self.sender:
            try:
                await asyncio.to_thread(self.sender.close)
            except Exception as e:
                self.logger.error(f"Error closing Fluentd sender: {e}", exc_info=True)

    async def _send_event(self, tag: str, data: dict):
        """Send an event to Fluentd without blocking the event loop."""
        if not self.sender:
            return

        try:
            await asyncio.to_thread(self.sender.emit, tag, data)
        except Exception as e:
            self.logger.error(f"Failed to send event to Fluentd (tag={tag}): {e}")

    def _record_to_dict(self, record: Any) -> Any:
        if not is_dataclass(record):
            return record
        # msgpack has no datetime type
        return {
            k: v.isoformat() if isinstance(v, datetime) else v
            for k, v in asdict(record).items()
            if v is not None
        }

    def _base_event_data(self, context: SyncContext, event: str) -> dict:
        data = {
            "type": "sync",
            "dir": context.direction,
            "event": event,
            "dry_run": context.manager.options.dry_run,
            "data": context.data,
        }
        if context.records:
            data["records"] = [self._record_to_dict(record) for record in context.records]
        return data

    async def log_accepted(self, context: SyncContext):
        await self._send_event("accepted", self._base_event_data(context, "accepted"))

    async def log_skipped(self, context: SyncContext):
        await self._send_event("skipped", self._base_event_data(context, "skipped"))

    async def log_failed(self, context: SyncContext):
        await self._send_event("failed", self._base_event_data(context, "failed"))

    async def log_run(self, context: SyncContext):
        """Log the run summary."""
        await self._send_event("run", self._base_event_data(context, "run"))
