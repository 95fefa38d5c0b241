"""Base plugin infrastructure for CheckInsSyncManager."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from ..sync.manager import CheckInsSyncManager

logger = logging.getLogger(__name__)


class SyncHook(str, Enum):
    """
    Available plugin hooks in the lifecycle of a sync run.

    - BEFORE_RUN / AFTER_RUN: once per direction and run
    - AFTER_EVENT_*: once per processed event, after its outcome is known
    """

    BEFORE_RUN = "before_run"
    AFTER_RUN = "after_run"

    AFTER_EVENT_ACCEPTED = "after_event_accepted"
    AFTER_EVENT_SKIPPED = "after_event_skipped"
    AFTER_EVENT_FAILED = "after_event_failed"


@dataclass
class SyncContext:
    """
    Context provided to plugin hooks.

    Contains:
    - manager: The CheckInsSyncManager running the sync
    - direction: "download" or "upload"
    - data: Hook specific details (event id, chargepoint, reason, verdict...)
    - records: Records written (or, on dry runs, that would have been written)
    - result: The run summary (only available in AFTER_RUN)
    """

    manager: "CheckInsSyncManager"
    direction: str
    data: dict[str, Any]
    records: Optional[list[Any]] = None
    result: Any = None


class SyncPlugin(ABC):
    """
    Base class for CheckInsSyncManager plugins.

    Example:
        class MyPlugin(SyncPlugin):
            def hooks(self) -> dict[SyncHook, str]:
                return {SyncHook.AFTER_EVENT_ACCEPTED: "on_accepted"}

            async def on_accepted(self, context: SyncContext):
                logger.info(f"{context.data['chargepoint']} updated")
    """

    def __init__(self):
        """Initialize the plugin."""
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @abstractmethod
    def hooks(self) -> dict[SyncHook, str]:
        """
        Return a mapping of hooks to handler method names.

        Returns:
            Dictionary mapping SyncHook enum values to method names on this class.
        """

    async def initialize(self, manager: "CheckInsSyncManager"):
        """Called once before the first run of the manager."""
        _ = manager

    async def cleanup(self, manager: "CheckInsSyncManager"):
        """Called when the manager shuts down."""
        _ = manager
