"""Run options and run summaries of the check-in synchronization."""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class SyncOptions:
    dry_run: bool = False
    limit: Optional[int] = None
    verbose: bool = False
    # instead of doing a delta download or delta upload, purge existing
    # records and process everything from scratch
    init: bool = False

    def __post_init__(self):
        if self.limit is not None and self.limit < 0:
            raise ValueError("limit must not be negative")


@dataclass
class SyncSummary:
    """Counts of one run in one direction."""

    direction: str
    dry_run: bool = False
    processed: int = 0
    accepted: int = 0
    skipped: dict[str, int] = field(default_factory=dict)
    failed: int = 0
    conflicts: int = 0
    ignored: int = 0
    deleted: int = 0
    batches: int = 0
    change_token: Optional[str] = None
    started_at: str = field(default_factory=lambda: datetime.now().isoformat())
    finished_at: Optional[str] = None

    @property
    def total_skipped(self) -> int:
        return sum(self.skipped.values())

    def skip(self, reason: str):
        self.skipped[reason] = self.skipped.get(reason, 0) + 1

    def finish(self):
        self.finished_at = datetime.now().isoformat()

    def to_dict(self) -> dict:
        data = asdict(self)
        data["total_skipped"] = self.total_skipped
        return data
