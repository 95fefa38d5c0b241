"""Domain models for check-in synchronization."""

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from typing import Any, Optional

from ..errors import InvalidChargepointRef, UnsupportedRegistry


class ChargeEventSource(IntEnum):
    """Where a charge event was originally recorded."""

    TARGET_STORE_NATIVE = 0
    UPSTREAM = 1


class Registry(IntEnum):
    """Chargepoint registries a chargepoint reference can point into."""

    GOING_ELECTRIC = 0
    OPEN_CHARGE_MAP = 1


class ReasonCode(IntEnum):
    """
    Check-in reason codes.

    Codes 10-11 are positive, 100-105 are fault base/escalated pairs where
    the escalated variant marks a fresh occurrence (base + 1), and 200+ are
    administrative.
    """

    OK = 10
    RECOVERY = 11

    EQUIPMENT_PROBLEM = 100
    EQUIPMENT_PROBLEM_ESCALATED = 101
    NOT_COMPATIBLE = 102
    NOT_COMPATIBLE_ESCALATED = 103
    NO_CHARGING_EQUIPMENT = 104
    NO_CHARGING_EQUIPMENT_ESCALATED = 105

    NOT_FOUND = 200
    DUPLICATE = 201
    POSITIVE = 202
    NEGATIVE = 203

    @property
    def is_positive(self) -> bool:
        return self in (ReasonCode.OK, ReasonCode.RECOVERY)

    @property
    def is_fault_base(self) -> bool:
        return self in FAULT_BASE_CODES

    @property
    def can_escalate(self) -> bool:
        return self is ReasonCode.OK or self in FAULT_BASE_CODES

    def escalated(self) -> "ReasonCode":
        """Return the escalated variant, or the code itself if it has none."""
        if not self.can_escalate:
            return self
        return ReasonCode(self.value + 1)


FAULT_BASE_CODES = frozenset(
    {
        ReasonCode.EQUIPMENT_PROBLEM,
        ReasonCode.NOT_COMPATIBLE,
        ReasonCode.NO_CHARGING_EQUIPMENT,
    }
)


_CHARGEPOINT_REF_RE = re.compile(r"^chargepoint-(\d+)-(\d+)$")


@dataclass(frozen=True)
class ChargepointRef:
    """Parsed form of a chargepoint-<registry>-<local id> reference."""

    value: str
    registry: Registry
    local_id: int

    @classmethod
    def parse(cls, value: str) -> "ChargepointRef":
        match = _CHARGEPOINT_REF_RE.match(value or "")
        if not match:
            raise InvalidChargepointRef(
                f'chargepoint identifier "{value}" does not match expected format'
            )
        try:
            registry = Registry(int(match.group(1)))
        except ValueError as e:
            raise UnsupportedRegistry(f"unknown registry {match.group(1)} in {value}") from e
        return cls(value=value, registry=registry, local_id=int(match.group(2)))

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Location:
    """A WGS84 position."""

    latitude: float
    longitude: float


@dataclass(frozen=True, kw_only=True)
class ChargeEvent:
    """Fields shared by all events read from the chargEV DB."""

    id: str
    updated_at: datetime
    source: ChargeEventSource
    timestamp: datetime
    chargepoint: str
    comment: str = ""
    upstream_updated_at: Optional[datetime] = None
    nickname: Optional[str] = None
    user_id: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class CheckInEvent(ChargeEvent):
    """A manually reported status.

    Events synchronized from the record store also carry the identity and
    change tag of the record they came from.
    """

    reason: int
    plug: Optional[str] = None
    record_name: Optional[str] = None
    change_tag: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class FaultLogEvent(ChargeEvent):
    """An automatically reported status from the GoingElectric fault log."""

    is_fault: bool
    modified: datetime


@dataclass(frozen=True)
class ChargePointMetadata:
    """Registry snapshot of a chargepoint, fetched fresh for every event."""

    external_id: int
    name: str
    location: Location
    url: str
    hash: str = ""
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True)
class CheckInRecord:
    """A check-in as stored in the record store. Never updated after creation."""

    record_name: str
    chargepoint: str
    location: Optional[Location]
    reason: int
    timestamp: datetime
    modified_at: datetime
    source: ChargeEventSource = ChargeEventSource.TARGET_STORE_NATIVE
    comment: Optional[str] = None
    plug: Optional[str] = None
    created_by: Optional[str] = None
    deleted: bool = False

    def __str__(self) -> str:
        return f"CheckIn [reason: {self.reason}, timestamp: {self.timestamp.isoformat()}]"


@dataclass(frozen=True)
class ChargePointRecord:
    """Per-chargepoint status summary, upserted on every accepted check-in."""

    record_name: str
    metadata_hash: str
    location: Location
    name: str
    reason: int
    timestamp: datetime
    url: str
    reason_description: Optional[str] = None
    change_tag: Optional[str] = None

    def __str__(self) -> str:
        return f'{self.record_name} "{self.name}" [reason: {self.reason}]'


@dataclass(frozen=True)
class UserRecord:
    """A record store user; only the nickname is of interest."""

    record_name: str
    nickname: Optional[str] = None
