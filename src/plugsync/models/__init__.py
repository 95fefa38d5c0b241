from .domain import (
    FAULT_BASE_CODES,
    ChargeEvent,
    ChargeEventSource,
    ChargePointMetadata,
    ChargePointRecord,
    ChargepointRef,
    CheckInEvent,
    CheckInRecord,
    FaultLogEvent,
    Location,
    ReasonCode,
    Registry,
    UserRecord,
)

__all__ = [
    "FAULT_BASE_CODES",
    "ChargeEvent",
    "ChargeEventSource",
    "ChargePointMetadata",
    "ChargePointRecord",
    "ChargepointRef",
    "CheckInEvent",
    "CheckInRecord",
    "FaultLogEvent",
    "Location",
    "ReasonCode",
    "Registry",
    "UserRecord",
]
