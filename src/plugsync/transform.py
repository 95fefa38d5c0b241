"""Mapping between raw chargEV DB payloads, typed events and store records."""

import html
from datetime import UTC, datetime
from typing import Any, Optional

from .errors import MalformedEvent, NotImplementedEventType, UnknownEventType
from .models import (
    ChargeEvent,
    ChargeEventSource,
    ChargePointMetadata,
    ChargePointRecord,
    CheckInEvent,
    CheckInRecord,
    FaultLogEvent,
    ReasonCode,
)
from .reconcile import escalate

# Human readable (non localized) descriptions, keyed by reason code name.
REASON_DESCRIPTIONS = {
    "OK": "Charging successful",
    "RECOVERY": "Charging successful again after a reported fault",
    "EQUIPMENT_PROBLEM": "Charging failed: equipment problem",
    "EQUIPMENT_PROBLEM_ESCALATED": "Charging failed: new equipment problem",
    "NOT_COMPATIBLE": "Charging failed: vehicle not compatible",
    "NO_CHARGING_EQUIPMENT": "Charging failed: no charging equipment",
    "NOT_FOUND": "Chargepoint not found",
}
DEFAULT_REASON_DESCRIPTION = "code {}"

CHECK_IN_RECORD_PREFIX = "chargev-db-"


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse ISO-8601 strings or epoch milliseconds into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        result = value
    elif isinstance(value, (int, float)):
        result = datetime.fromtimestamp(value / 1000, tz=UTC)
    else:
        result = datetime.fromisoformat(str(value))
    if result.tzinfo is None:
        result = result.replace(tzinfo=UTC)
    return result


def _required_timestamp(payload: dict[str, Any], key: str) -> datetime:
    value = parse_timestamp(payload[key])
    if value is None:
        raise ValueError(f"{key} must not be empty")
    return value


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


def _common_fields(payload: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": str(payload.get("_id") or payload.get("id") or ""),
        "updated_at": _required_timestamp(payload, "updatedAt"),
        "upstream_updated_at": parse_timestamp(payload.get("upstreamUpdatedAt")),
        "source": ChargeEventSource(int(payload.get("source", ChargeEventSource.UPSTREAM))),
        "timestamp": _required_timestamp(payload, "timestamp"),
        "chargepoint": payload.get("chargepoint", ""),
        "comment": payload.get("comment") or "",
        "nickname": payload.get("nickname"),
        "user_id": payload.get("userID"),
    }


def _parse_check_in(payload: dict[str, Any]) -> CheckInEvent:
    return CheckInEvent(
        **_common_fields(payload),
        reason=int(payload["reason"]),
        plug=payload.get("plug"),
    )


def _parse_record_check_in(payload: dict[str, Any]) -> CheckInEvent:
    return CheckInEvent(
        **_common_fields(payload),
        reason=int(payload["reason"]),
        plug=payload.get("plug"),
        record_name=payload.get("recordName"),
        change_tag=payload.get("recordChangeTag"),
    )


def _parse_fault_log(payload: dict[str, Any]) -> FaultLogEvent:
    return FaultLogEvent(
        **_common_fields(payload),
        is_fault=bool(payload.get("isFault")),
        modified=_required_timestamp(payload, "modified"),
    )


EVENT_PARSERS = {
    "CheckIn": _parse_check_in,
    "CKCheckIn": _parse_record_check_in,
    "Ladelog": _parse_fault_log,
}


def parse_event(payload: dict[str, Any]) -> ChargeEvent:
    """Build the typed event for a raw payload, selected by its ``__t`` tag."""
    tag = payload.get("__t")
    parser = EVENT_PARSERS.get(tag)
    if parser is None:
        raise UnknownEventType(tag)
    try:
        return parser(payload)
    except (KeyError, TypeError, ValueError) as e:
        raise MalformedEvent(f"cannot parse {tag} event: {e}") from e


def check_in_event_to_payload(event: CheckInEvent) -> dict[str, Any]:
    """Serialize a check-in event for posting to the chargEV DB."""
    payload = {
        "__t": "CKCheckIn" if event.record_name else "CheckIn",
        "chargepoint": event.chargepoint,
        "comment": event.comment,
        "reason": event.reason,
        "plug": event.plug,
        "source": int(event.source),
        "timestamp": format_timestamp(event.timestamp),
        "upstreamUpdatedAt": format_timestamp(event.upstream_updated_at),
        "nickname": event.nickname,
        "userID": event.user_id,
    }
    if event.record_name:
        payload["recordName"] = event.record_name
        payload["recordChangeTag"] = event.change_tag
    return {key: value for key, value in payload.items() if value is not None}


def to_check_in_record(event: ChargeEvent, metadata: ChargePointMetadata) -> CheckInRecord:
    """Map an upstream event to the check-in record stored for it."""
    if isinstance(event, FaultLogEvent):
        return CheckInRecord(
            record_name=f"{CHECK_IN_RECORD_PREFIX}{event.id}",
            chargepoint=event.chargepoint,
            location=metadata.location,
            reason=ReasonCode.EQUIPMENT_PROBLEM if event.is_fault else ReasonCode.OK,
            comment=html.unescape(event.comment),
            timestamp=event.modified,
            modified_at=event.updated_at,
            source=ChargeEventSource.UPSTREAM,
        )
    if isinstance(event, CheckInEvent):
        raise NotImplementedEventType("ChargeEvent of type 'CheckIn' not implemented yet")
    raise NotImplementedEventType(
        f"ChargeEvent of type {type(event).__name__!r} not implemented yet"
    )


def reason_description(reason: int) -> str:
    """Describe a reason code, falling back to a generic text for unknown codes."""
    try:
        name = ReasonCode(reason).name
    except ValueError:
        name = None
    if name in REASON_DESCRIPTIONS:
        return REASON_DESCRIPTIONS[name]
    return DEFAULT_REASON_DESCRIPTION.format(int(reason))


def normalize_url(url: str) -> str:
    """GoingElectric returns scheme-relative URLs; give them a scheme."""
    if url.startswith("//"):
        return "http:" + url
    return url


def to_chargepoint_record(
    metadata: ChargePointMetadata,
    check_in: CheckInRecord,
    previous_check_in: Optional[CheckInRecord] = None,
    now: Optional[datetime] = None,
) -> ChargePointRecord:
    """
    Build the chargepoint summary for a newly accepted check-in.

    The description follows the check-in's own reason; the stored reason
    is escalated when the check-in reports a fresh fault or a transition.
    """
    previous = previous_check_in.reason if previous_check_in else None
    reason = escalate(previous, check_in.reason, check_in.timestamp, now)

    return ChargePointRecord(
        record_name=check_in.chargepoint,
        metadata_hash=metadata.hash,
        location=metadata.location,
        name=html.unescape(metadata.name),
        reason=reason,
        reason_description=reason_description(check_in.reason),
        timestamp=check_in.timestamp,
        url=normalize_url(metadata.url),
    )
