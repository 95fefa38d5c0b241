"""Decide whether an incoming check-in is applied and which reason code it gets."""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Optional

from .models import ChargeEventSource, CheckInRecord, ReasonCode

logger = logging.getLogger(__name__)

# Transitions older than this are stored unescalated.
ESCALATION_WINDOW = timedelta(days=3)


class Verdict(str, Enum):
    """Outcome of reconciling a check-in against the latest stored one."""

    ACCEPT = "accept"
    STALE = "stale"
    REDUNDANT_POSITIVE = "redundant_positive"


@dataclass(frozen=True)
class Decision:
    verdict: Verdict
    reason: Optional[int] = None

    @property
    def accepted(self) -> bool:
        return self.verdict is Verdict.ACCEPT


def _as_reason_code(value: int) -> Optional[ReasonCode]:
    try:
        return ReasonCode(value)
    except ValueError:
        return None


def _is_positive(value: int) -> bool:
    code = _as_reason_code(value)
    return code is not None and code.is_positive


def escalate(
    previous: Optional[int],
    incoming: int,
    timestamp: datetime,
    now: Optional[datetime] = None,
) -> int:
    """
    Return the reason code to store for a chargepoint.

    The escalated variant (base + 1) is used when the check-in reports the
    first fault for a chargepoint or a transition away from the previous
    reason, and only while the check-in is within ESCALATION_WINDOW.
    """
    code = _as_reason_code(incoming)
    if code is None:
        return incoming

    first_fault = previous is None and code.is_fault_base
    transition = previous is not None and previous != incoming
    if not (first_fault or transition):
        return code

    now = now or datetime.now(UTC)
    if timestamp < now - ESCALATION_WINDOW:
        return code
    return code.escalated()


def reconcile(
    incoming: CheckInRecord,
    previous: Optional[CheckInRecord],
    *,
    from_fault_log: bool = True,
    now: Optional[datetime] = None,
) -> Decision:
    """
    Reconcile ``incoming`` against the latest stored check-in ``previous``.

    Rules, in order: reject when the stored check-in is at least as new,
    reject a second consecutive positive fault log entry, otherwise accept
    with the (possibly escalated) reason.
    """
    if previous is not None and previous.timestamp >= incoming.timestamp:
        return Decision(Verdict.STALE)

    if (
        from_fault_log
        and previous is not None
        and previous.source == ChargeEventSource.UPSTREAM
        and _is_positive(previous.reason)
        and _is_positive(incoming.reason)
    ):
        return Decision(Verdict.REDUNDANT_POSITIVE)

    reason = escalate(
        previous.reason if previous else None,
        incoming.reason,
        incoming.timestamp,
        now,
    )
    return Decision(Verdict.ACCEPT, reason)
