"""
KIOSK CORE - Alert State Machine
================================

Deduplication and rate limiting for health alerts.

Transitions:
    Clear  -> Active   first non-empty fingerprint (send alert)
    Active -> Active   same fingerprint within resend window (suppress)
    Active -> Active   same fingerprint after window elapsed (resend)
    Active -> Active   different fingerprint (send alert)
    Active -> Clear    empty fingerprint (send all-clear)

Author: KIOSK Development Team
Version: 1.0.0
"""

import hashlib
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable, Optional

from .constants import ALERT_RESEND_INTERVAL_SEC
from .models import AlertRecord, utc_now


class AlertAction(Enum):
    """Outcome of evaluating a fingerprint."""

    NONE = "none"
    SEND_ALERT = "send_alert"
    SEND_ALL_CLEAR = "send_all_clear"


@dataclass
class AlertState:
    """Current alert condition."""

    fingerprint: Optional[str] = None
    first_raised_at: Optional[datetime] = None
    last_sent_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.fingerprint is not None


def alert_fingerprint(record: Optional[AlertRecord]) -> Optional[str]:
    """
    Fingerprint the condition set of an alert record.

    Equal across checks iff the same alert codes persist. Empty or missing
    records have no fingerprint.
    """
    if record is None or record.is_empty:
        return None
    return fingerprint_codes(alert.code for alert in record.alerts)


def fingerprint_codes(codes: Iterable[str]) -> Optional[str]:
    """SHA-256 of the sorted, de-duplicated condition codes."""
    unique = sorted(set(codes))
    if not unique:
        return None
    return hashlib.sha256("|".join(unique).encode()).hexdigest()


class AlertStateMachine:
    """
    Tracks the active alert and decides when a message goes out.

    Example:
        machine = AlertStateMachine(resend_interval_sec=3600)
        machine.evaluate("abc")   # SEND_ALERT
        machine.evaluate("abc")   # NONE (suppressed)
        machine.evaluate(None)    # SEND_ALL_CLEAR
    """

    def __init__(self, resend_interval_sec: float = ALERT_RESEND_INTERVAL_SEC):
        self.resend_interval = timedelta(seconds=resend_interval_sec)
        self.state = AlertState()

    def evaluate(
        self, fingerprint: Optional[str], now: Optional[datetime] = None
    ) -> AlertAction:
        """
        Apply a new check result.

        Args:
            fingerprint: Fingerprint of the current condition set (None/"" = clear)
            now: Evaluation time (defaults to UTC now)

        Returns:
            The message action to take
        """
        now = now or utc_now()

        if not fingerprint:
            was_active = self.state.is_active
            self.state = AlertState()
            return AlertAction.SEND_ALL_CLEAR if was_active else AlertAction.NONE

        if fingerprint == self.state.fingerprint:
            last_sent = self.state.last_sent_at
            if last_sent is not None and now - last_sent < self.resend_interval:
                return AlertAction.NONE
            self.state.last_sent_at = now
            return AlertAction.SEND_ALERT

        self.state = AlertState(
            fingerprint=fingerprint,
            first_raised_at=now,
            last_sent_at=now,
        )
        return AlertAction.SEND_ALERT

    def reset(self) -> None:
        """Forget the active alert without sending anything."""
        self.state = AlertState()


__all__ = [
    "AlertAction",
    "AlertState",
    "AlertStateMachine",
    "alert_fingerprint",
    "fingerprint_codes",
]
