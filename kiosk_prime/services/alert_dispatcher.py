# KIOSK_FEAT: alerts-001
"""
KIOSK PRIME - Alert Dispatcher
==============================

Periodic health check with deduplicated, rate limited notifications.

Features:
- Pluggable status checker
- Fingerprint-based deduplication with a resend window
- All-clear message when the condition set empties
- Parallel fan-out to every notify channel

Author: KIOSK Development Team
Version: 1.0.0
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from shared.kiosk_core.alert_state import AlertAction, AlertStateMachine, alert_fingerprint
from shared.kiosk_core.constants import ALERT_SUBJECT_PREFIX
from shared.kiosk_core.exceptions import NotificationChannelError
from shared.kiosk_core.models import Alert, AlertRecord

from ..core.event_bus import Event, EventBus, EventPriority, EventType
from ..core.state import KioskState
from .market_data import MarketDataPoller

logger = logging.getLogger("KIOSK_Alerts")


class StatusChecker(ABC):
    """Produces the current set of alert conditions."""

    @abstractmethod
    async def check_status(self) -> AlertRecord:
        pass


class BalanceStatusChecker(StatusChecker):
    """
    Raises a low balance alert for every currency whose fiat balance is
    below `settings.low_balance_threshold`.

    No threshold configured means no balance alerts.
    """

    def __init__(self, state: KioskState, market_data: MarketDataPoller):
        self.state = state
        self.market_data = market_data

    async def check_status(self) -> AlertRecord:
        threshold: Optional[Decimal] = self.state.config.settings.low_balance_threshold
        alerts: List[Alert] = []

        if threshold is None:
            return AlertRecord(alerts=alerts)

        for entry in self.market_data.check_balances():
            if entry["fiat_balance"] < threshold:
                code = entry["currency_code"]
                alerts.append(Alert(
                    code=f"LOW_BALANCE_{code}",
                    message=(
                        f"Low {code} balance: {entry['fiat_balance']} "
                        f"{entry['fiat_code']} (threshold {threshold})"
                    ),
                    currency_code=code,
                ))

        return AlertRecord(alerts=alerts)


def build_alert_message(record: AlertRecord) -> Dict[str, Any]:
    """Message record for an active condition set."""
    lines = [alert.message for alert in record.alerts]
    return {
        "sms": {"body": f"{ALERT_SUBJECT_PREFIX} " + "; ".join(lines)},
        "email": {
            "subject": f"{ALERT_SUBJECT_PREFIX} Errors are reported!",
            "body": "\n".join(lines),
        },
    }


def build_all_clear_message() -> Dict[str, Any]:
    """Message record for a cleared condition set."""
    return {
        "sms": {"body": f"{ALERT_SUBJECT_PREFIX} All clear"},
        "email": {
            "subject": f"{ALERT_SUBJECT_PREFIX} All clear",
            "body": "No errors are reported for this machine.",
        },
    }


class AlertDispatcher:
    """
    Turns status checks into notifications.

    Example:
        dispatcher = AlertDispatcher(state, BalanceStatusChecker(state, poller))
        await dispatcher.check_notification()
    """

    def __init__(
        self,
        state: KioskState,
        checker: StatusChecker,
        event_bus: Optional[EventBus] = None,
    ):
        self.state = state
        self.checker = checker
        self.event_bus = event_bus
        self.machine = AlertStateMachine(state.config.intervals.alert_resend_sec)
        self._stats = {
            "checks": 0,
            "alerts_sent": 0,
            "all_clear_sent": 0,
            "suppressed": 0,
            "channel_failures": 0,
        }

    async def _publish(
        self,
        event_type: EventType,
        data: Dict[str, Any],
        priority: EventPriority = EventPriority.NORMAL,
    ) -> None:
        if self.event_bus is None:
            return
        await self.event_bus.publish(Event(
            event_type=event_type,
            data=data,
            source="alerts",
            priority=priority,
        ))

    async def check_notification(self) -> AlertAction:
        """
        Run one status check and notify if the state machine says so.

        Returns:
            The action taken
        """
        self._stats["checks"] += 1
        self.machine.resend_interval = timedelta(
            seconds=self.state.config.intervals.alert_resend_sec
        )

        try:
            record = await self.checker.check_status()
        except Exception as e:
            logger.error(f"Status check failed: {e}")
            return AlertAction.NONE

        fingerprint = alert_fingerprint(record)
        action = self.machine.evaluate(fingerprint)

        if action == AlertAction.NONE:
            if fingerprint:
                self._stats["suppressed"] += 1
            return action

        if action == AlertAction.SEND_ALERT:
            logger.info(f"Sending alert: {[a.code for a in record.alerts]}")
            await self.send_message(build_alert_message(record))
            self._stats["alerts_sent"] += 1
            await self._publish(EventType.ALERT_SENT, {
                "fingerprint": fingerprint,
                "codes": [a.code for a in record.alerts],
            }, EventPriority.HIGH)
        else:
            logger.info("Sending all clear")
            await self.send_message(build_all_clear_message())
            self._stats["all_clear_sent"] += 1
            await self._publish(EventType.ALL_CLEAR_SENT, {})

        return action

    async def send_message(self, record: Dict[str, Any]) -> Dict[str, bool]:
        """
        Deliver a message record to every notify channel in parallel.

        Returns:
            channel -> delivered
        """
        channels = dict(self.state.channels)
        if not channels:
            logger.debug("No notify channels loaded")
            return {}

        names = list(channels)
        results = await asyncio.gather(
            *(channels[name].send_message(record) for name in names),
            return_exceptions=True,
        )

        delivered = {}
        for name, result in zip(names, results):
            if isinstance(result, Exception):
                error = NotificationChannelError(str(result), channel=name)
                self._stats["channel_failures"] += 1
                logger.error(f"Notify channel '{name}' failed: {error}")
                await self._publish(EventType.CHANNEL_FAILED, {
                    "channel": name,
                    "error": str(result),
                })
                delivered[name] = False
            else:
                delivered[name] = True

        return delivered

    def get_stats(self) -> Dict[str, Any]:
        """Get dispatcher statistics."""
        return {
            **self._stats,
            "active": self.machine.state.is_active,
        }


__all__ = [
    "StatusChecker",
    "BalanceStatusChecker",
    "AlertDispatcher",
    "build_alert_message",
    "build_all_clear_message",
]
