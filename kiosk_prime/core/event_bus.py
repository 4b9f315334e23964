# KIOSK_FEAT: event-bus-001
"""
KIOSK PRIME - Event Bus
=======================

Bounded audit journal for settlement, trading and alerting activity.

Services record what they did (cache refresh, trade executed or dropped,
transaction settled, alert sent) and operators read it back through
`get_history()` or the counters in `get_stats()`. Recording never awaits
anything and never fails the caller.

Author: KIOSK Development Team
Version: 1.0.0
"""

import logging
from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, auto
from typing import Any, Deque, Dict, List, Optional
from uuid import uuid4

logger = logging.getLogger("KIOSK_EventBus")


class EventType(Enum):
    """Event types emitted by the kiosk core."""

    # Lifecycle
    SYSTEM_START = auto()
    SYSTEM_STOP = auto()
    CONFIG_APPLIED = auto()

    # Market data
    BALANCE_UPDATED = auto()
    RATE_UPDATED = auto()

    # Trading
    TRADE_QUEUED = auto()
    TRADE_EXECUTED = auto()
    TRADE_REQUEUED = auto()
    TRADE_DROPPED = auto()

    # Settlement
    TX_SETTLED = auto()
    TX_FAILED = auto()
    TX_REAPED = auto()

    # Alerting
    ALERT_SENT = auto()
    ALL_CLEAR_SENT = auto()
    CHANNEL_FAILED = auto()


class EventPriority(Enum):
    """Severity of a journal entry. Lower value is more severe."""

    CRITICAL = 0  # Dropped trades, settlement failures
    HIGH = 1      # Settlement and trade outcomes
    NORMAL = 2    # Lifecycle
    LOW = 3       # Cache refreshes


@dataclass
class Event:
    """One journal entry."""

    event_type: EventType
    data: Dict[str, Any]
    source: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    priority: EventPriority = EventPriority.NORMAL
    event_id: str = field(default_factory=lambda: f"evt_{uuid4().hex[:12]}")

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "event_type": self.event_type.name,
            "data": self.data,
            "source": self.source,
            "timestamp": self.timestamp.isoformat(),
            "priority": self.priority.name,
            "event_id": self.event_id,
        }


class EventBus:
    """
    Audit journal of core activity.

    Example:
        bus = EventBus(history_size=500)
        bus.publish_nowait(Event(EventType.TRADE_DROPPED, record, "trade_executor"))

        drops = bus.get_history(EventType.TRADE_DROPPED)
        urgent = bus.get_history(max_priority=EventPriority.HIGH)
    """

    def __init__(self, history_size: int = 1000):
        self._history: Deque[Event] = deque(maxlen=history_size)
        self._counts: Counter = Counter()
        self._last_event_at: Optional[datetime] = None

    async def publish(self, event: Event) -> None:
        """Record an event from a coroutine."""
        self.publish_nowait(event)

    def publish_nowait(self, event: Event) -> None:
        """Record an event from synchronous code."""
        self._history.append(event)
        self._counts[event.event_type.name] += 1
        self._last_event_at = event.timestamp

        if event.priority == EventPriority.CRITICAL:
            logger.warning(f"{event.event_type.name} from {event.source}: {event.data}")

    def get_history(
        self,
        event_type: Optional[EventType] = None,
        source: Optional[str] = None,
        max_priority: Optional[EventPriority] = None,
        limit: int = 100,
    ) -> List[Event]:
        """
        Get recorded events, oldest first.

        Args:
            event_type: Only this type
            source: Only events from this component
            max_priority: Only events at least this severe
            limit: Newest N matching events
        """
        events = [
            e for e in self._history
            if (event_type is None or e.event_type == event_type)
            and (source is None or e.source == source)
            and (max_priority is None or e.priority.value <= max_priority.value)
        ]
        return events[-limit:]

    def clear(self) -> int:
        """Forget recorded history. Counters are kept."""
        removed = len(self._history)
        self._history.clear()
        return removed

    def get_stats(self) -> Dict[str, Any]:
        """Get journal statistics."""
        return {
            "events_published": sum(self._counts.values()),
            "by_type": dict(self._counts),
            "history_size": len(self._history),
            "last_event_at": self._last_event_at.isoformat() if self._last_event_at else None,
        }


__all__ = [
    "EventType",
    "EventPriority",
    "Event",
    "EventBus",
]
