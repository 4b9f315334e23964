# KIOSK_FEAT: notify-log-001
"""
KIOSK PRIME - Log Notify Channel
================================

Writes alert messages to the application log. Always available, needs no
credentials.

Author: KIOSK Development Team
Version: 1.0.0
"""

import logging
from typing import Any, Dict, List

from kiosk_prime.core.plugin_base import NotifyChannelPlugin

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class LogChannel(NotifyChannelPlugin):
    """Notify channel backed by logging."""

    NAME = "Log"

    def __init__(self):
        super().__init__()
        self.level = logging.WARNING
        self.sent: List[Dict[str, Any]] = []

    def configure(self, settings: Dict[str, Any]) -> None:
        self.level = _LEVELS.get(str(settings.get("level", "warning")).lower(), logging.WARNING)

    async def send_message(self, record: Dict[str, Any]) -> None:
        email = record.get("email") or {}
        subject = email.get("subject") or (record.get("sms") or {}).get("body", "")
        body = email.get("body", "")

        self._logger.log(self.level, f"{subject}\n{body}" if body else subject)
        self.sent.append(record)
        self.record_call()


__all__ = [
    "LogChannel",
]
