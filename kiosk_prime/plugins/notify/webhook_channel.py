# KIOSK_FEAT: notify-webhook-001
"""
KIOSK PRIME - Webhook Notify Channel
====================================

Posts alert message records as JSON to an HTTP endpoint.

Settings:
    url: https://hooks.example.com/kiosk
    timeout_sec: 10
    headers: {Authorization: "Bearer ..."}

Author: KIOSK Development Team
Version: 1.0.0
"""

from typing import Any, Dict, Optional

import httpx

from shared.kiosk_core.exceptions import NotificationChannelError

from kiosk_prime.core.plugin_base import NotifyChannelPlugin


class WebhookChannel(NotifyChannelPlugin):
    """
    Notify channel backed by an HTTP webhook.

    A client is opened per message so reconfiguration never has to swap a
    live connection pool.
    """

    NAME = "Webhook"

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__()
        self.url: Optional[str] = None
        self.timeout = 10.0
        self.headers: Dict[str, str] = {}
        self._transport = transport

    def configure(self, settings: Dict[str, Any]) -> None:
        self.url = settings.get("url")
        self.timeout = float(settings.get("timeout_sec", 10.0))
        self.headers = dict(settings.get("headers") or {})

    async def send_message(self, record: Dict[str, Any]) -> None:
        if not self.url:
            self.record_call(ok=False)
            raise NotificationChannelError("Webhook URL is not configured", channel="webhook")

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                resp = await client.post(self.url, json=record, headers=self.headers)
                resp.raise_for_status()
        except httpx.TimeoutException as e:
            self.record_call(ok=False)
            raise NotificationChannelError(f"Webhook timeout: {self.url}", channel="webhook") from e
        except httpx.HTTPStatusError as e:
            self.record_call(ok=False)
            raise NotificationChannelError(
                f"Webhook returned {e.response.status_code}", channel="webhook"
            ) from e
        except httpx.HTTPError as e:
            self.record_call(ok=False)
            raise NotificationChannelError(f"Webhook request failed: {e}", channel="webhook") from e

        self.record_call()
        self._logger.debug(f"Webhook delivered to {self.url}")


__all__ = [
    "WebhookChannel",
]
