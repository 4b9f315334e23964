# KIOSK PRIME Notify Channels
"""
Alert delivery channels.

Available Channels:
    - Log (application log)
    - Webhook (HTTP POST)
"""

from .log_channel import LogChannel
from .webhook_channel import WebhookChannel

__all__ = [
    "LogChannel",
    "WebhookChannel",
]
