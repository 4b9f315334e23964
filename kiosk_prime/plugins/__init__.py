# KIOSK PRIME Plugins
"""
Plugin collection for the kiosk core.

Categories:
    paper: Simulated exchange and compliance services
    notify: Alert delivery channels

`default_catalog()` maps the configuration names accepted under
`plugins.current` to their implementations.
"""

from typing import Dict, Type

from kiosk_prime.core.plugin_base import Plugin

from .notify import LogChannel, WebhookChannel
from .paper import PaperCompliance, PaperExchange


def default_catalog() -> Dict[str, Type[Plugin]]:
    """Built-in plugins keyed by configuration name."""
    return {
        "paper": PaperExchange,
        "paper_compliance": PaperCompliance,
        "log": LogChannel,
        "webhook": WebhookChannel,
    }


__all__ = [
    "default_catalog",
    "LogChannel",
    "WebhookChannel",
    "PaperCompliance",
    "PaperExchange",
]
