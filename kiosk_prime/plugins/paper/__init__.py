# KIOSK PRIME Paper Plugins
"""
Simulated plugins for development and tests.

Available Plugins:
    - Paper Exchange (ticker, trader, wallet)
    - Paper Compliance (id verifier, info)
"""

from .compliance import PaperCompliance
from .exchange import PaperExchange

__all__ = [
    "PaperCompliance",
    "PaperExchange",
]
