# KIOSK Platform - Shared Libraries
"""
Shared core libraries for KIOSK PRIME.

Modules:
    kiosk_core: Money math, trade consolidation, alert state, exceptions
"""

__version__ = "1.0.0"
