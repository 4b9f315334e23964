# KIOSK PRIME Services
"""
Settlement core services.

Modules:
    persistence: Persistence contract and in-memory store
    market_data: Balance and rate polling
    trade_executor: Trade consolidation and execution
    settlement: Outgoing transaction settlement
    reaper: Pending transaction reaper
    alert_dispatcher: Health alerts and notification fan-out
    kiosk: Device request handlers
"""
