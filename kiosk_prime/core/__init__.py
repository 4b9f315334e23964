# KIOSK PRIME Core Infrastructure
"""
Core infrastructure components for KIOSK PRIME.

Modules:
    event_bus: Async event-driven audit stream
    plugin_base: Capability interfaces for all plugins
    plugin_registry: Static plugin catalog and handle management
    config_manager: Configuration management
    state: Scheduler-owned runtime state
    scheduler: Polling scheduler and lifecycle
"""
