# KIOSK_FEAT: plugin-registry-001
"""
KIOSK PRIME - Plugin Registry & Loader
======================================

Static, name-keyed plugin catalog with per-capability handle management.

Features:
- Implementations registered by name (no dynamic imports)
- Capability validation before instantiation
- Hot swap on implementation change, in-place reconfigure otherwise
- Exactly one handle per (capability, scope)

Scope is the currency code for ticker/wallet/trader, the channel name for
notify channels, and "any" for currency-agnostic capabilities.

Author: KIOSK Development Team
Version: 1.0.0
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple, Type

from shared.kiosk_core.constants import ANY_SCOPE
from shared.kiosk_core.exceptions import (
    MissingConfigError,
    PluginNotFoundError,
    PluginValidationError,
)

from .config_manager import KioskConfig
from .plugin_base import PER_CURRENCY_CAPABILITIES, SHARED_CAPABILITIES, Capability, Plugin

logger = logging.getLogger("KIOSK_PluginRegistry")

OnChange = Callable[[Optional[Plugin], Any], None]
HandleKey = Tuple[Capability, str]


@dataclass
class PluginHandle:
    """Live plugin instance plus registry bookkeeping."""

    kind: Capability
    scope: str
    name: str
    plugin: Plugin
    settings: Dict[str, Any] = field(default_factory=dict)
    loaded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "scope": self.scope,
            "name": self.name,
            "display_name": self.plugin.display_name,
            "loaded_at": self.loaded_at.isoformat(),
        }


class PluginRegistry:
    """
    Plugin catalog and handle table.

    Example:
        registry = PluginRegistry()
        registry.register("paper", PaperWallet)
        registry.use_config(config)

        wallet = registry.load_or_configure(
            Capability.WALLET, "BTC",
            on_change=lambda plugin, _: print("wallet is now", plugin),
        )
    """

    def __init__(self, catalog: Optional[Dict[str, Type[Plugin]]] = None):
        self._catalog: Dict[str, Type[Plugin]] = {}
        self._handles: Dict[HandleKey, PluginHandle] = {}
        self._config: Optional[KioskConfig] = None

        for name, plugin_class in (catalog or {}).items():
            self.register(name, plugin_class)

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    def register(self, name: str, plugin_class: Type[Plugin]) -> None:
        """Register an implementation under a configuration name."""
        if not (isinstance(plugin_class, type) and issubclass(plugin_class, Plugin)):
            raise TypeError(f"{plugin_class!r} is not a Plugin subclass")
        self._catalog[name] = plugin_class
        logger.debug(f"Plugin implementation registered: {name} -> {plugin_class.__name__}")

    def resolve(self, name: str) -> Type[Plugin]:
        """
        Resolve an implementation by name.

        Raises:
            PluginNotFoundError: If nothing is registered under the name
        """
        plugin_class = self._catalog.get(name)
        if plugin_class is None:
            raise PluginNotFoundError(
                f"'{name}' plugin is not registered. "
                f"Known plugins: {sorted(self._catalog)}",
                plugin_name=name,
            )
        return plugin_class

    def validate(self, name: str, plugin_class: Type[Plugin], kind: Capability) -> None:
        """
        Check a plugin class against the required-operation table.

        Raises:
            PluginValidationError: If the class does not declare `kind`, or
                declares a capability without implementing its operations
        """
        declared = plugin_class.declared_capabilities()

        if not declared:
            raise PluginValidationError(
                f"'{name}' fails to declare any capability",
                plugin_name=name,
            )

        if kind not in declared:
            raise PluginValidationError(
                f"'{name}' is configured as '{kind.value}' but only declares "
                f"{sorted(c.value for c in declared)}",
                plugin_name=name,
                capability=kind.value,
            )

        missing = plugin_class.missing_operations()
        if missing:
            capability, operation = missing[0]
            raise PluginValidationError(
                f"'{name}' declares '{capability.value}', but fails to implement "
                f"'{operation}' method",
                plugin_name=name,
                capability=capability.value,
                operation=operation,
            )

        if not getattr(plugin_class, "NAME", None):
            logger.warning(f"'{name}' fails to implement recommended 'NAME' field")

        if getattr(plugin_class, "configure", None) is Plugin.configure:
            logger.warning(f"'{name}' fails to implement recommended 'configure' method")

    def load_plugin(
        self, name: str, kind: Capability, settings: Dict[str, Any]
    ) -> Plugin:
        """Resolve, validate, instantiate and configure an implementation."""
        plugin_class = self.resolve(name)
        self.validate(name, plugin_class, kind)

        plugin = plugin_class()
        plugin.apply_settings(settings)
        return plugin

    def check_config(self, config: KioskConfig) -> None:
        """
        Resolve and validate every implementation a configuration names.

        Nothing is instantiated and no handle is touched, so a bad
        configuration is rejected before any plugin is swapped.

        Raises:
            PluginNotFoundError: Unknown implementation name
            PluginValidationError: Implementation fails capability checks
        """
        plugins = config.plugins
        wanted = []

        for currency_code in config.currency_codes:
            for kind in PER_CURRENCY_CAPABILITIES:
                wanted.append((kind, plugins.plugin_name(kind.value, currency_code)))

        for kind in SHARED_CAPABILITIES:
            wanted.append((kind, plugins.plugin_name(kind.value)))

        for name in plugins.channel_names().values():
            wanted.append((Capability.NOTIFY, name))

        for kind, name in wanted:
            if name:
                self.validate(name, self.resolve(name), kind)

    # ------------------------------------------------------------------
    # Handles
    # ------------------------------------------------------------------

    def use_config(self, config: KioskConfig) -> None:
        """Set the configuration subsequent lookups read from."""
        self._config = config

    @staticmethod
    def scope_for(currency_code: Optional[str]) -> str:
        return currency_code or ANY_SCOPE

    def configured_name(self, kind: Capability, currency_code: Optional[str] = None) -> Optional[str]:
        """Implementation name configured for (kind, scope), if any."""
        if self._config is None:
            raise MissingConfigError("Plugin registry used before configuration")

        plugins = self._config.plugins
        if kind == Capability.NOTIFY:
            return plugins.channel_names().get(currency_code or "")
        return plugins.plugin_name(kind.value, currency_code)

    def load_or_configure(
        self,
        kind: Capability,
        currency_code: Optional[str] = None,
        aux: Any = None,
        on_change: Optional[OnChange] = None,
    ) -> Optional[Plugin]:
        """
        Load, swap or reconfigure the plugin for (kind, scope).

        Args:
            kind: Capability to resolve
            currency_code: Currency (or notify channel) scope, None for shared
            aux: Extra parameter; passed to settings as "currency" and to on_change
            on_change: Called with (plugin_or_None, aux) after every resolution

        Returns:
            The active plugin, or None if the capability is not configured

        Raises:
            PluginNotFoundError: Unknown implementation name
            PluginValidationError: Implementation fails capability checks
        """
        key = (kind, self.scope_for(currency_code))
        existing = self._handles.get(key)
        name = self.configured_name(kind, currency_code)

        if not name:
            plugin = None
            if existing is not None:
                self._drop(key)
                logger.info(f"[{key[1]}] plugin({kind.value}) disabled")
        else:
            settings = self._config.plugins.plugin_settings(name)
            if aux is not None:
                settings["currency"] = aux

            if existing is not None and existing.name == name:
                existing.plugin.apply_settings(settings)
                existing.settings = settings
                plugin = existing.plugin
            else:
                # Fully validated before the old handle is touched
                plugin = self.load_plugin(name, kind, settings)
                if existing is not None:
                    existing.plugin.unload()
                self._handles[key] = PluginHandle(
                    kind=kind,
                    scope=key[1],
                    name=name,
                    plugin=plugin,
                    settings=settings,
                )
                logger.debug(
                    f"[{key[1]}] plugin({kind.value}) loaded: {plugin.display_name}"
                )

        if on_change is not None:
            on_change(plugin, aux)

        return plugin

    def _drop(self, key: HandleKey) -> None:
        handle = self._handles.pop(key, None)
        if handle is not None:
            handle.plugin.unload()

    def unload(self, kind: Capability, currency_code: Optional[str] = None) -> bool:
        """Unload the handle for (kind, scope)."""
        key = (kind, self.scope_for(currency_code))
        if key not in self._handles:
            return False
        self._drop(key)
        return True

    def unload_all(self) -> int:
        """Unload every handle."""
        count = len(self._handles)
        for key in list(self._handles):
            self._drop(key)
        return count

    def get(self, kind: Capability, currency_code: Optional[str] = None) -> Optional[Plugin]:
        """Active plugin for (kind, scope)."""
        handle = self._handles.get((kind, self.scope_for(currency_code)))
        return handle.plugin if handle else None

    def get_handle(self, kind: Capability, currency_code: Optional[str] = None) -> Optional[PluginHandle]:
        return self._handles.get((kind, self.scope_for(currency_code)))

    def scopes(self, kind: Capability) -> Dict[str, Plugin]:
        """All active plugins of a kind keyed by scope."""
        return {
            scope: handle.plugin
            for (handle_kind, scope), handle in self._handles.items()
            if handle_kind == kind
        }

    def active_names(self) -> Dict[str, Dict[str, str]]:
        """scope -> capability -> implementation name."""
        names: Dict[str, Dict[str, str]] = {}
        for (kind, scope), handle in self._handles.items():
            names.setdefault(scope, {})[kind.value] = handle.name
        return names

    def get_stats(self) -> Dict[str, Any]:
        """Get registry statistics."""
        kinds: Dict[str, int] = {}
        for kind, _ in self._handles:
            kinds[kind.value] = kinds.get(kind.value, 0) + 1

        return {
            "registered": sorted(self._catalog),
            "loaded": len(self._handles),
            "by_capability": kinds,
        }


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = [
    "PluginHandle",
    "PluginRegistry",
]
