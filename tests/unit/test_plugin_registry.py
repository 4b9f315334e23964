"""
Tests for KIOSK PRIME Plugin Base & Registry
============================================

Tests capability validation and hot-swap handle management.
"""

import logging

import pytest

from shared.kiosk_core.exceptions import (
    ConfigurationError,
    MissingConfigError,
    PluginNotFoundError,
    PluginValidationError,
)

from kiosk_prime.core.config_manager import KioskConfig
from kiosk_prime.core.plugin_base import (
    Capability,
    Plugin,
    PluginState,
    TickerPlugin,
    TraderPlugin,
    WalletPlugin,
)
from kiosk_prime.core.plugin_registry import PluginRegistry


class GoodTicker(TickerPlugin):
    NAME = "Good Ticker"

    def configure(self, settings):
        self.configured_with = dict(settings)

    async def quote(self, currencies, currency_code):
        return {c: {"ask": "1", "bid": "1"} for c in currencies}


class OtherTicker(GoodTicker):
    NAME = "Other Ticker"


class HalfWallet(WalletPlugin):
    """Declares wallet but never implements new_address."""

    NAME = "Half Wallet"

    def configure(self, settings):
        pass

    async def balance(self):
        return {}

    async def send(self, to_address, crypto_amount, fee, currency_code):
        return "hash"


class DeclaredOnlyTrader(Plugin):
    """Declares trader through CAPABILITIES without the base class."""

    NAME = "Declared Trader"
    CAPABILITIES = frozenset({Capability.TRADER})

    def configure(self, settings):
        pass

    async def purchase(self, crypto_amount, opts):
        return None


class BareTicker(TickerPlugin):
    """No NAME and no configure override."""

    async def quote(self, currencies, currency_code):
        return {}


class NoCapabilities(Plugin):
    NAME = "Nothing"


def make_registry(current, settings=None):
    registry = PluginRegistry({
        "good": GoodTicker,
        "other": OtherTicker,
        "half_wallet": HalfWallet,
        "declared_trader": DeclaredOnlyTrader,
        "bare": BareTicker,
        "nothing": NoCapabilities,
    })
    registry.use_config(KioskConfig.from_dict({
        "plugins": {"current": current, "settings": settings or {}},
    }))
    return registry


class TestCapabilityDeclaration:
    """Tests for plugin capability introspection."""

    def test_declared_capabilities_union(self):
        """Multiple capability bases should be unioned."""
        class Combo(TickerPlugin, TraderPlugin):
            pass

        assert Combo.declared_capabilities() == {Capability.TICKER, Capability.TRADER}

    def test_missing_abstract_operation(self):
        """An inherited abstract operation counts as missing."""
        assert HalfWallet.missing_operations() == [(Capability.WALLET, "new_address")]

    def test_missing_declared_operation(self):
        """Operations of a declared capability must exist."""
        assert DeclaredOnlyTrader.missing_operations() == [(Capability.TRADER, "sell")]

    def test_plugin_lifecycle_state(self):
        """apply_settings and unload should move the lifecycle state."""
        plugin = GoodTicker()
        assert plugin.state == PluginState.LOADED

        plugin.apply_settings({"api_key": "k"})
        assert plugin.is_configured
        assert plugin.configured_with == {"api_key": "k"}

        plugin.unload()
        assert plugin.state == PluginState.UNLOADED

    def test_stats(self):
        """Calls should be counted."""
        plugin = GoodTicker()
        plugin.record_call()
        plugin.record_call(ok=False)

        stats = plugin.get_stats()
        assert stats["calls"] == 2
        assert stats["errors"] == 1
        assert stats["capabilities"] == ["ticker"]


class TestValidation:
    """Tests for registry validation."""

    def test_register_rejects_non_plugin(self):
        """Only Plugin subclasses can be registered."""
        with pytest.raises(TypeError):
            PluginRegistry().register("dict", dict)

    def test_unknown_name(self):
        """Unknown names should raise PluginNotFoundError."""
        registry = make_registry({"ticker": "missing"})

        with pytest.raises(PluginNotFoundError) as exc:
            registry.load_or_configure(Capability.TICKER, "BTC")
        assert isinstance(exc.value, ConfigurationError)
        assert exc.value.plugin_name == "missing"

    def test_error_names_capability_and_operation(self):
        """Validation errors should name the capability and the operation."""
        registry = make_registry({"wallet": "half_wallet"})

        with pytest.raises(PluginValidationError) as exc:
            registry.load_or_configure(Capability.WALLET, "BTC")

        assert exc.value.capability == "wallet"
        assert exc.value.operation == "new_address"
        assert "'half_wallet' declares 'wallet', but fails to implement 'new_address' method" in str(exc.value)
        assert registry.get(Capability.WALLET, "BTC") is None

    def test_declared_only_capability_validated(self):
        """Capabilities declared without a base class are still enforced."""
        registry = make_registry({"trader": "declared_trader"})

        with pytest.raises(PluginValidationError) as exc:
            registry.load_or_configure(Capability.TRADER, "BTC")
        assert exc.value.operation == "sell"

    def test_wrong_kind(self):
        """A plugin configured for a capability it does not declare is rejected."""
        registry = make_registry({"wallet": "good"})

        with pytest.raises(PluginValidationError):
            registry.load_or_configure(Capability.WALLET, "BTC")

    def test_no_capabilities(self):
        """A plugin declaring nothing is rejected."""
        registry = make_registry({"ticker": "nothing"})

        with pytest.raises(PluginValidationError):
            registry.load_or_configure(Capability.TICKER, "BTC")

    def test_recommended_members_warn(self, caplog):
        """Missing NAME or configure should only log warnings."""
        registry = make_registry({"ticker": "bare"})

        with caplog.at_level(logging.WARNING, logger="KIOSK_PluginRegistry"):
            plugin = registry.load_or_configure(Capability.TICKER, "BTC")

        assert isinstance(plugin, BareTicker)
        assert "recommended 'NAME' field" in caplog.text
        assert "recommended 'configure' method" in caplog.text

    def test_used_before_configuration(self):
        """Handles cannot be resolved without a configuration."""
        with pytest.raises(MissingConfigError):
            PluginRegistry({"good": GoodTicker}).load_or_configure(Capability.TICKER, "BTC")

    def test_check_config_rejects_before_loading(self):
        """check_config should fail without creating any handle."""
        registry = make_registry({"ticker": "good"})
        config = KioskConfig.from_dict({
            "settings": {"coins": ["BTC"]},
            "plugins": {"current": {"ticker": "good", "wallet": "half_wallet"}},
        })

        with pytest.raises(PluginValidationError):
            registry.check_config(config)
        assert registry.get_stats()["loaded"] == 0


class TestLoadOrConfigure:
    """Tests for handle resolution and hot swap."""

    def test_unconfigured_returns_none(self):
        """No configured name should yield None and still notify."""
        registry = make_registry({})
        seen = []

        result = registry.load_or_configure(
            Capability.TRADER, "BTC", aux="x", on_change=lambda p, aux: seen.append((p, aux)),
        )

        assert result is None
        assert seen == [(None, "x")]

    def test_load_with_settings_and_aux(self):
        """Settings should be a copy of the plugin block plus the aux currency."""
        settings = {"good": {"api_key": "k1"}}
        registry = make_registry({"ticker": "good"}, settings)

        plugin = registry.load_or_configure(Capability.TICKER, "BTC", aux="USD")

        assert plugin.configured_with == {"api_key": "k1", "currency": "USD"}
        assert "currency" not in settings["good"]
        assert registry.active_names() == {"BTC": {"ticker": "good"}}

    def test_same_name_reconfigures_in_place(self):
        """An unchanged name should reconfigure the live instance."""
        registry = make_registry({"ticker": "good"}, {"good": {"v": 1}})
        first = registry.load_or_configure(Capability.TICKER, "BTC")

        registry.use_config(KioskConfig.from_dict({
            "plugins": {"current": {"ticker": "good"}, "settings": {"good": {"v": 2}}},
        }))
        second = registry.load_or_configure(Capability.TICKER, "BTC")

        assert second is first
        assert second.configured_with == {"v": 2}

    def test_changed_name_swaps(self):
        """A new name should replace and unload the old instance."""
        registry = make_registry({"ticker": "good"})
        old = registry.load_or_configure(Capability.TICKER, "BTC")

        registry.use_config(KioskConfig.from_dict({"plugins": {"current": {"ticker": "other"}}}))
        new = registry.load_or_configure(Capability.TICKER, "BTC")

        assert isinstance(new, OtherTicker)
        assert old.state == PluginState.UNLOADED
        assert registry.get(Capability.TICKER, "BTC") is new

    def test_failed_swap_keeps_old_handle(self):
        """A swap to an invalid plugin must leave the old handle untouched."""
        registry = make_registry({"wallet": None, "ticker": "good"})
        old = registry.load_or_configure(Capability.TICKER, "BTC")

        registry.use_config(KioskConfig.from_dict({"plugins": {"current": {"ticker": "nothing"}}}))
        with pytest.raises(PluginValidationError):
            registry.load_or_configure(Capability.TICKER, "BTC")

        assert registry.get(Capability.TICKER, "BTC") is old
        assert old.state == PluginState.CONFIGURED

    def test_disable_unloads(self):
        """Removing the name should unload the handle."""
        registry = make_registry({"ticker": "good"})
        old = registry.load_or_configure(Capability.TICKER, "BTC")

        registry.use_config(KioskConfig.from_dict({"plugins": {"current": {}}}))
        assert registry.load_or_configure(Capability.TICKER, "BTC") is None
        assert old.state == PluginState.UNLOADED

    def test_per_currency_override(self):
        """A per-currency entry should win, and null should disable."""
        registry = make_registry({
            "ticker": "good",
            "ETH": {"ticker": "other"},
            "LTC": {"ticker": None},
        })

        assert isinstance(registry.load_or_configure(Capability.TICKER, "BTC"), GoodTicker)
        assert isinstance(registry.load_or_configure(Capability.TICKER, "ETH"), OtherTicker)
        assert registry.load_or_configure(Capability.TICKER, "LTC") is None

    def test_one_handle_per_scope(self):
        """Each currency should get its own instance."""
        registry = make_registry({"ticker": "good"})

        btc = registry.load_or_configure(Capability.TICKER, "BTC")
        eth = registry.load_or_configure(Capability.TICKER, "ETH")

        assert btc is not eth
        assert set(registry.scopes(Capability.TICKER)) == {"BTC", "ETH"}

    def test_shared_scope(self):
        """Currency-agnostic handles live under the 'any' scope."""
        registry = make_registry({"ticker": "good"})
        registry.load_or_configure(Capability.TICKER)

        handle = registry.get_handle(Capability.TICKER)
        assert handle.scope == "any"
        assert handle.to_dict()["display_name"] == "Good Ticker"

    def test_unload_all(self):
        """unload_all should release every handle."""
        registry = make_registry({"ticker": "good"})
        plugin = registry.load_or_configure(Capability.TICKER, "BTC")

        assert registry.unload_all() == 1
        assert plugin.state == PluginState.UNLOADED
        assert registry.get_stats()["loaded"] == 0
