# KIOSK_FEAT: config-manager-001
"""
KIOSK PRIME - Configuration Manager
===================================

Centralized configuration for the settlement and scheduling core.

Features:
- YAML/JSON configuration loading
- Environment variable overrides (KIOSK_SETTINGS__COMMISSION=1.1)
- Configuration validation
- Hot reload support

Layout:
    settings:
      currency: USD
      coins: [BTC, ETH]
      commission: "1.05"
      low_balance_margin: "1.5"
      transaction_fee: 10000
      trade_interval_sec: 60
      cartridges: [20, 50]
    plugins:
      current:
        ticker: paper
        wallet: paper
        trader: paper
        ETH: {trader: null}
        notify: {email: log}
      settings:
        paper: {}
    intervals:
      polling_sec: 60
      reap_sec: 2

Author: KIOSK Development Team
Version: 1.0.0
"""

import copy
import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from shared.kiosk_core.constants import (
    ALERT_RESEND_INTERVAL_SEC,
    CHECK_NOTIFICATION_INTERVAL_SEC,
    DEFAULT_CURRENCY_CODES,
    DEFAULT_FIAT_CURRENCY,
    DEFAULT_TRADE_INTERVAL_SEC,
    DEPOSIT_TIMEOUT_SEC,
    PENDING_TIMEOUT_SEC,
    POLLING_INTERVAL_SEC,
    REAP_INTERVAL_SEC,
    is_supported_currency,
)
from shared.kiosk_core.exceptions import InvalidConfigError

logger = logging.getLogger("KIOSK_ConfigManager")


def _decimal(value: Any, key: str) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise InvalidConfigError(f"'{key}' is not a number: {value!r}") from e


def _optional_decimal(value: Any, key: str) -> Optional[Decimal]:
    return None if value is None else _decimal(value, key)


def _number(value: Any, key: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise InvalidConfigError(f"'{key}' is not a number: {value!r}") from e


@dataclass
class SettingsConfig:
    """Operational settings."""

    currency: str = DEFAULT_FIAT_CURRENCY
    coins: List[str] = field(default_factory=lambda: list(DEFAULT_CURRENCY_CODES))
    commission: Decimal = Decimal("1")
    low_balance_margin: Decimal = Decimal("1")
    transaction_fee: Optional[int] = None
    trade_interval_sec: float = DEFAULT_TRADE_INTERVAL_SEC
    cartridges: List[int] = field(default_factory=list)
    virtual_cartridges: List[int] = field(default_factory=list)
    low_balance_threshold: Optional[Decimal] = None
    max_cache_age_seconds: Optional[float] = None


@dataclass
class PluginsConfig:
    """Active plugin selection and per-plugin settings."""

    current: Dict[str, Any] = field(default_factory=dict)
    settings: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def plugin_name(self, kind: str, currency_code: Optional[str] = None) -> Optional[str]:
        """
        Configured implementation name for a capability.

        A per-currency entry wins when it names the capability (even as null,
        which disables it); otherwise the shared entry applies.
        """
        if currency_code:
            per_currency = self.current.get(currency_code)
            if isinstance(per_currency, dict) and kind in per_currency:
                return per_currency[kind]

        name = self.current.get(kind)
        return name if isinstance(name, str) else None

    def channel_names(self) -> Dict[str, str]:
        """Notify channel -> implementation name."""
        channels = self.current.get("notify") or {}
        if not isinstance(channels, dict):
            return {}
        return {channel: name for channel, name in channels.items() if name}

    def plugin_settings(self, name: str) -> Dict[str, Any]:
        """Copy of the settings block for an implementation."""
        return copy.deepcopy(self.settings.get(name) or {})


@dataclass
class IntervalsConfig:
    """Timer intervals and timeouts (seconds)."""

    polling_sec: float = POLLING_INTERVAL_SEC
    reap_sec: float = REAP_INTERVAL_SEC
    pending_timeout_sec: float = PENDING_TIMEOUT_SEC
    deposit_timeout_sec: float = DEPOSIT_TIMEOUT_SEC
    notification_check_sec: float = CHECK_NOTIFICATION_INTERVAL_SEC
    alert_resend_sec: float = ALERT_RESEND_INTERVAL_SEC


@dataclass
class KioskConfig:
    """Complete kiosk configuration."""

    settings: SettingsConfig = field(default_factory=SettingsConfig)
    plugins: PluginsConfig = field(default_factory=PluginsConfig)
    intervals: IntervalsConfig = field(default_factory=IntervalsConfig)

    @property
    def device_currency(self) -> str:
        return self.settings.currency

    @property
    def currency_codes(self) -> List[str]:
        return list(self.settings.coins)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "KioskConfig":
        """
        Parse a raw configuration mapping.

        Raises:
            InvalidConfigError: If a numeric field does not parse
        """
        raw = raw or {}
        config = cls()

        s = raw.get("settings") or {}
        fee = s.get("transaction_fee")
        config.settings = SettingsConfig(
            currency=s.get("currency", DEFAULT_FIAT_CURRENCY),
            coins=[c.upper() for c in (s.get("coins", DEFAULT_CURRENCY_CODES) or [])],
            commission=_decimal(s.get("commission", 1), "settings.commission"),
            low_balance_margin=_decimal(
                s.get("low_balance_margin", 1), "settings.low_balance_margin"
            ),
            transaction_fee=None if fee is None else int(_decimal(fee, "settings.transaction_fee")),
            trade_interval_sec=_number(
                s.get("trade_interval_sec", DEFAULT_TRADE_INTERVAL_SEC),
                "settings.trade_interval_sec",
            ),
            cartridges=[int(c) for c in s.get("cartridges") or []],
            virtual_cartridges=[int(c) for c in s.get("virtual_cartridges") or []],
            low_balance_threshold=_optional_decimal(
                s.get("low_balance_threshold"), "settings.low_balance_threshold"
            ),
            max_cache_age_seconds=(
                None if s.get("max_cache_age_seconds") is None
                else _number(s["max_cache_age_seconds"], "settings.max_cache_age_seconds")
            ),
        )

        p = raw.get("plugins") or {}
        config.plugins = PluginsConfig(
            current=copy.deepcopy(p.get("current") or {}),
            settings=copy.deepcopy(p.get("settings") or {}),
        )

        i = raw.get("intervals") or {}
        defaults = IntervalsConfig()
        config.intervals = IntervalsConfig(**{
            name: _number(i.get(name, getattr(defaults, name)), f"intervals.{name}")
            for name in defaults.__dataclass_fields__
        })

        return config


def validate_config(config: KioskConfig) -> List[str]:
    """
    Validate a configuration.

    Returns:
        List of validation errors (empty if valid)
    """
    errors = []
    s = config.settings

    if s.low_balance_margin < 1:
        errors.append("settings.low_balance_margin has to be >= 1")

    if s.commission <= 0:
        errors.append("settings.commission must be > 0")

    if s.trade_interval_sec <= 0:
        errors.append("settings.trade_interval_sec must be > 0")

    if s.transaction_fee is not None and s.transaction_fee < 0:
        errors.append("settings.transaction_fee must be >= 0")

    if not s.coins:
        errors.append("settings.coins must list at least one currency")

    for code in s.coins:
        if not is_supported_currency(code):
            errors.append(f"settings.coins: unsupported currency '{code}'")

    if s.max_cache_age_seconds is not None and s.max_cache_age_seconds <= 0:
        errors.append("settings.max_cache_age_seconds must be > 0")

    for name, value in config.intervals.__dict__.items():
        if value <= 0:
            errors.append(f"intervals.{name} must be > 0")

    return errors


class ConfigManager:
    """
    Configuration manager for KIOSK PRIME.

    Handles loading, validation, and access to kiosk configuration.

    Example:
        config_manager = ConfigManager()
        config_manager.load("config/kiosk.yaml")

        margin = config_manager.get("settings.low_balance_margin")
        coins = config_manager.config.currency_codes
    """

    def __init__(self, config_path: Optional[Path] = None):
        self._config_path = config_path
        self._config: KioskConfig = KioskConfig()
        self._raw_config: Dict[str, Any] = {}
        self._loaded_at: Optional[datetime] = None
        self._env_prefix = "KIOSK_"

        if config_path:
            self.load(config_path)

    def load(self, path: Union[str, Path]) -> bool:
        """
        Load configuration from file.

        Args:
            path: Path to config file (YAML or JSON)

        Returns:
            True if loaded successfully
        """
        path = Path(path)

        if not path.exists():
            logger.warning(f"Config file not found: {path}")
            return False

        try:
            with open(path, "r") as f:
                if path.suffix in [".yaml", ".yml"]:
                    raw = yaml.safe_load(f) or {}
                elif path.suffix == ".json":
                    raw = json.load(f)
                else:
                    logger.error(f"Unsupported config format: {path.suffix}")
                    return False
        except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load config: {e}")
            return False

        self.load_dict(raw)
        self._config_path = path
        logger.info(f"Configuration loaded from: {path}")
        return True

    def load_dict(self, raw: Dict[str, Any]) -> KioskConfig:
        """
        Load configuration from a mapping (e.g. a full object pushed by an admin).

        Raises:
            InvalidConfigError: If a numeric field does not parse
        """
        self._raw_config = copy.deepcopy(raw or {})
        self._apply_env_overrides()
        self._config = KioskConfig.from_dict(self._raw_config)
        self._loaded_at = datetime.now(timezone.utc)
        return self._config

    def _apply_env_overrides(self) -> None:
        for key, value in os.environ.items():
            if key.startswith(self._env_prefix):
                config_key = key[len(self._env_prefix):].lower().replace("__", ".")
                self._set_nested(config_key, self._parse_value(value))

    def _parse_value(self, value: str) -> Any:
        if value.lower() in ("true", "false"):
            return value.lower() == "true"

        if value.lower() in ("null", "none"):
            return None

        try:
            return int(value)
        except ValueError:
            pass

        # Keep decimals as strings so money fields stay exact
        return value

    def _set_nested(self, key: str, value: Any) -> None:
        parts = key.split(".")
        current = self._raw_config

        for part in parts[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]

        current[parts[-1]] = value

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get raw configuration value by dot-notation key.

        Args:
            key: Key such as "settings.commission"
            default: Default value if not found
        """
        current = self._raw_config

        for part in key.split("."):
            if isinstance(current, dict) and part in current:
                current = current[part]
            else:
                return default

        return current

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value (runtime only)."""
        self._set_nested(key, value)
        self._config = KioskConfig.from_dict(self._raw_config)

    @property
    def config(self) -> KioskConfig:
        """Get the structured configuration."""
        return self._config

    @property
    def raw(self) -> Dict[str, Any]:
        """Copy of the raw configuration mapping."""
        return copy.deepcopy(self._raw_config)

    def reload(self) -> bool:
        """Reload configuration from file."""
        if self._config_path:
            return self.load(self._config_path)
        return False

    def save(self, path: Optional[Path] = None) -> bool:
        """
        Save raw configuration to file.

        Returns:
            True if saved successfully
        """
        path = path or self._config_path

        if not path:
            logger.error("No config path specified")
            return False

        try:
            with open(path, "w") as f:
                if path.suffix in [".yaml", ".yml"]:
                    yaml.safe_dump(self._raw_config, f, default_flow_style=False)
                else:
                    json.dump(self._raw_config, f, indent=2)
        except OSError as e:
            logger.error(f"Failed to save config: {e}")
            return False

        logger.info(f"Configuration saved to: {path}")
        return True

    def validate(self) -> List[str]:
        """Validate the loaded configuration."""
        return validate_config(self._config)

    def get_info(self) -> Dict[str, Any]:
        """Get configuration info."""
        return {
            "path": str(self._config_path) if self._config_path else None,
            "loaded_at": self._loaded_at.isoformat() if self._loaded_at else None,
            "currency": self._config.device_currency,
            "coins": self._config.currency_codes,
            "validation_errors": self.validate(),
        }


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = [
    "SettingsConfig",
    "PluginsConfig",
    "IntervalsConfig",
    "KioskConfig",
    "validate_config",
    "ConfigManager",
]
