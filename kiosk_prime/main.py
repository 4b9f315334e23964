#!/usr/bin/env python3
# KIOSK_FEAT: main-entry-001
"""
KIOSK PRIME - Main Entry Point
==============================

Settlement and scheduling core entry point.

Usage:
    python -m kiosk_prime.main --config config/paper.yaml
    kiosk-prime --config config/paper.yaml --dry-run

Author: KIOSK Development Team
Version: 1.0.0
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from shared.kiosk_core.constants import SYSTEM_NAME, VERSION
from shared.kiosk_core.exceptions import ConfigurationError

from kiosk_prime.core.config_manager import ConfigManager
from kiosk_prime.core.plugin_registry import PluginRegistry
from kiosk_prime.core.scheduler import PollingScheduler
from kiosk_prime.plugins import default_catalog
from kiosk_prime.services.persistence import MemoryStore


def setup_logging(level: str = "INFO") -> None:
    """Setup logging configuration."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="KIOSK PRIME - Settlement & Scheduling Core",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "-c", "--config",
        type=str,
        default="config/paper.yaml",
        help="Path to configuration file (default: config/paper.yaml)",
    )

    parser.add_argument(
        "-l", "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)",
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate config and plugins, then exit",
    )

    return parser.parse_args(argv)


async def main(argv=None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    setup_logging(args.log_level)
    logger = logging.getLogger("KIOSK_MAIN")

    logger.info("=" * 60)
    logger.info(f"{SYSTEM_NAME} v{VERSION} - Settlement & Scheduling Core")
    logger.info("=" * 60)

    config_path = Path(args.config)
    if not config_path.exists():
        logger.error(f"Configuration file not found: {config_path}")
        return 1

    config_manager = ConfigManager()
    if not config_manager.load(config_path):
        return 1

    errors = config_manager.validate()
    if errors:
        for error in errors:
            logger.error(f"Validation error: {error}")
        return 1

    # Dry run - validate only
    if args.dry_run:
        try:
            PluginRegistry(default_catalog()).check_config(config_manager.config)
        except ConfigurationError as e:
            logger.error(f"Plugin error: {e}")
            return 1

        logger.info("Configuration valid!")
        logger.info(f"Currency: {config_manager.config.device_currency}")
        logger.info(f"Coins: {config_manager.config.currency_codes}")
        logger.info(f"Plugins: {config_manager.config.plugins.current}")
        return 0

    scheduler = PollingScheduler(persistence=MemoryStore())

    try:
        scheduler.configure(config_manager.config)
    except ConfigurationError as e:
        logger.error(f"Failed to apply configuration: {e}")
        return 1

    if not await scheduler.start():
        logger.error("Failed to start scheduler")
        return 1

    logger.info("KIOSK PRIME running. Press Ctrl+C to stop.")

    try:
        await scheduler.run_forever()
    except KeyboardInterrupt:
        logger.info("Shutdown requested...")
    finally:
        await scheduler.shutdown()

    logger.info("KIOSK PRIME shutdown complete")
    return 0


def run() -> None:
    """Synchronous entry point."""
    try:
        exit_code = asyncio.run(main())
        sys.exit(exit_code)
    except Exception as e:
        logging.error(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    run()
