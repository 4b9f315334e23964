"""
Tests for KIOSK PRIME Entry Point
=================================

Tests argument parsing and the dry-run validation path.
"""

from pathlib import Path

import pytest
import yaml

from kiosk_prime.main import main, parse_args

PAPER_CONFIG = Path(__file__).resolve().parents[2] / "config" / "paper.yaml"


class TestParseArgs:
    """Tests for parse_args."""

    def test_defaults(self):
        args = parse_args([])

        assert args.config == "config/paper.yaml"
        assert args.log_level == "INFO"
        assert args.dry_run is False


class TestDryRun:
    """Tests for --dry-run."""

    @pytest.mark.asyncio
    async def test_shipped_config_is_valid(self):
        """The bundled paper config should pass validation."""
        assert await main(["--config", str(PAPER_CONFIG), "--dry-run"]) == 0

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path):
        """A missing config file exits with 1."""
        assert await main(["--config", str(tmp_path / "none.yaml"), "--dry-run"]) == 1

    @pytest.mark.asyncio
    async def test_unknown_plugin(self, tmp_path, raw_config):
        """An unknown plugin name fails the dry run."""
        raw_config["plugins"]["current"]["wallet"] = "nope"
        path = tmp_path / "kiosk.yaml"
        path.write_text(yaml.safe_dump(raw_config))

        assert await main(["--config", str(path), "--dry-run"]) == 1

    @pytest.mark.asyncio
    async def test_invalid_settings(self, tmp_path, raw_config):
        """Invalid settings fail the dry run."""
        raw_config["settings"]["low_balance_margin"] = "0.5"
        path = tmp_path / "kiosk.yaml"
        path.write_text(yaml.safe_dump(raw_config))

        assert await main(["--config", str(path), "--dry-run"]) == 1
