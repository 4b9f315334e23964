# KIOSK_FEAT: paper-compliance-001
"""
KIOSK PRIME - Paper Compliance Plugin
=====================================

Simulated identity verification and address lookups.

Settings:
    approve: true            # verdict for every verification
    blocked_addresses: []    # addresses check_address reports as blocked

Author: KIOSK Development Team
Version: 1.0.0
"""

from typing import Any, Dict

from kiosk_prime.core.plugin_base import IdVerifierPlugin, InfoPlugin


class PaperCompliance(IdVerifierPlugin, InfoPlugin):
    """Approves (or rejects) everything, as configured."""

    NAME = "Paper Compliance"

    def __init__(self):
        super().__init__()
        self.approve = True
        self.blocked_addresses = set()

    def configure(self, settings: Dict[str, Any]) -> None:
        self.approve = bool(settings.get("approve", True))
        self.blocked_addresses = set(settings.get("blocked_addresses") or [])

    async def verify_user(self, data: Dict[str, Any]) -> Dict[str, Any]:
        self.record_call()
        return {"success": self.approve, "user_id": data.get("id")}

    async def verify_transaction(self, data: Dict[str, Any]) -> Dict[str, Any]:
        self.record_call()
        return {"success": self.approve, "tx_id": data.get("tx_id")}

    async def check_address(self, address: str) -> Dict[str, Any]:
        self.record_call()
        return {
            "address": address,
            "valid": bool(address),
            "blocked": address in self.blocked_addresses,
        }


__all__ = [
    "PaperCompliance",
]
