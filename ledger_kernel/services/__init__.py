"""Write-side services.  All of them flush; none of them commit."""

from ledger_kernel.services.account_registry import AccountRegistry
from ledger_kernel.services.balance_sync_service import BalanceSyncService
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.fleet_recalculator import FleetRecalculator
from ledger_kernel.services.movement_service import MovementService
from ledger_kernel.services.recalculation_service import RecalculationService

__all__ = [
    "AccountRegistry",
    "BalanceSyncService",
    "BaseService",
    "FleetRecalculator",
    "MovementService",
    "RecalculationService",
]
