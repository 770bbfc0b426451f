"""ORM models for the ledger kernel."""

from ledger_kernel.models.account import Account
from ledger_kernel.models.movement import (
    VALID_STATUS_TRANSITIONS,
    Movement,
    MovementStatus,
    MovementType,
)

__all__ = [
    "Account",
    "Movement",
    "MovementStatus",
    "MovementType",
    "VALID_STATUS_TRANSITIONS",
]
