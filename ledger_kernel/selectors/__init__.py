"""Read-only query side of the ledger kernel."""

from ledger_kernel.selectors.base import BaseSelector
from ledger_kernel.selectors.movement_selector import MovementSelector

__all__ = ["BaseSelector", "MovementSelector"]
