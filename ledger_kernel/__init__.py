"""
Ledger Kernel - running-balance consistency engine.

Maintains a per-account, canonically ordered sequence of ledger movements
with:
- A stored running balance on every movement
- Idempotent single-account recomputation
- Fleet recomputation with per-account failure isolation
- A cached current balance derived from the movement chain
"""

__version__ = "0.1.0"
