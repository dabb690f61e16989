"""
Core types for inkwell.

Re-exports from kungfu + money helpers shared by every component.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

# Re-export from kungfu
from kungfu import Result, Ok, Error, LazyCoroResult

# ═══════════════════════════════════════════════════════════════════════════════
# Money
# ═══════════════════════════════════════════════════════════════════════════════

type Money = Decimal
"""Fixed-point amount with two fractional digits."""

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def money(value: Decimal | int | str) -> Money:
    """
    Quantize to two fractional digits (half-up).

    Floats are rejected: amounts enter the system as Decimal, int or str.
    """
    if isinstance(value, float):
        raise TypeError("money() does not accept float, pass Decimal or str")
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_hundredths(value: Decimal | int | str) -> int:
    """Money → integer hundredths, the storage representation."""
    return int((Decimal(value) * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def from_hundredths(value: int) -> Money:
    """Integer hundredths → Money."""
    return (Decimal(value) / 100).quantize(CENT)


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    # Re-exports from kungfu
    "Result",
    "Ok",
    "Error",
    "LazyCoroResult",
    # Money
    "Money",
    "CENT",
    "ZERO",
    "money",
    "to_hundredths",
    "from_hundredths",
)
