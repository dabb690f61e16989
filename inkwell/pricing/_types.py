"""
Pricing types.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum


class AcademicTier(Enum):
    """Rate-table column an academic level is priced from."""

    HIGH_SCHOOL = "high_school"
    UNDER_GRADUATE = "under_graduate"
    MASTERS = "masters"
    PHD = "phd"


# Level names as seeded by the marketplace → tier
LEVEL_TIERS: dict[str, AcademicTier] = {
    "High School": AcademicTier.HIGH_SCHOOL,
    "Undergraduate": AcademicTier.UNDER_GRADUATE,
    "Masters": AcademicTier.MASTERS,
    "Ph.D": AcademicTier.PHD,
}


class IncrementType(Enum):
    PERCENT = "percent"  # subtotal × (1 + amount/100)
    FIXED = "fixed"  # subtotal + amount × pages


@dataclass(frozen=True, slots=True)
class Adjustment:
    """A service-type or language surcharge."""

    source: str
    inc_type: IncrementType
    amount: Decimal

    def apply(self, subtotal: Decimal, pages: int) -> Decimal:
        match self.inc_type:
            case IncrementType.PERCENT:
                return subtotal * (1 + self.amount / 100)
            case IncrementType.FIXED:
                return subtotal + self.amount * pages


@dataclass(frozen=True, slots=True)
class DeadlineRate:
    id: int
    hours: int
    label: str
    rates: dict[AcademicTier, Decimal]
    is_active: bool

    def rate_for(self, tier: AcademicTier) -> Decimal:
        return self.rates[tier]


@dataclass(frozen=True, slots=True)
class PriceEstimate:
    """Estimate with breakdown. Only `total` is rounded."""

    academic_level_id: int
    service_type_id: int
    deadline_type_id: int
    language_id: int
    pages: int
    tier: AcademicTier
    base_price_per_page: Decimal
    service: Adjustment
    language: Adjustment
    total: Decimal


__all__ = (
    "AcademicTier",
    "LEVEL_TIERS",
    "IncrementType",
    "Adjustment",
    "DeadlineRate",
    "PriceEstimate",
)
