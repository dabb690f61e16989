"""
Pricing — order price from admin-configured rates and presets.

    from inkwell import pricing as P

    estimate = await engine.estimate(level_id, service_id, deadline_id, language_id, pages=3)
"""

from __future__ import annotations

from inkwell.pricing._types import (
    AcademicTier,
    LEVEL_TIERS,
    IncrementType,
    Adjustment,
    DeadlineRate,
    PriceEstimate,
)
from inkwell.pricing._engine import PricingEngine, estimate_in, deadline_in, EstimateError
from inkwell.pricing._catalog import PricingCatalog

__all__ = (
    "AcademicTier",
    "LEVEL_TIERS",
    "IncrementType",
    "Adjustment",
    "DeadlineRate",
    "PriceEstimate",
    "PricingEngine",
    "estimate_in",
    "deadline_in",
    "EstimateError",
    "PricingCatalog",
)
