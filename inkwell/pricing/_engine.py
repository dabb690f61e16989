"""
Pricing Engine — price an order from admin-configured rates.

Algorithm:
    base     = deadline_rates[deadline_type][tier(academic_level)]
    subtotal = base × pages
    subtotal = service_type adjustment (percent or fixed per page)
    subtotal = language adjustment (percent or fixed per page)
    total    = round(subtotal, 2)          # once, at the end

Every factor comes from a table row, so admins reprice without a deploy.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from inkwell._errors import NotFoundError, ValidationError
from inkwell._types import Error, Ok, Result, money
from inkwell.db import (
    AcademicLevelTable,
    DeadlineRateTable,
    LanguageTable,
    PricingPresetTable,
    ServiceTypeTable,
)
from inkwell.pricing._types import (
    AcademicTier,
    Adjustment,
    DeadlineRate,
    IncrementType,
    PriceEstimate,
)

logger = logging.getLogger(__name__)

type EstimateError = NotFoundError | ValidationError


# ═══════════════════════════════════════════════════════════════════════════════
# Row conversion
# ═══════════════════════════════════════════════════════════════════════════════


def to_deadline_rate(row: DeadlineRateTable) -> DeadlineRate:
    return DeadlineRate(
        id=row.id,
        hours=row.hours,
        label=row.label,
        rates={tier: getattr(row, tier.value) for tier in AcademicTier},
        is_active=row.is_active,
    )


def _adjustment(source: str, row: ServiceTypeTable | LanguageTable) -> Adjustment:
    return Adjustment(source=source, inc_type=IncrementType(row.inc_type), amount=row.amount)


async def _active[M](
    session: AsyncSession, model: type[M], entity: str, entity_id: int
) -> Result[M, NotFoundError]:
    row = await session.get(model, entity_id)
    if row is None or not row.is_active:  # type: ignore[attr-defined]
        return Error(NotFoundError(entity, entity_id))
    return Ok(row)


# ═══════════════════════════════════════════════════════════════════════════════
# estimate_in() — pricing inside a caller's session
# ═══════════════════════════════════════════════════════════════════════════════


async def estimate_in(
    session: AsyncSession,
    academic_level_id: int,
    service_type_id: int,
    deadline_type_id: int,
    language_id: int,
    pages: int,
) -> Result[PriceEstimate, EstimateError]:
    """Price an order using rows visible to `session`."""
    if pages < 1:
        return Error(ValidationError("pages", "must be at least 1"))

    match await _active(session, AcademicLevelTable, "academic_level", academic_level_id):
        case Ok(level):
            pass
        case Error(e):
            return Error(e)

    match await _active(session, DeadlineRateTable, "deadline_rate", deadline_type_id):
        case Ok(rate_row):
            pass
        case Error(e):
            return Error(e)

    match await _active(session, ServiceTypeTable, "service_type", service_type_id):
        case Ok(service_row):
            pass
        case Error(e):
            return Error(e)

    match await _active(session, LanguageTable, "language", language_id):
        case Ok(language_row):
            pass
        case Error(e):
            return Error(e)

    tier = AcademicTier(level.tier)
    base = to_deadline_rate(rate_row).rate_for(tier)
    service = _adjustment(f"service_type:{service_row.slug}", service_row)
    language = _adjustment(f"language:{language_row.label}", language_row)

    subtotal = base * pages
    subtotal = service.apply(subtotal, pages)
    subtotal = language.apply(subtotal, pages)

    return Ok(PriceEstimate(
        academic_level_id=academic_level_id,
        service_type_id=service_type_id,
        deadline_type_id=deadline_type_id,
        language_id=language_id,
        pages=pages,
        tier=tier,
        base_price_per_page=base,
        service=service,
        language=language,
        total=money(subtotal),
    ))


async def deadline_in(session: AsyncSession, hours: int) -> Result[DeadlineRate, NotFoundError]:
    """Resolve a requested turnaround to the active bucket that covers it."""
    row = (
        await session.execute(
            select(DeadlineRateTable)
            .where(
                DeadlineRateTable.is_active.is_(True),
                DeadlineRateTable.hours <= hours,
            )
            .order_by(DeadlineRateTable.hours.desc())
            .limit(1)
        )
    ).scalar_one_or_none()
    if row is None:
        return Error(NotFoundError("deadline_rate", f"{hours}h"))
    return Ok(to_deadline_rate(row))


# ═══════════════════════════════════════════════════════════════════════════════
# PricingEngine
# ═══════════════════════════════════════════════════════════════════════════════


class PricingEngine:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session = session_factory

    async def estimate(
        self,
        academic_level_id: int,
        service_type_id: int,
        deadline_type_id: int,
        language_id: int,
        pages: int,
    ) -> Result[PriceEstimate, EstimateError]:
        """
        Estimate the price of an order.

        Example:
            match await engine.estimate(level_id, service_id, deadline_id, lang_id, 3):
                case Ok(estimate):
                    print(estimate.total)
                case Error(e):
                    print(e.kind, e.message)
        """
        async with self._session() as session:
            result = await estimate_in(
                session,
                academic_level_id,
                service_type_id,
                deadline_type_id,
                language_id,
                pages,
            )
        match result:
            case Ok(estimate):
                logger.debug(
                    "Estimated %s pages at %s/page (%s) → %s",
                    pages, estimate.base_price_per_page, estimate.tier.value, estimate.total,
                )
        return result

    async def preset_price(
        self,
        academic_level: str,
        service_type: str,
        deadline_type: str,
        pages: int,
    ) -> Result[Decimal, EstimateError]:
        """base_price_per_page × multiplier × pages of the matching active preset."""
        if pages < 1:
            return Error(ValidationError("pages", "must be at least 1"))

        async with self._session() as session:
            preset = (
                await session.execute(
                    select(PricingPresetTable).where(
                        PricingPresetTable.academic_level == academic_level,
                        PricingPresetTable.service_type == service_type,
                        PricingPresetTable.deadline_type == deadline_type,
                        PricingPresetTable.is_active.is_(True),
                    )
                )
            ).scalar_one_or_none()

        if preset is None:
            return Error(NotFoundError(
                "pricing_preset", f"{academic_level}/{service_type}/{deadline_type}"
            ))
        return Ok(money(preset.base_price_per_page * preset.multiplier * pages))

    async def deadline_for_hours(self, hours: int) -> Result[DeadlineRate, NotFoundError]:
        """Active bucket with the largest `hours` not exceeding the request."""
        async with self._session() as session:
            return await deadline_in(session, hours)

    async def matrix(self) -> dict[str, dict[str, dict[str, Mapping[str, Any]]]]:
        """Active presets keyed level → service → deadline."""
        async with self._session() as session:
            presets = (
                await session.execute(
                    select(PricingPresetTable)
                    .where(PricingPresetTable.is_active.is_(True))
                    .order_by(PricingPresetTable.academic_level, PricingPresetTable.service_type)
                )
            ).scalars().all()

        matrix: dict[str, dict[str, dict[str, Mapping[str, Any]]]] = {}
        for p in presets:
            per_page = p.base_price_per_page * p.multiplier
            matrix.setdefault(p.academic_level, {}).setdefault(p.service_type, {})[p.deadline_type] = {
                "id": p.id,
                "name": p.name,
                "base_price_per_page": p.base_price_per_page,
                "multiplier": p.multiplier,
                "total_price_1_page": money(per_page),
                "total_price_5_pages": money(per_page * 5),
                "total_price_10_pages": money(per_page * 10),
            }
        return matrix


__all__ = ("PricingEngine", "estimate_in", "deadline_in", "to_deadline_rate", "EstimateError")
