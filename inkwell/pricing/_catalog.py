"""
Pricing catalog — admin-side configuration writes.

Changes apply to the next estimate; existing orders keep their price.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from inkwell._errors import NotFoundError, ValidationError
from inkwell._types import Error, Ok, Result
from inkwell.db import (
    AcademicLevelTable,
    Base,
    DeadlineRateTable,
    LanguageTable,
    PricingPresetTable,
    ServiceTypeTable,
    write_session,
)
from inkwell.pricing._engine import to_deadline_rate
from inkwell.pricing._types import LEVEL_TIERS, AcademicTier, DeadlineRate, IncrementType

logger = logging.getLogger(__name__)

_ENTITIES: dict[str, type[Base]] = {
    "academic_level": AcademicLevelTable,
    "deadline_rate": DeadlineRateTable,
    "service_type": ServiceTypeTable,
    "language": LanguageTable,
    "pricing_preset": PricingPresetTable,
}


def _non_negative(field: str, value: Decimal) -> Result[Decimal, ValidationError]:
    if value < 0:
        return Error(ValidationError(field, "must not be negative"))
    return Ok(value)


class PricingCatalog:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session = session_factory

    async def add_academic_level(
        self, level: str, tier: AcademicTier | None = None
    ) -> Result[int, ValidationError]:
        """Add a level; the tier defaults from the known level names."""
        tier = tier or LEVEL_TIERS.get(level)
        if tier is None:
            return Error(ValidationError("tier", f"no default tier for level {level!r}"))

        async with write_session(self._session) as session:
            row = AcademicLevelTable(level=level, tier=tier.value, is_active=True)
            session.add(row)
            await session.flush()
            return Ok(row.id)

    async def add_deadline_rate(
        self, hours: int, label: str, rates: dict[AcademicTier, Decimal]
    ) -> Result[int, ValidationError]:
        if hours < 1:
            return Error(ValidationError("hours", "must be at least 1"))
        missing = [t.value for t in AcademicTier if t not in rates]
        if missing:
            return Error(ValidationError("rates", f"missing tiers: {', '.join(missing)}"))
        for tier, rate in rates.items():
            if rate <= 0:
                return Error(ValidationError(f"rates.{tier.value}", "must be positive"))

        async with write_session(self._session) as session:
            row = DeadlineRateTable(
                hours=hours,
                label=label,
                is_active=True,
                **{tier.value: rate for tier, rate in rates.items()},
            )
            session.add(row)
            await session.flush()
            return Ok(row.id)

    async def update_deadline_rate(
        self, rate_id: int, tier: AcademicTier, rate: Decimal
    ) -> Result[DeadlineRate, NotFoundError | ValidationError]:
        if rate <= 0:
            return Error(ValidationError(f"rates.{tier.value}", "must be positive"))

        async with write_session(self._session) as session:
            row = await session.get(DeadlineRateTable, rate_id)
            if row is None:
                return Error(NotFoundError("deadline_rate", rate_id))
            setattr(row, tier.value, rate)
            await session.flush()
            logger.info("Deadline rate %s: %s set to %s", rate_id, tier.value, rate)
            return Ok(to_deadline_rate(row))

    async def add_service_type(
        self,
        name: str,
        slug: str,
        inc_type: IncrementType = IncrementType.PERCENT,
        amount: Decimal = Decimal("0"),
    ) -> Result[int, ValidationError]:
        match _non_negative("amount", amount):
            case Error(e):
                return Error(e)

        async with write_session(self._session) as session:
            row = ServiceTypeTable(
                name=name, slug=slug, inc_type=inc_type.value, amount=amount, is_active=True
            )
            session.add(row)
            await session.flush()
            return Ok(row.id)

    async def add_language(
        self,
        label: str,
        inc_type: IncrementType = IncrementType.PERCENT,
        amount: Decimal = Decimal("0"),
    ) -> Result[int, ValidationError]:
        match _non_negative("amount", amount):
            case Error(e):
                return Error(e)

        async with write_session(self._session) as session:
            row = LanguageTable(label=label, inc_type=inc_type.value, amount=amount, is_active=True)
            session.add(row)
            await session.flush()
            return Ok(row.id)

    async def upsert_preset(
        self,
        academic_level: str,
        service_type: str,
        deadline_type: str,
        base_price_per_page: Decimal,
        multiplier: Decimal = Decimal("1"),
        name: str | None = None,
    ) -> Result[int, ValidationError]:
        """Create or replace the preset for (level, service, deadline)."""
        if base_price_per_page <= 0:
            return Error(ValidationError("base_price_per_page", "must be positive"))
        if multiplier <= 0:
            return Error(ValidationError("multiplier", "must be positive"))

        async with write_session(self._session) as session:
            row = (
                await session.execute(
                    select(PricingPresetTable).where(
                        PricingPresetTable.academic_level == academic_level,
                        PricingPresetTable.service_type == service_type,
                        PricingPresetTable.deadline_type == deadline_type,
                    )
                )
            ).scalar_one_or_none()
            if row is None:
                row = PricingPresetTable(
                    academic_level=academic_level,
                    service_type=service_type,
                    deadline_type=deadline_type,
                )
                session.add(row)
            row.name = name or f"{academic_level} {service_type} {deadline_type}"
            row.base_price_per_page = base_price_per_page
            row.multiplier = multiplier
            row.is_active = True
            await session.flush()
            return Ok(row.id)

    async def set_active(
        self, entity: str, entity_id: int, active: bool
    ) -> Result[None, NotFoundError | ValidationError]:
        """Enable/disable a configuration row; inactive rows price as not found."""
        model = _ENTITIES.get(entity)
        if model is None:
            return Error(ValidationError("entity", f"unknown pricing entity {entity!r}"))

        async with write_session(self._session) as session:
            row = await session.get(model, entity_id)
            if row is None:
                return Error(NotFoundError(entity, entity_id))
            row.is_active = active  # type: ignore[attr-defined]
            logger.info("%s:%s active=%s", entity, entity_id, active)
            return Ok(None)


__all__ = ("PricingCatalog",)
