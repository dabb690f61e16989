"""
Core wiring — one object holding every service over a shared database.

    core = await build_core(Settings.from_env(), sink=LoggingSink())
    try:
        ...
    finally:
        await core.close()
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from inkwell._config import Settings
from inkwell.db import KeyedLocks, create_database
from inkwell.events import EventSink, LoggingSink
from inkwell.orders import OrderService, StatusMachine
from inkwell.pricing import PricingCatalog, PricingEngine
from inkwell.settlement import PaymentSettlement, RefundGateway
from inkwell.wallet import WalletLedger


@dataclass(frozen=True, slots=True)
class Core:
    settings: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    locks: KeyedLocks
    sink: EventSink
    pricing: PricingEngine
    catalog: PricingCatalog
    machine: StatusMachine
    orders: OrderService
    wallet: WalletLedger
    settlement: PaymentSettlement

    async def close(self) -> None:
        await self.engine.dispose()


async def build_core(
    settings: Settings | None = None,
    *,
    sink: EventSink | None = None,
    gateway: RefundGateway | None = None,
) -> Core:
    """Create the schema and wire the services. All share one lock table."""
    settings = settings or Settings()
    sink = sink or LoggingSink()
    session_factory, engine = await create_database(settings)
    locks = KeyedLocks()

    machine = StatusMachine(session_factory, locks, sink, settings)
    return Core(
        settings=settings,
        engine=engine,
        session_factory=session_factory,
        locks=locks,
        sink=sink,
        pricing=PricingEngine(session_factory),
        catalog=PricingCatalog(session_factory),
        machine=machine,
        orders=OrderService(session_factory, machine, locks, sink),
        wallet=WalletLedger(session_factory, locks, sink, settings),
        settlement=PaymentSettlement(session_factory, machine, locks, sink, settings, gateway),
    )


__all__ = ("Core", "build_core")
