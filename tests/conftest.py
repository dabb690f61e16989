from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from decimal import Decimal

import pytest

from _helpers import FakeGateway, ok
from inkwell import Core, Settings, build_core
from inkwell.events import MemorySink
from inkwell.orders import Order, OrderStatus, PlaceOrder
from inkwell.pricing import AcademicTier, IncrementType

CLIENT = 10
ADMIN = 1
WRITER = 20


@dataclass(frozen=True, slots=True)
class Catalog:
    undergraduate: int
    phd: int
    three_days: int
    one_day: int
    flexible: int
    essay: int
    research: int
    proofreading: int
    half_percent_service: int
    english_us: int
    english_uk: int
    half_percent_language: int


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(database_url=f"sqlite+aiosqlite:///{tmp_path / 'inkwell.db'}")


@pytest.fixture
def sink() -> MemorySink:
    return MemorySink()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
async def core(settings: Settings, sink: MemorySink, gateway: FakeGateway) -> AsyncIterator[Core]:
    core = await build_core(settings, sink=sink, gateway=gateway)
    yield core
    await core.close()


@pytest.fixture
async def catalog(core: Core) -> Catalog:
    c = core.catalog

    def rates(hs: str, ug: str, ms: str, phd: str) -> dict[AcademicTier, Decimal]:
        return {
            AcademicTier.HIGH_SCHOOL: Decimal(hs),
            AcademicTier.UNDER_GRADUATE: Decimal(ug),
            AcademicTier.MASTERS: Decimal(ms),
            AcademicTier.PHD: Decimal(phd),
        }

    return Catalog(
        undergraduate=ok(await c.add_academic_level("Undergraduate")),
        phd=ok(await c.add_academic_level("Ph.D")),
        three_days=ok(await c.add_deadline_rate(72, "3 Days", rates("10.00", "12.50", "15.00", "20.00"))),
        one_day=ok(await c.add_deadline_rate(24, "24 Hours", rates("15.00", "18.00", "22.00", "30.00"))),
        flexible=ok(await c.add_deadline_rate(240, "10 Days", rates("1.01", "1.01", "1.01", "1.01"))),
        essay=ok(await c.add_service_type("Essay Writing", "essay")),
        research=ok(await c.add_service_type(
            "Research Paper", "research", IncrementType.PERCENT, Decimal("10")
        )),
        proofreading=ok(await c.add_service_type(
            "Proofreading", "proofreading", IncrementType.FIXED, Decimal("2.50")
        )),
        half_percent_service=ok(await c.add_service_type(
            "Formatting", "formatting", IncrementType.PERCENT, Decimal("0.5")
        )),
        english_us=ok(await c.add_language("English (US)")),
        english_uk=ok(await c.add_language("English (UK)", IncrementType.PERCENT, Decimal("5"))),
        half_percent_language=ok(await c.add_language(
            "English (AU)", IncrementType.PERCENT, Decimal("0.5")
        )),
    )


type PlaceFn = Callable[..., Awaitable[Order]]


@pytest.fixture
def place(core: Core, catalog: Catalog) -> PlaceFn:
    """Place an order, optionally forcing its price through an admin override."""

    async def _place(price: str | None = None, client_id: int = CLIENT, pages: int = 2) -> Order:
        order = ok(await core.orders.place_order(PlaceOrder(
            client_id=client_id,
            academic_level_id=catalog.undergraduate,
            service_type_id=catalog.essay,
            deadline_type_id=catalog.three_days,
            language_id=catalog.english_us,
            pages=pages,
        )))
        if price is not None:
            order = ok(await core.orders.override_price(order.id, Decimal(price), ADMIN, "test price"))
        return order

    return _place


type AdvanceFn = Callable[[int, OrderStatus], Awaitable[Order]]

_PATH = (
    OrderStatus.WRITER_PENDING,
    OrderStatus.IN_PROGRESS,
    OrderStatus.REVIEW,
    OrderStatus.APPROVAL,
)


@pytest.fixture
def advance(core: Core) -> AdvanceFn:
    """Drive an order along the happy path (without payment) up to `target`."""

    async def _advance(order_id: int, target: OrderStatus) -> Order:
        order = ok(await core.orders.get(order_id))
        for status in _PATH[_PATH.index(order.status) + 1 if order.status in _PATH else 0:]:
            order = ok(await core.machine.transition(order_id, status, ADMIN))
            if status is target:
                break
        return order

    return _advance


@pytest.fixture
def fund(core: Core) -> Callable[[str, int], Awaitable[None]]:
    counter = iter(range(1, 1_000))

    async def _fund(amount: str, user_id: int = CLIENT) -> None:
        ok(await core.wallet.top_up(user_id, Decimal(amount), f"TOPUP-{user_id}-{next(counter)}"))

    return _fund
