"""Two cores on one database file: no shared in-process locks, only SQLite's."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from decimal import Decimal

import pytest
from kungfu import Error, Ok
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from _helpers import err, ok
from conftest import ADMIN, CLIENT, AdvanceFn, PlaceFn
from inkwell import Core, InsufficientFundsError, InvalidTransitionError, Settings, build_core
from inkwell.db import OrderTable, write_session
from inkwell.events import MemorySink
from inkwell.orders import OrderStatus

S = OrderStatus
FundFn = Callable[..., Awaitable[None]]


@pytest.fixture
async def other(core: Core, settings: Settings) -> AsyncIterator[Core]:
    second = await build_core(settings, sink=MemorySink())
    yield second
    await second.close()


async def test_debits_from_two_cores_never_overdraw(core: Core, other: Core, fund: FundFn) -> None:
    await fund("30.00")
    wallet = await core.wallet.open(CLIENT)

    results = await asyncio.gather(
        core.wallet.debit(wallet.id, Decimal("30.00"), "first"),
        other.wallet.debit(wallet.id, Decimal("30.00"), "second"),
    )

    assert sum(1 for r in results if isinstance(r, Ok)) == 1
    [failure] = [err(r) for r in results if isinstance(r, Error)]
    assert isinstance(failure, InsufficientFundsError)
    assert failure.available == Decimal("0.00")
    assert await core.wallet.balance(CLIENT) == Decimal("0.00")
    assert ok(await other.wallet.reconcile(CLIENT)).consistent


async def test_transitions_from_two_cores_serialize(
    core: Core, other: Core, place: PlaceFn, advance: AdvanceFn
) -> None:
    order = await place()
    await advance(order.id, S.REVIEW)

    results = await asyncio.gather(
        core.machine.transition(order.id, S.APPROVAL, ADMIN),
        other.machine.transition(order.id, S.IN_REVISION, ADMIN),
    )

    [winner] = [ok(r) for r in results if isinstance(r, Ok)]
    [failure] = [err(r) for r in results if isinstance(r, Error)]
    assert isinstance(failure, InvalidTransitionError)
    assert failure.current is winner.status
    history = ok(await other.machine.history(order.id))
    assert len(history) == 5
    assert history[-1].status is winner.status


async def test_stale_order_write_is_rejected(core: Core, place: PlaceFn) -> None:
    order = await place()

    async with core.session_factory() as session:
        stale = (await session.execute(select(OrderTable).where(OrderTable.id == order.id))).scalar_one()
        await session.commit()
        ok(await core.machine.transition(order.id, S.WRITER_PENDING, ADMIN))

        stale.status = S.CANCELLED.value
        with pytest.raises(StaleDataError):
            await session.commit()

    assert ok(await core.orders.get(order.id)).status is S.WRITER_PENDING


async def test_reads_do_not_wait_for_an_open_write(
    core: Core, settings: Settings, fund: FundFn
) -> None:
    await fund("30.00")
    impatient = await build_core(
        settings.model_copy(update={"sqlite_busy_timeout": 0.2}), sink=MemorySink()
    )
    try:
        async with write_session(core.session_factory):
            assert await impatient.wallet.balance(CLIENT) == Decimal("30.00")
            assert len(await impatient.wallet.transactions(CLIENT)) == 1
            # Writers still queue behind the open write transaction
            with pytest.raises(OperationalError):
                await impatient.wallet.top_up(CLIENT, Decimal("5.00"), "TOPUP-BLOCKED")
    finally:
        await impatient.close()

    assert await core.wallet.balance(CLIENT) == Decimal("30.00")
