from __future__ import annotations

import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest
from kungfu import Error, Ok
from sqlalchemy import select

from _helpers import err, ok
from conftest import ADMIN, CLIENT, WRITER, AdvanceFn, Catalog, PlaceFn
from inkwell import (
    AppendOnlyViolation,
    Core,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from inkwell.db import OrderStatusHistoryTable
from inkwell.events import MemorySink, OrderPlaced, PriceOverridden, StatusChanged
from inkwell.orders import PLACED_NOTE, OrderStatus, PlaceOrder, Spacing

S = OrderStatus


async def test_place_order_prices_and_records_creation(core: Core, place: PlaceFn, sink: MemorySink) -> None:
    order = await place(pages=3)

    assert order.status is S.WAITING_FOR_PAYMENT
    assert order.price == Decimal("37.50")
    assert order.spacing is Spacing.DOUBLE
    assert order.words == 750

    history = ok(await core.machine.history(order.id))
    assert len(history) == 1
    assert history[0].previous_status is None
    assert history[0].status is S.WAITING_FOR_PAYMENT
    assert history[0].actor_id == CLIENT
    assert history[0].notes == PLACED_NOTE

    assert sink.of_type(OrderPlaced)[0].price == Decimal("37.50")


async def test_place_order_by_deadline_hours(core: Core, catalog: Catalog) -> None:
    request = PlaceOrder(
        client_id=CLIENT,
        academic_level_id=catalog.undergraduate,
        service_type_id=catalog.essay,
        language_id=catalog.english_us,
        pages=3,
        deadline_hours=30,
    )

    order = ok(await core.orders.place_order(request))

    assert order.deadline_type_id == catalog.one_day
    assert order.price == Decimal("54.00")
    assert order.deadline_at is not None
    assert order.deadline_at - order.created_at == timedelta(hours=30)


@pytest.mark.parametrize(
    ("deadline", "error"),
    [
        ({}, ValidationError),
        ({"deadline_hours": 30, "deadline_type_id": 1}, ValidationError),
        ({"deadline_hours": 10}, NotFoundError),
    ],
    ids=["neither", "both", "too-soon"],
)
async def test_place_order_needs_one_resolvable_deadline(
    core: Core, catalog: Catalog, deadline: dict[str, int], error: type[Exception]
) -> None:
    request = PlaceOrder(
        client_id=CLIENT,
        academic_level_id=catalog.undergraduate,
        service_type_id=catalog.essay,
        language_id=catalog.english_us,
        pages=1,
        **deadline,
    )

    e = err(await core.orders.place_order(request))

    assert isinstance(e, error)
    assert await core.orders.list_orders() == []


async def test_transition_appends_history(core: Core, place: PlaceFn, sink: MemorySink) -> None:
    order = await place()
    updated = ok(await core.machine.transition(order.id, S.WRITER_PENDING, ADMIN, "manual"))

    assert updated.status is S.WRITER_PENDING
    assert updated.version == order.version + 1
    history = ok(await core.machine.history(order.id))
    assert [(h.previous_status, h.status) for h in history] == [
        (None, S.WAITING_FOR_PAYMENT),
        (S.WAITING_FOR_PAYMENT, S.WRITER_PENDING),
    ]
    assert history[-1].actor_id == ADMIN
    assert history[-1].notes == "manual"
    assert sink.of_type(StatusChanged)[-1].status == "writer_pending"


async def test_invalid_transition_names_both_statuses(core: Core, place: PlaceFn) -> None:
    order = await place()
    e = err(await core.machine.transition(order.id, S.REVIEW, ADMIN))

    assert isinstance(e, InvalidTransitionError)
    assert e.current is S.WAITING_FOR_PAYMENT
    assert e.requested is S.REVIEW
    assert e.kind == "invalid_transition"
    assert "waiting_for_payment" in e.message and "review" in e.message
    assert len(ok(await core.machine.history(order.id))) == 1


async def test_self_loop_succeeds_and_appends_history(core: Core, place: PlaceFn) -> None:
    order = await place()
    for _ in range(2):
        assert ok(await core.machine.transition(order.id, S.WAITING_FOR_PAYMENT, ADMIN)).status is (
            S.WAITING_FOR_PAYMENT
        )
    history = ok(await core.machine.history(order.id))
    assert len(history) == 3
    assert history[-1].previous_status is history[-1].status is S.WAITING_FOR_PAYMENT


@pytest.mark.parametrize("target", [s for s in OrderStatus if s is not S.APPROVAL], ids=lambda s: s.value)
async def test_approved_order_cannot_leave_approval(
    core: Core, place: PlaceFn, advance: AdvanceFn, target: OrderStatus
) -> None:
    order = await place()
    await advance(order.id, S.APPROVAL)

    e = err(await core.machine.transition(order.id, target, ADMIN))
    assert isinstance(e, InvalidTransitionError)
    assert ok(await core.orders.get(order.id)).status is S.APPROVAL


async def test_revision_loop(core: Core, place: PlaceFn, advance: AdvanceFn) -> None:
    order = await place()
    await advance(order.id, S.REVIEW)
    ok(await core.machine.transition(order.id, S.IN_REVISION, ADMIN, "client asked for changes"))
    ok(await core.machine.transition(order.id, S.REVIEW, WRITER))
    assert ok(await core.machine.transition(order.id, S.APPROVAL, ADMIN)).status is S.APPROVAL


async def test_unknown_order(core: Core) -> None:
    assert isinstance(err(await core.machine.transition(404, S.REVIEW, ADMIN)), NotFoundError)
    assert isinstance(err(await core.machine.history(404)), NotFoundError)


async def test_concurrent_transitions_on_one_order_serialize(
    core: Core, place: PlaceFn, advance: AdvanceFn
) -> None:
    order = await place()
    await advance(order.id, S.REVIEW)

    results = await asyncio.gather(
        core.machine.transition(order.id, S.APPROVAL, ADMIN),
        core.machine.transition(order.id, S.IN_REVISION, ADMIN),
    )

    successes = [r for r in results if isinstance(r, Ok)]
    failures = [err(r) for r in results if isinstance(r, Error)]
    assert len(successes) == 1
    assert len(failures) == 1
    assert isinstance(failures[0], InvalidTransitionError)
    assert len(ok(await core.machine.history(order.id))) == 5


async def test_assign_writer(core: Core, place: PlaceFn, advance: AdvanceFn) -> None:
    order = await place()
    await advance(order.id, S.WRITER_PENDING)

    updated = ok(await core.orders.assign_writer(order.id, WRITER, ADMIN))
    assert updated.status is S.IN_PROGRESS
    assert updated.writer_id == WRITER


async def test_override_price_only_while_awaiting_payment(
    core: Core, place: PlaceFn, advance: AdvanceFn, sink: MemorySink
) -> None:
    order = await place()
    updated = ok(await core.orders.override_price(order.id, Decimal("99.995"), ADMIN, "bulk discount"))
    assert updated.price == Decimal("100.00")
    assert "bulk discount" in (updated.admin_notes or "")
    assert sink.of_type(PriceOverridden)[-1].new_price == Decimal("100.00")

    assert isinstance(
        err(await core.orders.override_price(order.id, Decimal("0"), ADMIN)), ValidationError
    )

    await advance(order.id, S.WRITER_PENDING)
    e = err(await core.orders.override_price(order.id, Decimal("50.00"), ADMIN))
    assert isinstance(e, InvalidTransitionError)
    assert ok(await core.orders.get(order.id)).price == Decimal("100.00")


async def test_bulk_transition_reports_per_order(
    core: Core, place: PlaceFn, advance: AdvanceFn
) -> None:
    waiting = await place()
    approved = await place()
    await advance(approved.id, S.APPROVAL)

    report = ok(await core.machine.bulk_transition(
        [waiting.id, approved.id, waiting.id, 404], S.CANCELLED, ADMIN, "cleanup"
    ))

    assert [o.order_id for o in report.outcomes] == [waiting.id, approved.id, 404]
    assert report.updated == 1
    assert {o.order_id for o in report.failed} == {approved.id, 404}
    assert isinstance(report.failed[0].error, InvalidTransitionError)
    assert report.message.startswith("Successfully updated 1 orders.")
    assert ok(await core.orders.get(waiting.id)).status is S.CANCELLED


async def test_bulk_transition_limits(core: Core) -> None:
    assert isinstance(err(await core.machine.bulk_transition([], S.CANCELLED, ADMIN)), ValidationError)
    too_many = list(range(1, core.settings.bulk_limit + 2))
    assert isinstance(err(await core.machine.bulk_transition(too_many, S.CANCELLED, ADMIN)), ValidationError)


async def test_list_and_statistics(core: Core, place: PlaceFn, advance: AdvanceFn) -> None:
    first = await place(price="80.00")
    await place(price="20.00", client_id=CLIENT + 1)
    await advance(first.id, S.APPROVAL)

    assert [o.id for o in await core.orders.list_orders(client_id=CLIENT)] == [first.id]
    assert len(await core.orders.list_orders(status=S.WAITING_FOR_PAYMENT)) == 1

    stats = await core.orders.statistics()
    assert stats.total_orders == 2
    assert stats.by_status[S.APPROVAL] == 1
    assert stats.total_revenue == Decimal("80.00")


async def test_history_rows_are_append_only(core: Core, place: PlaceFn) -> None:
    order = await place()
    async with core.session_factory() as session:
        entry = (
            await session.execute(
                select(OrderStatusHistoryTable).where(OrderStatusHistoryTable.order_id == order.id)
            )
        ).scalar_one()
        entry.notes = "rewritten"
        with pytest.raises(AppendOnlyViolation):
            await session.flush()
        await session.rollback()
