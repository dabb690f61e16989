"""
Order service — placing orders, writer assignment, admin price overrides.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from inkwell._errors import (
    ConcurrentUpdateError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from inkwell._types import ZERO, Error, Ok, Result, money
from inkwell.db import ORDER, KeyedLocks, OrderTable, write_session
from inkwell.events import Event, EventSink, OrderPlaced, PriceOverridden, StatusChanged, publish_all
from inkwell.orders._machine import StatusMachine, TransitionError, append_history, load_for_update
from inkwell.orders._status import OrderStatus
from inkwell.orders._types import Order, OrderStatistics, PlaceOrder, to_order
from inkwell.pricing import EstimateError, deadline_in, estimate_in

logger = logging.getLogger(__name__)

PLACED_NOTE = "Order placed by client"


async def _deadline_of(session: AsyncSession, request: PlaceOrder) -> Result[int, EstimateError]:
    if (request.deadline_type_id is None) == (request.deadline_hours is None):
        return Error(ValidationError("deadline", "give exactly one of deadline_type_id, deadline_hours"))
    if request.deadline_hours is None:
        return Ok(request.deadline_type_id)
    match await deadline_in(session, request.deadline_hours):
        case Ok(rate):
            return Ok(rate.id)
        case Error(e):
            return Error(e)


def _deadline_at(request: PlaceOrder, placed_at: datetime) -> datetime | None:
    if request.deadline_at is None and request.deadline_hours is not None:
        return placed_at + timedelta(hours=request.deadline_hours)
    return request.deadline_at


class OrderService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        machine: StatusMachine,
        locks: KeyedLocks,
        sink: EventSink,
    ) -> None:
        self._session = session_factory
        self._machine = machine
        self._locks = locks
        self._sink = sink

    async def place_order(self, request: PlaceOrder) -> Result[Order, EstimateError]:
        """
        Price and store a new order awaiting payment.

        The price is computed here and never taken from the caller.
        """
        async with write_session(self._session) as session:
            match await _deadline_of(session, request):
                case Ok(deadline_type_id):
                    pass
                case Error(e):
                    return Error(e)

            match await estimate_in(
                session,
                request.academic_level_id,
                request.service_type_id,
                deadline_type_id,
                request.language_id,
                request.pages,
            ):
                case Ok(estimate):
                    pass
                case Error(e):
                    return Error(e)

            now = datetime.now()
            row = OrderTable(
                title=request.title,
                description=request.description,
                client_id=request.client_id,
                academic_level_id=request.academic_level_id,
                service_type_id=request.service_type_id,
                deadline_type_id=deadline_type_id,
                language_id=request.language_id,
                pages=request.pages,
                words=request.pages * request.spacing.words_per_page,
                spacing=request.spacing.value,
                price=estimate.total,
                status=OrderStatus.WAITING_FOR_PAYMENT.value,
                deadline_at=_deadline_at(request, now),
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            await session.flush()
            await append_history(
                session, row.id, None, OrderStatus.WAITING_FOR_PAYMENT, request.client_id, PLACED_NOTE
            )
            order = to_order(row)

        logger.info("Order %s placed by client %s at %s", order.id, order.client_id, order.price)
        await publish_all(self._sink, [
            OrderPlaced(order_id=order.id, client_id=order.client_id, price=order.price),
            StatusChanged(
                order_id=order.id,
                previous=None,
                status=order.status.value,
                actor_id=order.client_id,
                notes=PLACED_NOTE,
            ),
        ])
        return Ok(order)

    async def assign_writer(
        self, order_id: int, writer_id: int, actor_id: int | None
    ) -> Result[Order, TransitionError]:
        return await self._machine.transition(
            order_id,
            OrderStatus.IN_PROGRESS,
            actor_id,
            f"Writer #{writer_id} assigned",
            writer_id=writer_id,
        )

    async def override_price(
        self,
        order_id: int,
        new_price: Decimal,
        actor_id: int,
        reason: str | None = None,
    ) -> Result[Order, InvalidTransitionError | NotFoundError | ValidationError | ConcurrentUpdateError]:
        """Admin price change; only while the order still awaits payment."""
        if new_price <= 0:
            return Error(ValidationError("price", "must be positive"))
        new_price = money(new_price)

        events: list[Event] = []
        async with self._locks.hold((ORDER, order_id)):
            try:
                async with write_session(self._session) as session:
                    row = await load_for_update(session, order_id)
                    if row is None:
                        return Error(NotFoundError("order", order_id))

                    status = OrderStatus(row.status)
                    if status is not OrderStatus.WAITING_FOR_PAYMENT:
                        return Error(InvalidTransitionError(
                            status,
                            OrderStatus.WAITING_FOR_PAYMENT,
                            "price can only change while awaiting payment",
                        ))

                    old_price = row.price
                    row.price = new_price
                    if reason:
                        stamp = f"[price {old_price} → {new_price}] {reason}"
                        row.admin_notes = f"{row.admin_notes}\n{stamp}" if row.admin_notes else stamp
                    row.updated_at = datetime.now()
                    await session.flush()
                    order = to_order(row)
            except StaleDataError:
                return Error(ConcurrentUpdateError("order", order_id))

        events.append(PriceOverridden(
            order_id=order_id,
            old_price=old_price,
            new_price=new_price,
            actor_id=actor_id,
            reason=reason,
        ))
        logger.info("Order %s price overridden by %s: %s → %s", order_id, actor_id, old_price, new_price)
        await publish_all(self._sink, events)
        return Ok(order)

    # ───────────────────────────────────────────────────────────────────────────
    # Queries
    # ───────────────────────────────────────────────────────────────────────────

    async def get(self, order_id: int) -> Result[Order, NotFoundError]:
        async with self._session() as session:
            row = await session.get(OrderTable, order_id)
        if row is None:
            return Error(NotFoundError("order", order_id))
        return Ok(to_order(row))

    async def list_orders(
        self,
        status: OrderStatus | None = None,
        client_id: int | None = None,
    ) -> list[Order]:
        query = select(OrderTable).order_by(OrderTable.id.desc())
        if status is not None:
            query = query.where(OrderTable.status == status.value)
        if client_id is not None:
            query = query.where(OrderTable.client_id == client_id)

        async with self._session() as session:
            rows = (await session.execute(query)).scalars().all()
        return [to_order(r) for r in rows]

    async def statistics(self) -> OrderStatistics:
        async with self._session() as session:
            counts = dict(
                (
                    await session.execute(
                        select(OrderTable.status, func.count()).group_by(OrderTable.status)
                    )
                ).tuples().all()
            )
            revenue = (
                await session.execute(
                    select(func.sum(OrderTable.price)).where(
                        OrderTable.status == OrderStatus.APPROVAL.value
                    )
                )
            ).scalar_one()

        by_status = {s: counts.get(s.value, 0) for s in OrderStatus}
        return OrderStatistics(
            total_orders=sum(by_status.values()),
            by_status=by_status,
            total_revenue=revenue if revenue is not None else ZERO,
        )


__all__ = ("OrderService", "PLACED_NOTE")
