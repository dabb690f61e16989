"""
Status machine — validated transitions with an append-only history.

A transition is one database transaction, taken while holding the order's
lock (and its client's wallet lock, which cancellation hooks need):

    1. load the order row FOR UPDATE
    2. validate against the transition table
    3. run enter-hooks for the new status (only when the status changes)
    4. write status (version-checked) + append one history entry

A failing hook aborts before step 4: status and history stay untouched.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from inkwell._config import Settings
from inkwell._errors import (
    ConcurrentUpdateError,
    ExternalConfirmationError,
    InkwellError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from inkwell._types import Error, Ok, Result
from inkwell.db import ORDER, WALLET, KeyedLocks, OrderStatusHistoryTable, OrderTable, write_session
from inkwell.events import Event, EventSink, StatusChanged, publish_all
from inkwell.orders._status import OrderStatus, can_transition
from inkwell.orders._types import (
    BulkOutcome,
    BulkReport,
    HistoryEntry,
    Order,
    to_history_entry,
    to_order,
)

logger = logging.getLogger(__name__)

type TransitionError = (
    InvalidTransitionError
    | NotFoundError
    | ExternalConfirmationError
    | ConcurrentUpdateError
)


# ═══════════════════════════════════════════════════════════════════════════════
# Hook context
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(slots=True)
class TransitionContext:
    """What an enter-hook sees: the open session and the locked order row."""

    session: AsyncSession
    order: OrderTable
    previous: OrderStatus
    status: OrderStatus
    actor_id: int | None
    notes: str | None
    events: list[Event] = field(default_factory=list)


type EnterHook = Callable[[TransitionContext], Awaitable[Result[None, InkwellError]]]


# ═══════════════════════════════════════════════════════════════════════════════
# Row helpers
# ═══════════════════════════════════════════════════════════════════════════════


async def load_for_update(session: AsyncSession, order_id: int) -> OrderTable | None:
    return (
        await session.execute(
            select(OrderTable)
            .where(OrderTable.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()


async def append_history(
    session: AsyncSession,
    order_id: int,
    previous: OrderStatus | None,
    status: OrderStatus,
    actor_id: int | None,
    notes: str | None,
) -> OrderStatusHistoryTable:
    entry = OrderStatusHistoryTable(
        order_id=order_id,
        previous_status=previous.value if previous else None,
        status=status.value,
        actor_id=actor_id,
        notes=notes,
        created_at=datetime.now(),
    )
    session.add(entry)
    await session.flush()
    return entry


# ═══════════════════════════════════════════════════════════════════════════════
# StatusMachine
# ═══════════════════════════════════════════════════════════════════════════════


class StatusMachine:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        locks: KeyedLocks,
        sink: EventSink,
        settings: Settings,
    ) -> None:
        self._session = session_factory
        self._locks = locks
        self._sink = sink
        self._settings = settings
        self._hooks: dict[OrderStatus, list[EnterHook]] = {}

    def on_enter(self, status: OrderStatus, hook: EnterHook) -> None:
        """Run `hook` inside the transaction whenever an order enters `status`."""
        self._hooks.setdefault(status, []).append(hook)

    async def client_of(self, order_id: int) -> Result[int, NotFoundError]:
        """Owner of an order. Immutable, so safe to read before locking."""
        async with self._session() as session:
            client_id = (
                await session.execute(select(OrderTable.client_id).where(OrderTable.id == order_id))
            ).scalar_one_or_none()
        if client_id is None:
            return Error(NotFoundError("order", order_id))
        return Ok(client_id)

    # ───────────────────────────────────────────────────────────────────────────
    # Single transition
    # ───────────────────────────────────────────────────────────────────────────

    async def transition(
        self,
        order_id: int,
        new_status: OrderStatus,
        actor_id: int | None,
        notes: str | None = None,
        *,
        writer_id: int | None = None,
    ) -> Result[Order, TransitionError]:
        """
        Move an order to `new_status`.

        Example:
            match await machine.transition(order_id, OrderStatus.REVIEW, admin_id, "draft uploaded"):
                case Ok(order):
                    ...
                case Error(InvalidTransitionError() as e):
                    print(e.message)
        """
        match await self.client_of(order_id):
            case Ok(client_id):
                pass
            case Error(e):
                return Error(e)

        ctx_events: list[Event] = []
        async with self._locks.hold((ORDER, order_id), (WALLET, client_id)):
            try:
                async with write_session(self._session) as session:
                    result = await self.apply(
                        session,
                        order_id,
                        new_status,
                        actor_id,
                        notes,
                        events=ctx_events,
                        writer_id=writer_id,
                    )
            except StaleDataError:
                logger.warning("Order %s changed underneath transition to %s", order_id, new_status.value)
                return Error(ConcurrentUpdateError("order", order_id))

        await publish_all(self._sink, ctx_events)
        return result

    async def apply(
        self,
        session: AsyncSession,
        order_id: int,
        new_status: OrderStatus,
        actor_id: int | None,
        notes: str | None,
        *,
        events: list[Event],
        writer_id: int | None = None,
    ) -> Result[Order, TransitionError]:
        """
        Transition inside a caller's transaction.

        Callers hold the order and wallet locks. Events are appended to
        `events` and must only be published after the commit; on error the
        list is left as it was, except for facts the hooks committed.
        """
        row = await load_for_update(session, order_id)
        if row is None:
            return Error(NotFoundError("order", order_id))

        previous = OrderStatus(row.status)
        if not can_transition(previous, new_status):
            logger.info("Rejected transition of order %s: %s → %s", order_id, previous.value, new_status.value)
            return Error(InvalidTransitionError(previous, new_status))

        if new_status is not previous:
            ctx = TransitionContext(
                session=session,
                order=row,
                previous=previous,
                status=new_status,
                actor_id=actor_id,
                notes=notes,
            )
            for hook in self._hooks.get(new_status, []):
                hook_result = await hook(ctx)
                match hook_result:
                    case Error(e):
                        logger.warning(
                            "Hook aborted transition of order %s to %s: %s",
                            order_id, new_status.value, e,
                        )
                        events.extend(ctx.events)
                        return Error(e)
            events.extend(ctx.events)

        row.status = new_status.value
        if writer_id is not None:
            row.writer_id = writer_id
        row.updated_at = datetime.now()
        await session.flush()

        await append_history(session, order_id, previous, new_status, actor_id, notes)
        events.append(StatusChanged(
            order_id=order_id,
            previous=previous.value,
            status=new_status.value,
            actor_id=actor_id,
            notes=notes,
        ))
        logger.info(
            "Order %s: %s → %s (actor=%s)", order_id, previous.value, new_status.value, actor_id
        )
        return Ok(to_order(row))

    # ───────────────────────────────────────────────────────────────────────────
    # Bulk
    # ───────────────────────────────────────────────────────────────────────────

    async def bulk_transition(
        self,
        order_ids: Sequence[int],
        new_status: OrderStatus,
        actor_id: int | None,
        notes: str | None = None,
    ) -> Result[BulkReport, ValidationError]:
        """
        Transition each order independently.

        A failure on one order never rolls back the others.
        """
        unique_ids = list(dict.fromkeys(order_ids))
        if not unique_ids:
            return Error(ValidationError("order_ids", "at least one order must be selected"))
        if len(unique_ids) > self._settings.bulk_limit:
            return Error(ValidationError(
                "order_ids", f"cannot update more than {self._settings.bulk_limit} orders at once"
            ))

        outcomes: list[BulkOutcome] = []
        for order_id in unique_ids:
            match await self.transition(order_id, new_status, actor_id, notes):
                case Ok(order):
                    outcomes.append(BulkOutcome(order_id=order_id, order=order))
                case Error(e):
                    outcomes.append(BulkOutcome(order_id=order_id, error=e))

        report = BulkReport(status=new_status, outcomes=tuple(outcomes))
        logger.info("Bulk transition to %s: %s", new_status.value, report.message)
        return Ok(report)

    # ───────────────────────────────────────────────────────────────────────────
    # History
    # ───────────────────────────────────────────────────────────────────────────

    async def history(self, order_id: int) -> Result[list[HistoryEntry], NotFoundError]:
        async with self._session() as session:
            if await session.get(OrderTable, order_id) is None:
                return Error(NotFoundError("order", order_id))
            rows = (
                await session.execute(
                    select(OrderStatusHistoryTable)
                    .where(OrderStatusHistoryTable.order_id == order_id)
                    .order_by(OrderStatusHistoryTable.id)
                )
            ).scalars().all()
        return Ok([to_history_entry(r) for r in rows])


__all__ = (
    "StatusMachine",
    "TransitionContext",
    "EnterHook",
    "TransitionError",
    "load_for_update",
    "append_history",
)
