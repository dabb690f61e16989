"""
Payment Settlement — paying for orders and reversing payments on cancellation.

Every payment path runs in one transaction under the order and wallet locks:

    load order FOR UPDATE → check it awaits payment → move money
        → record payments → WAITING_FOR_PAYMENT → WRITER_PENDING

Hybrid payments put a WalletHold on the wallet portion, then check the
confirmation and record both payments. A failed confirmation releases the
hold: the debit and its reversal stay in the ledger, no payment is recorded
and the order keeps awaiting payment.

Cancellation registers on the state machine's CANCELLED hook. Gateway funds
are refunded first; wallet funds are credited back only once every gateway
refund is confirmed.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from inkwell._config import Settings
from inkwell._confirmation import check_unused
from inkwell._errors import (
    ConcurrentUpdateError,
    ExternalConfirmationError,
    InkwellError,
    InsufficientFundsError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from inkwell._types import ZERO, Error, Ok, Result, money
from inkwell.db import (
    ORDER,
    WALLET,
    KeyedLocks,
    OrderTable,
    PaymentTable,
    WalletTable,
    WalletTransactionTable,
    write_session,
)
from inkwell.events import Event, EventSink, PaymentRecorded, RefundIssued, publish_all
from inkwell.orders import (
    CANCELLABLE,
    OrderStatus,
    StatusMachine,
    TransitionContext,
    load_for_update,
)
from inkwell.settlement._gateway import RefundGateway, refund_key, request_refund
from inkwell.settlement._hold import WalletHold
from inkwell.settlement._types import (
    Cancellation,
    Origin,
    Payment,
    PaymentMethod,
    PaymentOption,
    PaymentStatistics,
    PaymentStatus,
    Settlement,
    to_payment,
)
from inkwell.wallet import (
    LedgerMethod,
    append_credit,
    append_debit,
    derived_balance,
    get_or_create_wallet,
)

logger = logging.getLogger(__name__)

type SettlementError = (
    InsufficientFundsError
    | ExternalConfirmationError
    | InvalidTransitionError
    | NotFoundError
    | ValidationError
    | ConcurrentUpdateError
)

type _Body = Callable[
    [AsyncSession, OrderTable, list[Event]],
    Awaitable[Result[list[PaymentTable], SettlementError]],
]


class _Abort(Exception):
    """Unwinds the transaction when the final transition is refused."""

    def __init__(self, error: InkwellError) -> None:
        super().__init__(str(error))
        self.error = error


class PaymentSettlement:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        machine: StatusMachine,
        locks: KeyedLocks,
        sink: EventSink,
        settings: Settings,
        gateway: RefundGateway | None = None,
    ) -> None:
        self._session = session_factory
        self._machine = machine
        self._locks = locks
        self._sink = sink
        self._settings = settings
        self._gateway = gateway
        machine.on_enter(OrderStatus.CANCELLED, self._reverse_payments)

    # ═══════════════════════════════════════════════════════════════════════════
    # Paying
    # ═══════════════════════════════════════════════════════════════════════════

    async def pay_with_wallet(self, order_id: int) -> Result[Settlement, SettlementError]:
        """Debit the full price from the client's wallet."""
        return await self._settle(order_id, "Paid with wallet", self._wallet_part)

    async def pay_with_external_gateway(
        self, order_id: int, external_txn_id: str
    ) -> Result[Settlement, SettlementError]:
        """Record a gateway payment for the full price, given its confirmation id."""

        async def body(session: AsyncSession, row: OrderTable, events: list[Event]):
            return await self._gateway_part(session, row, events, external_txn_id)

        return await self._settle(order_id, "Paid via PayPal", body)

    pay_with_paypal = pay_with_external_gateway

    async def pay_with_hybrid(
        self, order_id: int, wallet_amount: Decimal, external_txn_id: str
    ) -> Result[Settlement, SettlementError]:
        """
        Split the price between the wallet and the gateway.

        Example:
            match await settlement.pay_with_hybrid(order.id, Decimal("20.00"), "PAYPAL-7HF3"):
                case Ok(done):
                    wallet_part, gateway_part = done.payments
                case Error(ExternalConfirmationError()):
                    ...  # wallet debit was reversed, order still awaits payment
        """
        if wallet_amount < 0:
            return Error(ValidationError("wallet_amount", "must not be negative"))
        wallet_amount = money(wallet_amount)

        async def body(session: AsyncSession, row: OrderTable, events: list[Event]):
            if wallet_amount > row.price:
                return Error(ValidationError(
                    "wallet_amount", f"exceeds the order price {row.price}"
                ))
            if wallet_amount == row.price:
                return await self._wallet_part(session, row, events)
            if wallet_amount == 0:
                return await self._gateway_part(session, row, events, external_txn_id)
            return await self._hybrid_part(session, row, events, wallet_amount, external_txn_id)

        return await self._settle(order_id, "Paid with wallet + PayPal", body)

    async def _settle(
        self, order_id: int, note: str, body: _Body
    ) -> Result[Settlement, SettlementError]:
        match await self._machine.client_of(order_id):
            case Ok(client_id):
                pass
            case Error(e):
                return Error(e)

        events: list[Event] = []
        async with self._locks.hold((ORDER, order_id), (WALLET, client_id)):
            try:
                async with write_session(self._session) as session:
                    outcome = await self._settle_in(session, order_id, note, body, events)
            except _Abort as abort:
                return Error(abort.error)
            except StaleDataError:
                return Error(ConcurrentUpdateError("order", order_id))

        await publish_all(self._sink, events)
        return outcome

    async def _settle_in(
        self,
        session: AsyncSession,
        order_id: int,
        note: str,
        body: _Body,
        events: list[Event],
    ) -> Result[Settlement, SettlementError]:
        row = await load_for_update(session, order_id)
        if row is None:
            return Error(NotFoundError("order", order_id))

        status = OrderStatus(row.status)
        if not status.requires_payment:
            return Error(InvalidTransitionError(
                status, OrderStatus.WRITER_PENDING, "order is not awaiting payment"
            ))

        match await body(session, row, events):
            case Ok(payments):
                pass
            case Error(e):
                return Error(e)

        match await self._machine.apply(
            session, order_id, OrderStatus.WRITER_PENDING, row.client_id, note, events=events
        ):
            case Ok(order):
                return Ok(Settlement(order=order, payments=tuple(to_payment(p) for p in payments)))
            case Error(e):
                raise _Abort(e)

    # ───────────────────────────────────────────────────────────────────────────
    # Money movements
    # ───────────────────────────────────────────────────────────────────────────

    async def _wallet_part(
        self, session: AsyncSession, row: OrderTable, events: list[Event]
    ) -> Result[list[PaymentTable], InsufficientFundsError]:
        wallet = await get_or_create_wallet(session, row.client_id)
        match await append_debit(
            session, wallet.id, row.price, f"Payment for order #{row.id}",
            events=events, order_id=row.id,
        ):
            case Ok(entry):
                pass
            case Error(e):
                return Error(e)

        payment = await self._record(
            session, row.id, row.client_id, row.price, PaymentMethod.WALLET, Origin.WALLET, events,
            wallet_transaction_id=entry.id,
        )
        return Ok([payment])

    async def _gateway_part(
        self, session: AsyncSession, row: OrderTable, events: list[Event], external_txn_id: str
    ) -> Result[list[PaymentTable], ExternalConfirmationError]:
        match await check_unused(session, external_txn_id, self._settings.max_external_id_length):
            case Ok(txn_id):
                pass
            case Error(e):
                return Error(e)

        payment = await self._record(
            session, row.id, row.client_id, row.price, PaymentMethod.PAYPAL, Origin.GATEWAY, events,
            external_txn_id=txn_id,
        )
        return Ok([payment])

    async def _hybrid_part(
        self,
        session: AsyncSession,
        row: OrderTable,
        events: list[Event],
        wallet_amount: Decimal,
        external_txn_id: str,
    ) -> Result[list[PaymentTable], InsufficientFundsError | ExternalConfirmationError]:
        gateway_amount = row.price - wallet_amount
        split = {"wallet_amount": str(wallet_amount), "gateway_amount": str(gateway_amount)}
        wallet = await get_or_create_wallet(session, row.client_id)
        hold = WalletHold(session, wallet.id, row.id, wallet_amount, events)

        async def record_payments(
            debit: WalletTransactionTable,
        ) -> Result[list[PaymentTable], ExternalConfirmationError]:
            match await check_unused(session, external_txn_id, self._settings.max_external_id_length):
                case Ok(txn_id):
                    pass
                case Error(e):
                    return Error(e)
            wallet_payment = await self._record(
                session, row.id, row.client_id, wallet_amount, PaymentMethod.HYBRID, Origin.WALLET,
                events, wallet_transaction_id=debit.id, **split,
            )
            gateway_payment = await self._record(
                session, row.id, row.client_id, gateway_amount, PaymentMethod.HYBRID, Origin.GATEWAY,
                events, external_txn_id=txn_id, **split,
            )
            return Ok([wallet_payment, gateway_payment])

        return await hold.settle(record_payments)

    async def _record(
        self,
        session: AsyncSession,
        order_id: int,
        user_id: int,
        amount: Decimal,
        method: PaymentMethod,
        origin: Origin,
        events: list[Event],
        *,
        external_txn_id: str | None = None,
        refund_of_id: int | None = None,
        **details: Any,
    ) -> PaymentTable:
        now = datetime.now()
        payment = PaymentTable(
            order_id=order_id,
            user_id=user_id,
            amount=amount,
            payment_method=method.value,
            external_txn_id=external_txn_id,
            status=PaymentStatus.COMPLETED.value,
            refund_of_id=refund_of_id,
            details={"origin": origin.value, "processed_at": now.isoformat(), **details},
            created_at=now,
            updated_at=now,
        )
        session.add(payment)
        await session.flush()
        events.append(PaymentRecorded(
            payment_id=payment.id,
            order_id=order_id,
            method=method.value,
            amount=amount,
            status=payment.status,
        ))
        logger.info(
            "Payment %s for order %s: %s %s (%s)", payment.id, order_id, method.value, amount, origin.value
        )
        return payment

    # ═══════════════════════════════════════════════════════════════════════════
    # Cancelling
    # ═══════════════════════════════════════════════════════════════════════════

    async def cancel_with_refund(
        self, order_id: int, actor_id: int | None, reason: str | None = None
    ) -> Result[Cancellation, SettlementError]:
        """
        Cancel an order and reverse its payments.

        If a gateway refund fails the order stays as it was; refunds that the
        gateway already confirmed are kept and skipped on the next attempt.
        """
        match await self._machine.client_of(order_id):
            case Ok(client_id):
                pass
            case Error(e):
                return Error(e)

        events: list[Event] = []
        async with self._locks.hold((ORDER, order_id), (WALLET, client_id)):
            try:
                async with write_session(self._session) as session:
                    outcome = await self._cancel_in(session, order_id, actor_id, reason, events)
            except StaleDataError:
                return Error(ConcurrentUpdateError("order", order_id))

        await publish_all(self._sink, events)
        return outcome

    async def _cancel_in(
        self,
        session: AsyncSession,
        order_id: int,
        actor_id: int | None,
        reason: str | None,
        events: list[Event],
    ) -> Result[Cancellation, SettlementError]:
        row = await load_for_update(session, order_id)
        if row is None:
            return Error(NotFoundError("order", order_id))

        status = OrderStatus(row.status)
        if status not in CANCELLABLE:
            return Error(InvalidTransitionError(
                status, OrderStatus.CANCELLED, "order can no longer be cancelled"
            ))

        match await self._machine.apply(
            session, order_id, OrderStatus.CANCELLED, actor_id, reason or "Cancelled with refund",
            events=events,
        ):
            case Ok(order):
                pass
            case Error(e):
                return Error(e)

        refunds = (
            await session.execute(
                select(PaymentTable)
                .where(PaymentTable.order_id == order_id, PaymentTable.refund_of_id.is_not(None))
                .order_by(PaymentTable.id)
            )
        ).scalars().all()
        return Ok(Cancellation(order=order, refunds=tuple(to_payment(r) for r in refunds)))

    async def _reverse_payments(self, ctx: TransitionContext) -> Result[None, InkwellError]:
        """CANCELLED enter-hook: gateway refunds first, then wallet credits."""
        session, order = ctx.session, ctx.order
        originals = (
            await session.execute(
                select(PaymentTable)
                .where(
                    PaymentTable.order_id == order.id,
                    PaymentTable.status == PaymentStatus.COMPLETED.value,
                    PaymentTable.refund_of_id.is_(None),
                )
                .order_by(PaymentTable.id)
            )
        ).scalars().all()

        to_gateway = [p for p in originals if p.details["origin"] == Origin.GATEWAY.value]
        to_wallet = [p for p in originals if p.details["origin"] == Origin.WALLET.value]
        if self._settings.refund_gateway_to_wallet:
            to_wallet = to_gateway + to_wallet
            to_gateway = []

        for payment in to_gateway:
            match await request_refund(
                self._gateway,
                payment.external_txn_id or "",
                payment.amount,
                idempotency_key=refund_key(payment.id),
                timeout=self._settings.gateway_timeout_seconds,
                max_id_length=self._settings.max_external_id_length,
            ):
                case Ok(receipt):
                    pass
                case Error(e):
                    return Error(e)
            await self._mark_refunded(
                session, payment, Origin.GATEWAY, ctx.events,
                external_txn_id=receipt.refund_id, idempotency_key=refund_key(payment.id),
            )

        if to_wallet:
            wallet = await get_or_create_wallet(session, order.client_id)
            for payment in to_wallet:
                entry = await append_credit(
                    session, wallet.id, payment.amount,
                    f"Refund for cancelled order #{order.id}", LedgerMethod.REFUND,
                    events=ctx.events, order_id=order.id,
                )
                await self._mark_refunded(
                    session, payment, Origin.WALLET, ctx.events, wallet_transaction_id=entry.id
                )

        return Ok(None)

    async def _mark_refunded(
        self,
        session: AsyncSession,
        payment: PaymentTable,
        via: Origin,
        events: list[Event],
        *,
        external_txn_id: str | None = None,
        **details: Any,
    ) -> PaymentTable:
        payment.status = PaymentStatus.REFUNDED.value
        payment.updated_at = datetime.now()
        refund = await self._record(
            session,
            payment.order_id,
            payment.user_id,
            payment.amount,
            PaymentMethod(payment.payment_method),
            Origin(payment.details["origin"]),
            events,
            external_txn_id=external_txn_id,
            refund_of_id=payment.id,
            refund_via=via.value,
            **details,
        )
        events.append(RefundIssued(
            order_id=payment.order_id,
            payment_id=payment.id,
            refund_payment_id=refund.id,
            amount=payment.amount,
            origin=via.value,
        ))
        return refund

    # ═══════════════════════════════════════════════════════════════════════════
    # Queries
    # ═══════════════════════════════════════════════════════════════════════════

    async def payment_options(self, user_id: int, amount: Decimal) -> list[PaymentOption]:
        """Ways to pay `amount` given the user's current wallet balance."""
        amount = money(amount)
        async with self._session() as session:
            wallet_id = (
                await session.execute(select(WalletTable.id).where(WalletTable.user_id == user_id))
            ).scalar_one_or_none()
            balance = await derived_balance(session, wallet_id) if wallet_id is not None else ZERO

        options: list[PaymentOption] = []
        if balance >= amount:
            options.append(PaymentOption(
                type="wallet_full",
                label="Pay with Wallet",
                amount=amount,
                wallet_amount=amount,
                gateway_amount=ZERO,
            ))
        if ZERO < balance < amount:
            gateway_amount = amount - balance
            options.append(PaymentOption(
                type="hybrid",
                label=f"Pay {balance} with Wallet + {gateway_amount} via PayPal",
                amount=amount,
                wallet_amount=balance,
                gateway_amount=gateway_amount,
            ))
        options.append(PaymentOption(
            type="paypal_full",
            label="Pay via PayPal",
            amount=amount,
            wallet_amount=ZERO,
            gateway_amount=amount,
        ))
        return options

    async def payments(self, order_id: int) -> Result[list[Payment], NotFoundError]:
        """Payments and refund records of an order, oldest first."""
        async with self._session() as session:
            if await session.get(OrderTable, order_id) is None:
                return Error(NotFoundError("order", order_id))
            rows = (
                await session.execute(
                    select(PaymentTable).where(PaymentTable.order_id == order_id).order_by(PaymentTable.id)
                )
            ).scalars().all()
        return Ok([to_payment(r) for r in rows])

    async def statistics(self) -> PaymentStatistics:
        async with self._session() as session:
            per_status = (
                await session.execute(
                    select(PaymentTable.status, func.count(), func.sum(PaymentTable.amount))
                    .where(PaymentTable.refund_of_id.is_(None))
                    .group_by(PaymentTable.status)
                )
            ).tuples().all()
            per_method = (
                await session.execute(
                    select(PaymentTable.payment_method, func.sum(PaymentTable.amount))
                    .where(
                        PaymentTable.refund_of_id.is_(None),
                        PaymentTable.status == PaymentStatus.COMPLETED.value,
                    )
                    .group_by(PaymentTable.payment_method)
                )
            ).tuples().all()
            refunds = (
                await session.execute(
                    select(func.sum(PaymentTable.amount)).where(PaymentTable.refund_of_id.is_not(None))
                )
            ).scalar_one()

        by_status = {s: 0 for s in PaymentStatus}
        revenue = ZERO
        for status, count, total in per_status:
            by_status[PaymentStatus(status)] = count
            if status in (PaymentStatus.COMPLETED.value, PaymentStatus.REFUNDED.value):
                revenue += total
        return PaymentStatistics(
            total_payments=sum(by_status.values()),
            by_status=by_status,
            total_revenue=revenue,
            total_refunds=refunds if refunds is not None else ZERO,
            by_method={PaymentMethod(m): total for m, total in per_method},
        )


__all__ = ("PaymentSettlement", "SettlementError")
