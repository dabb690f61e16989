"""
Wallet Ledger — append-only credits and debits per user.

    balance(wallet) = Σ completed credits − Σ completed debits

The wallet row caches the balance so a debit can be one atomic statement:

    UPDATE wallets SET balance = balance - :amount
     WHERE id = :wallet AND balance >= :amount

Zero rows updated means insufficient funds; nothing is appended then.
reconcile() compares the cache with the sum of the log.

Session-level helpers (append_credit, append_debit) run inside a caller's
transaction; WalletLedger wraps them with locking and event publication.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, cast

from sqlalchemy import func, select, update
from sqlalchemy.engine import CursorResult
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from inkwell._config import Settings
from inkwell._confirmation import check_format, is_used
from inkwell._errors import (
    ExternalConfirmationError,
    InsufficientFundsError,
    NotFoundError,
    ValidationError,
)
from inkwell._types import ZERO, Error, Ok, Result, money
from inkwell.db import WALLET, KeyedLocks, WalletTable, WalletTransactionTable, write_session
from inkwell.events import Event, EventSink, LedgerEntryAppended, publish_all
from inkwell.wallet._types import (
    LedgerMethod,
    Reconciliation,
    TopUp,
    TransactionStatus,
    TransactionType,
    MethodUsage,
    Wallet,
    WalletOverview,
    WalletStatistics,
    WalletTransaction,
    to_transaction,
    to_wallet,
)

logger = logging.getLogger(__name__)

TOP_UP_DESCRIPTION = "Wallet top-up via PayPal"


# ═══════════════════════════════════════════════════════════════════════════════
# Session-level helpers
# ═══════════════════════════════════════════════════════════════════════════════


async def get_or_create_wallet(session: AsyncSession, user_id: int) -> WalletTable:
    wallet = (
        await session.execute(
            select(WalletTable)
            .where(WalletTable.user_id == user_id)
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()
    if wallet is None:
        wallet = WalletTable(user_id=user_id, balance=ZERO, version=0, created_at=datetime.now())
        session.add(wallet)
        await session.flush()
        logger.info("Opened wallet %s for user %s", wallet.id, user_id)
    return wallet


async def cached_balance(session: AsyncSession, wallet_id: int) -> Decimal:
    balance = (
        await session.execute(select(WalletTable.balance).where(WalletTable.id == wallet_id))
    ).scalar_one()
    return balance


async def derived_balance(session: AsyncSession, wallet_id: int) -> Decimal:
    """Balance as the sum of the completed log entries."""
    totals = dict(
        (
            await session.execute(
                select(WalletTransactionTable.type, func.sum(WalletTransactionTable.amount))
                .where(
                    WalletTransactionTable.wallet_id == wallet_id,
                    WalletTransactionTable.status == TransactionStatus.COMPLETED.value,
                )
                .group_by(WalletTransactionTable.type)
            )
        ).tuples().all()
    )
    credits = totals.get(TransactionType.CREDIT.value) or ZERO
    debits = totals.get(TransactionType.DEBIT.value) or ZERO
    return money(credits - debits)


async def _append(
    session: AsyncSession,
    wallet_id: int,
    type_: TransactionType,
    amount: Decimal,
    description: str,
    method: LedgerMethod,
    order_id: int | None,
    external_reference: str | None,
    events: list[Event],
) -> WalletTransactionTable:
    entry = WalletTransactionTable(
        wallet_id=wallet_id,
        type=type_.value,
        amount=amount,
        description=description,
        order_id=order_id,
        payment_method=method.value,
        status=TransactionStatus.COMPLETED.value,
        external_reference=external_reference,
        created_at=datetime.now(),
    )
    session.add(entry)
    await session.flush()
    events.append(LedgerEntryAppended(
        wallet_id=wallet_id,
        transaction_id=entry.id,
        type=type_.value,
        amount=amount,
        method=method.value,
        order_id=order_id,
    ))
    logger.info(
        "Wallet %s %s %s (%s, order=%s): %s",
        wallet_id, type_.value, amount, method.value, order_id, description,
    )
    return entry


async def append_credit(
    session: AsyncSession,
    wallet_id: int,
    amount: Decimal,
    description: str,
    method: LedgerMethod,
    *,
    events: list[Event],
    order_id: int | None = None,
    external_reference: str | None = None,
) -> WalletTransactionTable:
    """Credit inside the caller's transaction. `amount` must already be positive money."""
    await session.execute(
        update(WalletTable)
        .where(WalletTable.id == wallet_id)
        .values(balance=WalletTable.balance + amount, version=WalletTable.version + 1)
        .execution_options(synchronize_session=False)
    )
    return await _append(
        session, wallet_id, TransactionType.CREDIT, amount, description,
        method, order_id, external_reference, events,
    )


async def append_debit(
    session: AsyncSession,
    wallet_id: int,
    amount: Decimal,
    description: str,
    *,
    events: list[Event],
    order_id: int | None = None,
    method: LedgerMethod = LedgerMethod.WALLET,
) -> Result[WalletTransactionTable, InsufficientFundsError]:
    """Conditional debit inside the caller's transaction."""
    cursor = cast(
        CursorResult[Any],
        await session.execute(
            update(WalletTable)
            .where(WalletTable.id == wallet_id, WalletTable.balance >= amount)
            .values(balance=WalletTable.balance - amount, version=WalletTable.version + 1)
            .execution_options(synchronize_session=False)
        ),
    )
    if cursor.rowcount == 0:
        available = await cached_balance(session, wallet_id)
        logger.info("Wallet %s debit of %s refused, balance %s", wallet_id, amount, available)
        return Error(InsufficientFundsError(required=amount, available=available))

    entry = await _append(
        session, wallet_id, TransactionType.DEBIT, amount, description,
        method, order_id, None, events,
    )
    return Ok(entry)


def _positive(amount: Decimal) -> Result[Decimal, ValidationError]:
    if amount <= 0:
        return Error(ValidationError("amount", "must be positive"))
    return Ok(money(amount))


# ═══════════════════════════════════════════════════════════════════════════════
# WalletLedger
# ═══════════════════════════════════════════════════════════════════════════════


class WalletLedger:
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

    async def open(self, user_id: int) -> Wallet:
        """Get or create the user's wallet."""
        async with self._locks.hold((WALLET, user_id)):
            async with write_session(self._session) as session:
                wallet = await get_or_create_wallet(session, user_id)
                return to_wallet(wallet)

    async def balance(self, user_id: int) -> Decimal:
        async with self._session() as session:
            wallet_id = await self._wallet_id(session, user_id)
            if wallet_id is None:
                return ZERO
            return await derived_balance(session, wallet_id)

    async def _wallet_id(self, session: AsyncSession, user_id: int) -> int | None:
        return (
            await session.execute(select(WalletTable.id).where(WalletTable.user_id == user_id))
        ).scalar_one_or_none()

    async def _owner(self, wallet_id: int) -> Result[int, NotFoundError]:
        async with self._session() as session:
            user_id = (
                await session.execute(select(WalletTable.user_id).where(WalletTable.id == wallet_id))
            ).scalar_one_or_none()
        if user_id is None:
            return Error(NotFoundError("wallet", wallet_id))
        return Ok(user_id)

    # ───────────────────────────────────────────────────────────────────────────
    # Mutations
    # ───────────────────────────────────────────────────────────────────────────

    async def credit(
        self,
        wallet_id: int,
        amount: Decimal,
        description: str,
        method: LedgerMethod = LedgerMethod.WALLET,
        order_id: int | None = None,
    ) -> Result[WalletTransaction, NotFoundError | ValidationError]:
        match _positive(amount):
            case Ok(amount):
                pass
            case Error(e):
                return Error(e)
        match await self._owner(wallet_id):
            case Ok(user_id):
                pass
            case Error(e):
                return Error(e)

        events: list[Event] = []
        async with self._locks.hold((WALLET, user_id)):
            async with write_session(self._session) as session:
                entry = await append_credit(
                    session, wallet_id, amount, description, method,
                    events=events, order_id=order_id,
                )
                transaction = to_transaction(entry)

        await publish_all(self._sink, events)
        return Ok(transaction)

    async def debit(
        self,
        wallet_id: int,
        amount: Decimal,
        description: str,
        order_id: int | None = None,
    ) -> Result[WalletTransaction, InsufficientFundsError | NotFoundError | ValidationError]:
        """
        Debit without overdraft.

        Example:
            match await ledger.debit(wallet.id, Decimal("30.00"), "Payment for order #7", 7):
                case Ok(tx):
                    ...
                case Error(InsufficientFundsError(required=r, available=a)):
                    print(f"need {r}, have {a}")
        """
        match _positive(amount):
            case Ok(amount):
                pass
            case Error(e):
                return Error(e)
        match await self._owner(wallet_id):
            case Ok(user_id):
                pass
            case Error(e):
                return Error(e)

        events: list[Event] = []
        async with self._locks.hold((WALLET, user_id)):
            async with write_session(self._session) as session:
                result = await append_debit(
                    session, wallet_id, amount, description, events=events, order_id=order_id
                )
                match result:
                    case Ok(entry):
                        transaction = to_transaction(entry)
                    case Error(e):
                        return Error(e)

        await publish_all(self._sink, events)
        return Ok(transaction)

    async def top_up(
        self, user_id: int, amount: Decimal, external_txn_id: str
    ) -> Result[TopUp, ValidationError | ExternalConfirmationError]:
        """
        Credit a gateway-confirmed top-up exactly once.

        Replaying a confirmation id already credited to this wallet returns
        the original entry with `replayed=True`.
        """
        match _positive(amount):
            case Ok(amount):
                pass
            case Error(e):
                return Error(e)
        match check_format(external_txn_id, self._settings.max_external_id_length):
            case Error(e):
                return Error(e)

        events: list[Event] = []
        async with self._locks.hold((WALLET, user_id)):
            try:
                async with write_session(self._session) as session:
                    wallet = await get_or_create_wallet(session, user_id)
                    match await self._replay(session, wallet.id, external_txn_id):
                        case Ok(None):
                            pass
                        case Ok(top_up):
                            return Ok(top_up)
                        case Error(e):
                            return Error(e)

                    if await is_used(session, external_txn_id):
                        return Error(ExternalConfirmationError(
                            f"confirmation id {external_txn_id!r} was already used"
                        ))

                    entry = await append_credit(
                        session, wallet.id, amount, TOP_UP_DESCRIPTION, LedgerMethod.PAYPAL,
                        events=events, external_reference=external_txn_id,
                    )
                    top_up = TopUp(
                        transaction=to_transaction(entry),
                        balance=await cached_balance(session, wallet.id),
                    )
            except IntegrityError:
                # Lost a race on the unique external reference
                logger.info("Concurrent top-up with confirmation %s", external_txn_id)
                async with self._session() as session:
                    wallet_id = await self._wallet_id(session, user_id)
                    replay = await self._replay(session, wallet_id, external_txn_id) if wallet_id else Ok(None)
                match replay:
                    case Ok(None):
                        return Error(ExternalConfirmationError(
                            f"confirmation id {external_txn_id!r} was already used"
                        ))
                    case Ok(top_up):
                        return Ok(top_up)
                    case Error(e):
                        return Error(e)

        await publish_all(self._sink, events)
        return Ok(top_up)

    async def _replay(
        self, session: AsyncSession, wallet_id: int, external_txn_id: str
    ) -> Result[TopUp | None, ExternalConfirmationError]:
        entry = (
            await session.execute(
                select(WalletTransactionTable).where(
                    WalletTransactionTable.external_reference == external_txn_id
                )
            )
        ).scalar_one_or_none()
        if entry is None:
            return Ok(None)
        if entry.wallet_id != wallet_id:
            return Error(ExternalConfirmationError(
                f"confirmation id {external_txn_id!r} was already used"
            ))
        logger.info("Top-up %s replayed for wallet %s", external_txn_id, wallet_id)
        return Ok(TopUp(
            transaction=to_transaction(entry),
            balance=await cached_balance(session, wallet_id),
            replayed=True,
        ))

    # ───────────────────────────────────────────────────────────────────────────
    # Queries
    # ───────────────────────────────────────────────────────────────────────────

    async def transactions(self, user_id: int, limit: int = 50) -> list[WalletTransaction]:
        """Newest first."""
        async with self._session() as session:
            rows = (
                await session.execute(
                    select(WalletTransactionTable)
                    .join(WalletTable, WalletTable.id == WalletTransactionTable.wallet_id)
                    .where(WalletTable.user_id == user_id)
                    .order_by(WalletTransactionTable.id.desc())
                    .limit(limit)
                )
            ).scalars().all()
        return [to_transaction(r) for r in rows]

    async def statistics(self, user_id: int) -> WalletStatistics:
        async with self._session() as session:
            wallet_id = await self._wallet_id(session, user_id)
            if wallet_id is None:
                return WalletStatistics(ZERO, ZERO, ZERO, 0, 0, 0)
            rows = (
                await session.execute(
                    select(
                        WalletTransactionTable.type,
                        func.count(),
                        func.sum(WalletTransactionTable.amount),
                    )
                    .where(WalletTransactionTable.wallet_id == wallet_id)
                    .group_by(WalletTransactionTable.type)
                )
            ).tuples().all()
            balance = await derived_balance(session, wallet_id)

        per_type = {t: (count, total) for t, count, total in rows}
        credit_count, credits = per_type.get(TransactionType.CREDIT.value, (0, ZERO))
        debit_count, debits = per_type.get(TransactionType.DEBIT.value, (0, ZERO))
        return WalletStatistics(
            current_balance=balance,
            total_credits=credits,
            total_debits=debits,
            total_transactions=credit_count + debit_count,
            credit_transactions=credit_count,
            debit_transactions=debit_count,
        )

    async def can_afford(self, user_id: int, amount: Decimal) -> bool:
        """Whether the wallet covers `amount` right now. Not a reservation."""
        return await self.balance(user_id) >= money(amount)

    async def overview(self) -> WalletOverview:
        """Admin totals across all wallets."""
        async with self._session() as session:
            wallets, total_balance = (
                await session.execute(select(func.count(), func.sum(WalletTable.balance)))
            ).one()
            rows = (
                await session.execute(
                    select(
                        WalletTransactionTable.type,
                        func.count(),
                        func.sum(WalletTransactionTable.amount),
                    ).group_by(WalletTransactionTable.type)
                )
            ).tuples().all()

        per_type = {t: (count, total) for t, count, total in rows}
        credit_count, credits = per_type.get(TransactionType.CREDIT.value, (0, ZERO))
        debit_count, debits = per_type.get(TransactionType.DEBIT.value, (0, ZERO))
        total_balance = total_balance if total_balance is not None else ZERO
        return WalletOverview(
            total_wallets=wallets,
            total_balance=total_balance,
            average_balance=money(total_balance / wallets) if wallets else ZERO,
            total_transactions=credit_count + debit_count,
            total_credits=credits,
            total_debits=debits,
        )

    async def usage_by_method(self) -> list[MethodUsage]:
        """Credit count and sum per ledger method, largest total first."""
        async with self._session() as session:
            rows = (
                await session.execute(
                    select(
                        WalletTransactionTable.payment_method,
                        func.count(),
                        func.sum(WalletTransactionTable.amount),
                    )
                    .where(WalletTransactionTable.type == TransactionType.CREDIT.value)
                    .group_by(WalletTransactionTable.payment_method)
                )
            ).tuples().all()
        usage = [MethodUsage(LedgerMethod(m), count, total) for m, count, total in rows]
        return sorted(usage, key=lambda u: (-u.total, u.method.value))

    async def reconcile(self, user_id: int) -> Result[Reconciliation, NotFoundError]:
        """Compare the cached balance with the sum of the log."""
        async with self._session() as session:
            wallet_id = await self._wallet_id(session, user_id)
            if wallet_id is None:
                return Error(NotFoundError("wallet", f"user:{user_id}"))
            report = Reconciliation(
                wallet_id=wallet_id,
                cached=await cached_balance(session, wallet_id),
                derived=await derived_balance(session, wallet_id),
            )
        if not report.consistent:
            logger.error(
                "Wallet %s out of balance: cached %s, ledger %s",
                wallet_id, report.cached, report.derived,
            )
        return Ok(report)


__all__ = (
    "WalletLedger",
    "get_or_create_wallet",
    "cached_balance",
    "derived_balance",
    "append_credit",
    "append_debit",
    "TOP_UP_DESCRIPTION",
)
