"""
Wallet types.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

from inkwell.db import WalletTable, WalletTransactionTable


class TransactionType(Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class LedgerMethod(Enum):
    """Where the money of a ledger entry came from or went to."""

    WALLET = "wallet"
    PAYPAL = "paypal"
    HYBRID = "hybrid"
    REFUND = "refund"


class TransactionStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True, slots=True)
class Wallet:
    id: int
    user_id: int
    balance: Decimal
    created_at: datetime


@dataclass(frozen=True, slots=True)
class WalletTransaction:
    id: int
    wallet_id: int
    type: TransactionType
    amount: Decimal
    description: str
    order_id: int | None
    method: LedgerMethod
    status: TransactionStatus
    external_reference: str | None
    created_at: datetime


@dataclass(frozen=True, slots=True)
class TopUp:
    """Result of a top-up. `replayed` is set when the confirmation was already credited."""

    transaction: WalletTransaction
    balance: Decimal
    replayed: bool = False


@dataclass(frozen=True, slots=True)
class Reconciliation:
    wallet_id: int
    cached: Decimal
    derived: Decimal

    @property
    def consistent(self) -> bool:
        return self.cached == self.derived


@dataclass(frozen=True, slots=True)
class WalletStatistics:
    current_balance: Decimal
    total_credits: Decimal
    total_debits: Decimal
    total_transactions: int
    credit_transactions: int
    debit_transactions: int


@dataclass(frozen=True, slots=True)
class WalletOverview:
    """Totals across every wallet."""

    total_wallets: int
    total_balance: Decimal
    average_balance: Decimal
    total_transactions: int
    total_credits: Decimal
    total_debits: Decimal


@dataclass(frozen=True, slots=True)
class MethodUsage:
    """Credits that arrived through one method."""

    method: LedgerMethod
    count: int
    total: Decimal


def to_wallet(row: WalletTable) -> Wallet:
    return Wallet(id=row.id, user_id=row.user_id, balance=row.balance, created_at=row.created_at)


def to_transaction(row: WalletTransactionTable) -> WalletTransaction:
    return WalletTransaction(
        id=row.id,
        wallet_id=row.wallet_id,
        type=TransactionType(row.type),
        amount=row.amount,
        description=row.description,
        order_id=row.order_id,
        method=LedgerMethod(row.payment_method),
        status=TransactionStatus(row.status),
        external_reference=row.external_reference,
        created_at=row.created_at,
    )


__all__ = (
    "TransactionType",
    "LedgerMethod",
    "TransactionStatus",
    "Wallet",
    "WalletTransaction",
    "TopUp",
    "Reconciliation",
    "WalletStatistics",
    "WalletOverview",
    "MethodUsage",
    "to_wallet",
    "to_transaction",
)
