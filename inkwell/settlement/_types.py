"""
Settlement types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from inkwell._types import ZERO
from inkwell.db import PaymentTable
from inkwell.orders import Order


class PaymentMethod(Enum):
    WALLET = "wallet"
    PAYPAL = "paypal"
    HYBRID = "hybrid"


class PaymentStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"


class Origin(Enum):
    """Where the funds of a payment came from; decides how they are refunded."""

    WALLET = "wallet"
    GATEWAY = "gateway"


@dataclass(frozen=True, slots=True)
class Payment:
    id: int
    order_id: int
    user_id: int
    amount: Decimal
    method: PaymentMethod
    status: PaymentStatus
    origin: Origin
    external_txn_id: str | None
    refund_of_id: int | None
    details: dict[str, Any]
    created_at: datetime

    @property
    def is_refund(self) -> bool:
        return self.refund_of_id is not None


@dataclass(frozen=True, slots=True)
class Settlement:
    """A paid order and the payments recorded for it."""

    order: Order
    payments: tuple[Payment, ...]

    @property
    def total(self) -> Decimal:
        return sum((p.amount for p in self.payments), ZERO)


@dataclass(frozen=True, slots=True)
class Cancellation:
    order: Order
    refunds: tuple[Payment, ...]

    @property
    def refunded(self) -> Decimal:
        return sum((r.amount for r in self.refunds), ZERO)


@dataclass(frozen=True, slots=True)
class PaymentOption:
    type: str  # wallet_full | hybrid | paypal_full
    label: str
    amount: Decimal
    wallet_amount: Decimal
    gateway_amount: Decimal


@dataclass(frozen=True, slots=True)
class PaymentStatistics:
    total_payments: int
    by_status: dict[PaymentStatus, int]
    total_revenue: Decimal
    total_refunds: Decimal
    by_method: dict[PaymentMethod, Decimal] = field(default_factory=dict)

    @property
    def net_revenue(self) -> Decimal:
        return self.total_revenue - self.total_refunds


def to_payment(row: PaymentTable) -> Payment:
    return Payment(
        id=row.id,
        order_id=row.order_id,
        user_id=row.user_id,
        amount=row.amount,
        method=PaymentMethod(row.payment_method),
        status=PaymentStatus(row.status),
        origin=Origin(row.details["origin"]),
        external_txn_id=row.external_txn_id,
        refund_of_id=row.refund_of_id,
        details=dict(row.details),
        created_at=row.created_at,
    )


__all__ = (
    "PaymentMethod",
    "PaymentStatus",
    "Origin",
    "Payment",
    "Settlement",
    "Cancellation",
    "PaymentOption",
    "PaymentStatistics",
    "to_payment",
)
