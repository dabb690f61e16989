"""
Event types — what the core reports to audit/notification sinks.

Statuses and methods are carried as their string values so sinks can
serialize events without importing domain enums.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal


@dataclass(frozen=True, slots=True)
class OrderPlaced:
    order_id: int
    client_id: int
    price: Decimal
    at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True, slots=True)
class StatusChanged:
    order_id: int
    previous: str | None
    status: str
    actor_id: int | None
    notes: str | None
    at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True, slots=True)
class PriceOverridden:
    order_id: int
    old_price: Decimal
    new_price: Decimal
    actor_id: int
    reason: str | None
    at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True, slots=True)
class LedgerEntryAppended:
    wallet_id: int
    transaction_id: int
    type: str
    amount: Decimal
    method: str
    order_id: int | None
    at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True, slots=True)
class PaymentRecorded:
    payment_id: int
    order_id: int
    method: str
    amount: Decimal
    status: str
    at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True, slots=True)
class RefundIssued:
    order_id: int
    payment_id: int
    refund_payment_id: int
    amount: Decimal
    origin: str
    at: datetime = field(default_factory=datetime.now)


type Event = (
    OrderPlaced
    | StatusChanged
    | PriceOverridden
    | LedgerEntryAppended
    | PaymentRecorded
    | RefundIssued
)


__all__ = (
    "OrderPlaced",
    "StatusChanged",
    "PriceOverridden",
    "LedgerEntryAppended",
    "PaymentRecorded",
    "RefundIssued",
    "Event",
)
