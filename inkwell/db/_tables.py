"""
Database layer — SQLAlchemy tables.

Amounts and percentages live in Fixed2 columns: Decimal in Python, integer
hundredths in the database. No floating point reaches storage.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from inkwell._errors import AppendOnlyViolation
from inkwell._types import from_hundredths, to_hundredths


# ═══════════════════════════════════════════════════════════════════════════════
# Fixed2 — two-decimal fixed point stored as integer hundredths
# ═══════════════════════════════════════════════════════════════════════════════


class Fixed2(TypeDecorator[Decimal]):
    impl = Integer
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Dialect) -> int | None:
        if value is None:
            return None
        return to_hundredths(value)

    def process_result_value(self, value: Any, dialect: Dialect) -> Decimal | None:
        if value is None:
            return None
        return from_hundredths(int(value))


# ═══════════════════════════════════════════════════════════════════════════════
# Base
# ═══════════════════════════════════════════════════════════════════════════════


class Base(DeclarativeBase):
    pass


# ═══════════════════════════════════════════════════════════════════════════════
# Pricing Configuration
# ═══════════════════════════════════════════════════════════════════════════════


class AcademicLevelTable(Base):
    __tablename__ = "academic_levels"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    level: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    # Column of deadline_rates used for this level
    tier: Mapped[str] = mapped_column(String(20), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class DeadlineRateTable(Base):
    """Per-page rates: one row per deadline bucket, one column per tier."""

    __tablename__ = "deadline_rates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    hours: Mapped[int] = mapped_column(Integer, nullable=False)
    label: Mapped[str] = mapped_column(String(100), nullable=False)
    high_school: Mapped[Decimal] = mapped_column(Fixed2, nullable=False)
    under_graduate: Mapped[Decimal] = mapped_column(Fixed2, nullable=False)
    masters: Mapped[Decimal] = mapped_column(Fixed2, nullable=False)
    phd: Mapped[Decimal] = mapped_column(Fixed2, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class ServiceTypeTable(Base):
    __tablename__ = "service_types"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    inc_type: Mapped[str] = mapped_column(String(10), nullable=False, default="percent")
    amount: Mapped[Decimal] = mapped_column(Fixed2, nullable=False, default=Decimal("0"))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class LanguageTable(Base):
    __tablename__ = "languages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    label: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    inc_type: Mapped[str] = mapped_column(String(10), nullable=False, default="percent")
    amount: Mapped[Decimal] = mapped_column(Fixed2, nullable=False, default=Decimal("0"))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class PricingPresetTable(Base):
    __tablename__ = "pricing_presets"
    __table_args__ = (
        UniqueConstraint("academic_level", "service_type", "deadline_type"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(150), nullable=False)
    academic_level: Mapped[str] = mapped_column(String(50), nullable=False)
    service_type: Mapped[str] = mapped_column(String(50), nullable=False)
    deadline_type: Mapped[str] = mapped_column(String(50), nullable=False)
    base_price_per_page: Mapped[Decimal] = mapped_column(Fixed2, nullable=False)
    multiplier: Mapped[Decimal] = mapped_column(Fixed2, nullable=False, default=Decimal("1"))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


# ═══════════════════════════════════════════════════════════════════════════════
# Orders
# ═══════════════════════════════════════════════════════════════════════════════


class OrderTable(Base):
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    client_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    writer_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    academic_level_id: Mapped[int] = mapped_column(ForeignKey("academic_levels.id"), nullable=False)
    service_type_id: Mapped[int] = mapped_column(ForeignKey("service_types.id"), nullable=False)
    deadline_type_id: Mapped[int] = mapped_column(ForeignKey("deadline_rates.id"), nullable=False)
    language_id: Mapped[int] = mapped_column(ForeignKey("languages.id"), nullable=False)

    pages: Mapped[int] = mapped_column(Integer, nullable=False)
    words: Mapped[int] = mapped_column(Integer, nullable=False)
    spacing: Mapped[str] = mapped_column(String(10), nullable=False, default="double")
    price: Mapped[Decimal] = mapped_column(Fixed2, nullable=False)

    status: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    deadline_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    # Every flush is UPDATE ... WHERE version = :seen; a stale row raises StaleDataError
    __mapper_args__ = {"version_id_col": version}


class OrderStatusHistoryTable(Base):
    __tablename__ = "order_status_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id"), nullable=False, index=True)
    previous_status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    status: Mapped[str] = mapped_column(String(30), nullable=False)
    actor_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


# ═══════════════════════════════════════════════════════════════════════════════
# Wallets
# ═══════════════════════════════════════════════════════════════════════════════


class WalletTable(Base):
    """
    Wallet with a cached balance.

    The ledger is authoritative; `balance` serves the atomic conditional debit
    and is checked by WalletLedger.reconcile().
    """

    __tablename__ = "wallets"
    __table_args__ = (CheckConstraint("balance >= 0", name="ck_wallet_balance_non_negative"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    balance: Mapped[Decimal] = mapped_column(Fixed2, nullable=False, default=Decimal("0"))
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class WalletTransactionTable(Base):
    __tablename__ = "wallet_transactions"
    __table_args__ = (CheckConstraint("amount > 0", name="ck_wallet_tx_amount_positive"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    wallet_id: Mapped[int] = mapped_column(ForeignKey("wallets.id"), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(10), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Fixed2, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    order_id: Mapped[int | None] = mapped_column(ForeignKey("orders.id"), nullable=True)
    payment_method: Mapped[str] = mapped_column(String(10), nullable=False)
    status: Mapped[str] = mapped_column(String(10), nullable=False)
    # Gateway id of a top-up; unique so a confirmation is credited once
    external_reference: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


# ═══════════════════════════════════════════════════════════════════════════════
# Payments
# ═══════════════════════════════════════════════════════════════════════════════


class PaymentTable(Base):
    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id"), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Fixed2, nullable=False)
    payment_method: Mapped[str] = mapped_column(String(10), nullable=False)
    external_txn_id: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)
    status: Mapped[str] = mapped_column(String(10), nullable=False)
    refund_of_id: Mapped[int | None] = mapped_column(ForeignKey("payments.id"), nullable=True)
    # `metadata` is reserved on declarative classes
    details: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


# ═══════════════════════════════════════════════════════════════════════════════
# Append-only guards
# ═══════════════════════════════════════════════════════════════════════════════


def _forbid(operation: str):
    def listener(mapper: Any, connection: Any, target: Any) -> None:
        raise AppendOnlyViolation(
            f"{type(target).__tablename__} rows are append-only, {operation} refused"
        )

    return listener


for _table in (OrderStatusHistoryTable, WalletTransactionTable):
    event.listen(_table, "before_update", _forbid("update"))
    event.listen(_table, "before_delete", _forbid("delete"))


__all__ = (
    "Fixed2",
    "Base",
    "AcademicLevelTable",
    "DeadlineRateTable",
    "ServiceTypeTable",
    "LanguageTable",
    "PricingPresetTable",
    "OrderTable",
    "OrderStatusHistoryTable",
    "WalletTable",
    "WalletTransactionTable",
    "PaymentTable",
)
