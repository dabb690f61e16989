"""
Order types.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

from inkwell._errors import InkwellError
from inkwell.db import OrderStatusHistoryTable, OrderTable
from inkwell.orders._status import OrderStatus


class Spacing(Enum):
    SINGLE = "single"
    DOUBLE = "double"

    @property
    def words_per_page(self) -> int:
        return 500 if self is Spacing.SINGLE else 250


@dataclass(frozen=True, slots=True)
class Order:
    id: int
    title: str
    description: str
    client_id: int
    writer_id: int | None
    academic_level_id: int
    service_type_id: int
    deadline_type_id: int
    language_id: int
    pages: int
    words: int
    spacing: Spacing
    price: Decimal
    status: OrderStatus
    version: int
    admin_notes: str | None
    deadline_at: datetime | None
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    id: int
    order_id: int
    previous_status: OrderStatus | None
    status: OrderStatus
    actor_id: int | None
    notes: str | None
    created_at: datetime


@dataclass(frozen=True, slots=True)
class PlaceOrder:
    """
    Client request to place an order.

    The deadline is either a bucket id or a turnaround in hours, resolved to
    the active bucket that covers it.
    """

    client_id: int
    academic_level_id: int
    service_type_id: int
    language_id: int
    pages: int
    deadline_type_id: int | None = None
    deadline_hours: int | None = None
    title: str = "Writer's choice"
    description: str = ""
    spacing: Spacing = Spacing.DOUBLE
    deadline_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class BulkOutcome:
    order_id: int
    order: Order | None = None
    error: InkwellError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True, slots=True)
class BulkReport:
    """Per-order outcomes of a best-effort batch, in request order."""

    status: OrderStatus
    outcomes: tuple[BulkOutcome, ...]

    @property
    def updated(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)

    @property
    def failed(self) -> tuple[BulkOutcome, ...]:
        return tuple(o for o in self.outcomes if not o.ok)

    @property
    def message(self) -> str:
        text = f"Successfully updated {self.updated} orders."
        if self.failed:
            text += " Errors: " + "; ".join(f"Order #{o.order_id}: {o.error}" for o in self.failed)
        return text


@dataclass(frozen=True, slots=True)
class OrderStatistics:
    total_orders: int
    by_status: dict[OrderStatus, int]
    total_revenue: Decimal


# ═══════════════════════════════════════════════════════════════════════════════
# Row conversion
# ═══════════════════════════════════════════════════════════════════════════════


def to_order(row: OrderTable) -> Order:
    return Order(
        id=row.id,
        title=row.title,
        description=row.description,
        client_id=row.client_id,
        writer_id=row.writer_id,
        academic_level_id=row.academic_level_id,
        service_type_id=row.service_type_id,
        deadline_type_id=row.deadline_type_id,
        language_id=row.language_id,
        pages=row.pages,
        words=row.words,
        spacing=Spacing(row.spacing),
        price=row.price,
        status=OrderStatus(row.status),
        version=row.version,
        admin_notes=row.admin_notes,
        deadline_at=row.deadline_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def to_history_entry(row: OrderStatusHistoryTable) -> HistoryEntry:
    return HistoryEntry(
        id=row.id,
        order_id=row.order_id,
        previous_status=OrderStatus(row.previous_status) if row.previous_status else None,
        status=OrderStatus(row.status),
        actor_id=row.actor_id,
        notes=row.notes,
        created_at=row.created_at,
    )


__all__ = (
    "Spacing",
    "Order",
    "HistoryEntry",
    "PlaceOrder",
    "BulkOutcome",
    "BulkReport",
    "OrderStatistics",
    "to_order",
    "to_history_entry",
)
