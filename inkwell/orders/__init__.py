"""
Orders — status state machine, history and order lifecycle.

    from inkwell import orders as O

    O.can_transition(O.OrderStatus.REVIEW, O.OrderStatus.IN_REVISION)   # True
    await machine.transition(order_id, O.OrderStatus.REVIEW, admin_id)
"""

from __future__ import annotations

from inkwell.orders._status import OrderStatus, TRANSITIONS, CANCELLABLE, can_transition
from inkwell.orders._types import (
    Spacing,
    Order,
    HistoryEntry,
    PlaceOrder,
    BulkOutcome,
    BulkReport,
    OrderStatistics,
)
from inkwell.orders._machine import (
    StatusMachine,
    TransitionContext,
    EnterHook,
    TransitionError,
    load_for_update,
    append_history,
)
from inkwell.orders._service import OrderService, PLACED_NOTE

__all__ = (
    "OrderStatus",
    "TRANSITIONS",
    "CANCELLABLE",
    "can_transition",
    "Spacing",
    "Order",
    "HistoryEntry",
    "PlaceOrder",
    "BulkOutcome",
    "BulkReport",
    "OrderStatistics",
    "StatusMachine",
    "TransitionContext",
    "EnterHook",
    "TransitionError",
    "load_for_update",
    "append_history",
    "OrderService",
    "PLACED_NOTE",
)
