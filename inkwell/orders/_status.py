"""
Order status — enumerated states and the transition table.

    WAITING_FOR_PAYMENT → WRITER_PENDING → IN_PROGRESS → REVIEW → APPROVAL
                                                          ↑   ↓
                                                       IN_REVISION
    any non-terminal    → CANCELLED

Self-loops are always allowed. APPROVAL and CANCELLED only self-loop.
"""

from __future__ import annotations

from enum import Enum


class OrderStatus(Enum):
    WAITING_FOR_PAYMENT = "waiting_for_payment"
    WRITER_PENDING = "writer_pending"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    APPROVAL = "approval"
    CANCELLED = "cancelled"
    IN_REVISION = "in_revision"

    @property
    def label(self) -> str:
        return _LABELS[self][0]

    @property
    def short_label(self) -> str:
        return _LABELS[self][1]

    @property
    def color_class(self) -> str:
        return _LABELS[self][2]

    @property
    def progress_stage(self) -> int:
        """0..4 along the happy path, -1 for states off the progress bar."""
        return _LABELS[self][3]

    @property
    def is_active(self) -> bool:
        return self in _ACTIVE

    @property
    def is_completed(self) -> bool:
        return self is OrderStatus.APPROVAL

    @property
    def requires_payment(self) -> bool:
        return self is OrderStatus.WAITING_FOR_PAYMENT

    def can_transition_to(self, new_status: OrderStatus) -> bool:
        return can_transition(self, new_status)

    def valid_next_statuses(self) -> tuple[OrderStatus, ...]:
        """Reachable statuses, excluding the self-loop."""
        return tuple(s for s in OrderStatus if s is not self and can_transition(self, s))


# ═══════════════════════════════════════════════════════════════════════════════
# Per-variant data
# ═══════════════════════════════════════════════════════════════════════════════

_LABELS: dict[OrderStatus, tuple[str, str, str, int]] = {
    OrderStatus.WAITING_FOR_PAYMENT: ("Waiting for Payment", "Payment", "bg-yellow-100 text-yellow-800", 0),
    OrderStatus.WRITER_PENDING: ("Writer Pending", "Writer", "bg-blue-100 text-blue-800", 1),
    OrderStatus.IN_PROGRESS: ("In Progress", "Progress", "bg-orange-100 text-orange-800", 2),
    OrderStatus.REVIEW: ("Review", "Review", "bg-purple-100 text-purple-800", 3),
    OrderStatus.APPROVAL: ("Approval", "Approval", "bg-green-100 text-green-800", 4),
    OrderStatus.CANCELLED: ("Cancelled", "Cancelled", "bg-red-100 text-red-800", -1),
    OrderStatus.IN_REVISION: ("In Revision", "Revision", "bg-yellow-100 text-yellow-800", -1),
}

_ACTIVE = frozenset({
    OrderStatus.WRITER_PENDING,
    OrderStatus.IN_PROGRESS,
    OrderStatus.REVIEW,
    OrderStatus.APPROVAL,
    OrderStatus.IN_REVISION,
})

# ═══════════════════════════════════════════════════════════════════════════════
# Transition table
# ═══════════════════════════════════════════════════════════════════════════════

TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.WAITING_FOR_PAYMENT: frozenset({OrderStatus.WRITER_PENDING, OrderStatus.CANCELLED}),
    OrderStatus.WRITER_PENDING: frozenset({OrderStatus.IN_PROGRESS, OrderStatus.CANCELLED}),
    OrderStatus.IN_PROGRESS: frozenset({OrderStatus.REVIEW, OrderStatus.CANCELLED}),
    OrderStatus.REVIEW: frozenset({OrderStatus.APPROVAL, OrderStatus.IN_REVISION, OrderStatus.CANCELLED}),
    OrderStatus.APPROVAL: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.IN_REVISION: frozenset({OrderStatus.REVIEW, OrderStatus.CANCELLED}),
}

# Statuses from which an order may still be cancelled with a refund
CANCELLABLE = frozenset(s for s in OrderStatus if OrderStatus.CANCELLED in TRANSITIONS[s])


def can_transition(current: OrderStatus, new_status: OrderStatus) -> bool:
    """Pure lookup: is `new_status` reachable from `current`?"""
    return new_status is current or new_status in TRANSITIONS[current]


__all__ = ("OrderStatus", "TRANSITIONS", "CANCELLABLE", "can_transition")
