"""Transition table: exhaustive over every (from, to) pair."""

from __future__ import annotations

import pytest

from inkwell.orders import CANCELLABLE, OrderStatus, can_transition

S = OrderStatus

ALLOWED = {
    S.WAITING_FOR_PAYMENT: {S.WRITER_PENDING, S.CANCELLED},
    S.WRITER_PENDING: {S.IN_PROGRESS, S.CANCELLED},
    S.IN_PROGRESS: {S.REVIEW, S.CANCELLED},
    S.REVIEW: {S.APPROVAL, S.IN_REVISION, S.CANCELLED},
    S.APPROVAL: set(),
    S.CANCELLED: set(),
    S.IN_REVISION: {S.REVIEW, S.CANCELLED},
}


@pytest.mark.parametrize("current", list(OrderStatus), ids=lambda s: s.value)
@pytest.mark.parametrize("requested", list(OrderStatus), ids=lambda s: s.value)
def test_can_transition_matches_table(current: OrderStatus, requested: OrderStatus) -> None:
    expected = requested is current or requested in ALLOWED[current]
    assert can_transition(current, requested) is expected
    assert current.can_transition_to(requested) is expected


def test_valid_next_statuses_excludes_self_loop() -> None:
    assert set(S.REVIEW.valid_next_statuses()) == {S.APPROVAL, S.IN_REVISION, S.CANCELLED}
    assert S.APPROVAL.valid_next_statuses() == ()
    assert S.CANCELLED.valid_next_statuses() == ()


def test_cancellable_statuses() -> None:
    assert CANCELLABLE == frozenset(OrderStatus) - {S.APPROVAL, S.CANCELLED}


def test_variant_data() -> None:
    assert S.WAITING_FOR_PAYMENT.label == "Waiting for Payment"
    assert S.WAITING_FOR_PAYMENT.requires_payment
    assert not S.WRITER_PENDING.requires_payment
    assert S.APPROVAL.is_completed
    assert S.IN_PROGRESS.is_active
    assert not S.CANCELLED.is_active
    assert [s.progress_stage for s in (S.WAITING_FOR_PAYMENT, S.REVIEW, S.APPROVAL)] == [0, 3, 4]
    assert S.CANCELLED.progress_stage == -1
