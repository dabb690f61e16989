from __future__ import annotations

from decimal import Decimal
from typing import Any

import pytest
from kungfu import Error, Ok, Result

from inkwell.settlement import RefundReceipt


def ok[T](result: Result[T, Any]) -> T:
    match result:
        case Ok(value):
            return value
        case Error(e):
            pytest.fail(f"expected Ok, got Error({e!r})")


def err[E](result: Result[Any, E]) -> E:
    match result:
        case Error(e):
            return e
        case Ok(value):
            pytest.fail(f"expected Error, got Ok({value!r})")


class FakeGateway:
    """
    Refund gateway double: records calls, fails for chosen confirmation ids.

    Refunds are idempotent per key like a real provider. Ids in `lost` are
    refunded but the response never arrives.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, Decimal]] = []
        self.keys: list[str] = []
        self.failing: set[str] = set()
        self.lost: set[str] = set()
        self.refunded: dict[str, RefundReceipt] = {}

    async def refund(self, external_txn_id: str, amount: Decimal, idempotency_key: str) -> RefundReceipt:
        self.calls.append((external_txn_id, amount))
        self.keys.append(idempotency_key)
        if external_txn_id in self.failing:
            raise ConnectionError("gateway unavailable")
        receipt = self.refunded.setdefault(
            idempotency_key, RefundReceipt(refund_id=f"RF-{external_txn_id}", amount=amount)
        )
        if external_txn_id in self.lost:
            self.lost.discard(external_txn_id)
            raise TimeoutError("response lost")
        return receipt
