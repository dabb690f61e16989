"""
Refund gateway — the one outbound call the core makes.

Implementations wrap the real payment provider. Exceptions and timeouts are
lifted into ExternalConfirmationError; a receipt for the wrong amount is a
failed refund too.

Every refund carries an idempotency key derived from the payment it reverses,
so a retry after a lost response or a failed commit cannot refund twice.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from combinators import lift as L

from inkwell._confirmation import check_format
from inkwell._errors import ExternalConfirmationError
from inkwell._types import Error, Ok, Result

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RefundReceipt:
    refund_id: str
    amount: Decimal


class RefundGateway(Protocol):
    """
    Gateway protocol.

    Example:
        class PayPalRefunds:
            async def refund(
                self, external_txn_id: str, amount: Decimal, idempotency_key: str
            ) -> RefundReceipt:
                body = await client.post(
                    f"/v2/payments/captures/{external_txn_id}/refund",
                    headers={"PayPal-Request-Id": idempotency_key},
                    ...
                )
                return RefundReceipt(refund_id=body["id"], amount=Decimal(body["amount"]["value"]))
    """

    async def refund(
        self, external_txn_id: str, amount: Decimal, idempotency_key: str
    ) -> RefundReceipt: ...


async def request_refund(
    gateway: RefundGateway | None,
    external_txn_id: str,
    amount: Decimal,
    *,
    idempotency_key: str,
    timeout: float,
    max_id_length: int,
) -> Result[RefundReceipt, ExternalConfirmationError]:
    """Refund through the gateway and check the receipt."""
    if gateway is None:
        return Error(ExternalConfirmationError("no refund gateway configured"))

    async def call() -> RefundReceipt:
        async with asyncio.timeout(timeout):
            return await gateway.refund(external_txn_id, amount, idempotency_key)

    result = await L.catching_async(
        call,
        on_error=lambda e: ExternalConfirmationError(
            f"refund of {external_txn_id} failed: {type(e).__name__}: {e}"
        ),
    )
    match result:
        case Ok(receipt):
            pass
        case Error(e):
            logger.warning("Gateway refund of %s for %s failed: %s", external_txn_id, amount, e)
            return Error(e)

    if receipt.amount != amount:
        return Error(ExternalConfirmationError(
            f"refund of {external_txn_id} confirmed {receipt.amount}, expected {amount}"
        ))
    match check_format(receipt.refund_id, max_id_length):
        case Error(e):
            return Error(ExternalConfirmationError(f"refund of {external_txn_id}: {e.reason}"))

    logger.info("Gateway refunded %s of %s as %s", amount, external_txn_id, receipt.refund_id)
    return Ok(receipt)


def refund_key(payment_id: int) -> str:
    """Idempotency key for refunding payment `payment_id`."""
    return f"refund-{payment_id}"


__all__ = ("RefundReceipt", "RefundGateway", "request_refund", "refund_key")
