"""
Settlement — wallet, gateway and hybrid payments; refunds on cancellation.

    from inkwell import settlement as S

    match await settlement.pay_with_hybrid(order_id, Decimal("20.00"), "PAYPAL-7HF3"):
        case Ok(done):
            print(done.order.status, [p.amount for p in done.payments])
"""

from __future__ import annotations

from inkwell.settlement._types import (
    PaymentMethod,
    PaymentStatus,
    Origin,
    Payment,
    Settlement,
    Cancellation,
    PaymentOption,
    PaymentStatistics,
)
from inkwell.settlement._gateway import RefundReceipt, RefundGateway, request_refund, refund_key
from inkwell.settlement._hold import WalletHold, Remainder, CompensationFailed
from inkwell.settlement._protocol import PaymentSettlement, SettlementError

__all__ = (
    "PaymentMethod",
    "PaymentStatus",
    "Origin",
    "Payment",
    "Settlement",
    "Cancellation",
    "PaymentOption",
    "PaymentStatistics",
    "RefundReceipt",
    "RefundGateway",
    "request_refund",
    "refund_key",
    "WalletHold",
    "Remainder",
    "CompensationFailed",
    "PaymentSettlement",
    "SettlementError",
)
