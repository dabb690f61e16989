"""
Wallet — per-user prepaid balance over an append-only ledger.

    from inkwell import wallet as W

    wallet = await ledger.open(user_id)
    await ledger.top_up(user_id, Decimal("50.00"), "PAYPAL-9XK2")
"""

from __future__ import annotations

from inkwell.wallet._types import (
    TransactionType,
    LedgerMethod,
    TransactionStatus,
    Wallet,
    WalletTransaction,
    TopUp,
    Reconciliation,
    WalletStatistics,
    WalletOverview,
    MethodUsage,
)
from inkwell.wallet._ledger import (
    WalletLedger,
    get_or_create_wallet,
    cached_balance,
    derived_balance,
    append_credit,
    append_debit,
    TOP_UP_DESCRIPTION,
)

__all__ = (
    "TransactionType",
    "LedgerMethod",
    "TransactionStatus",
    "Wallet",
    "WalletTransaction",
    "TopUp",
    "Reconciliation",
    "WalletStatistics",
    "WalletOverview",
    "MethodUsage",
    "WalletLedger",
    "get_or_create_wallet",
    "cached_balance",
    "derived_balance",
    "append_credit",
    "append_debit",
    "TOP_UP_DESCRIPTION",
)
