"""
Persistence — SQLAlchemy tables, sessions, keyed locks.

    from inkwell import db

    session_factory, engine = await db.create_database(settings)
"""

from __future__ import annotations

from inkwell.db._tables import (
    Fixed2,
    Base,
    AcademicLevelTable,
    DeadlineRateTable,
    ServiceTypeTable,
    LanguageTable,
    PricingPresetTable,
    OrderTable,
    OrderStatusHistoryTable,
    WalletTable,
    WalletTransactionTable,
    PaymentTable,
)
from inkwell.db._session import IMMEDIATE, create_database, write_session
from inkwell.db._locks import KeyedLocks, ORDER, WALLET

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
    "create_database",
    "write_session",
    "IMMEDIATE",
    "KeyedLocks",
    "ORDER",
    "WALLET",
)
