"""
inkwell — order, pricing, wallet and payment core of an academic-writing marketplace.

    from inkwell import orders as O     # Status machine, order lifecycle
    from inkwell import pricing as P    # Rates, presets, estimates
    from inkwell import wallet as W     # Append-only wallet ledger
    from inkwell import settlement as S # Payments and refunds
"""

from inkwell import db
from inkwell import events
from inkwell import pricing
from inkwell import orders
from inkwell import wallet
from inkwell import settlement
from inkwell._config import Settings, configure_logging
from inkwell._core import Core, build_core
from inkwell._errors import (
    InkwellError,
    InvalidTransitionError,
    InsufficientFundsError,
    NotFoundError,
    ExternalConfirmationError,
    ValidationError,
    ConcurrentUpdateError,
    AppendOnlyViolation,
)
from inkwell._types import Result, Ok, Error, Money, money

__version__ = "0.1.0"

__all__ = (
    "db",
    "events",
    "pricing",
    "orders",
    "wallet",
    "settlement",
    "Settings",
    "configure_logging",
    "Core",
    "build_core",
    "InkwellError",
    "InvalidTransitionError",
    "InsufficientFundsError",
    "NotFoundError",
    "ExternalConfirmationError",
    "ValidationError",
    "ConcurrentUpdateError",
    "AppendOnlyViolation",
    "Result",
    "Ok",
    "Error",
    "Money",
    "money",
)
