"""
Gateway confirmation ids — structural checks shared by top-ups and payments.

The core never calls the gateway to verify a confirmation: callers pass the
id they received and the core only checks its shape and that it was never
used before, by any payment or any wallet top-up.
"""

from __future__ import annotations

import re

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from inkwell._errors import ExternalConfirmationError
from inkwell._types import Error, Ok, Result
from inkwell.db import PaymentTable, WalletTransactionTable

CONFIRMATION_ID = re.compile(r"[A-Za-z0-9_.:-]+")


def check_format(external_txn_id: str | None, max_length: int) -> Result[str, ExternalConfirmationError]:
    if not external_txn_id or not external_txn_id.strip():
        return Error(ExternalConfirmationError("confirmation id is missing"))
    if len(external_txn_id) > max_length:
        return Error(ExternalConfirmationError(f"confirmation id longer than {max_length} characters"))
    if not CONFIRMATION_ID.fullmatch(external_txn_id):
        return Error(ExternalConfirmationError("confirmation id contains invalid characters"))
    return Ok(external_txn_id)


async def is_used(session: AsyncSession, external_txn_id: str) -> bool:
    payment = (
        await session.execute(
            select(PaymentTable.id).where(PaymentTable.external_txn_id == external_txn_id)
        )
    ).first()
    if payment is not None:
        return True
    top_up = (
        await session.execute(
            select(WalletTransactionTable.id).where(
                WalletTransactionTable.external_reference == external_txn_id
            )
        )
    ).first()
    return top_up is not None


async def check_unused(
    session: AsyncSession, external_txn_id: str | None, max_length: int
) -> Result[str, ExternalConfirmationError]:
    """Well-formed and never seen before."""
    match check_format(external_txn_id, max_length):
        case Ok(txn_id):
            pass
        case Error(e):
            return Error(e)
    if await is_used(session, txn_id):
        return Error(ExternalConfirmationError(f"confirmation id {txn_id!r} was already used"))
    return Ok(txn_id)


__all__ = ("CONFIRMATION_ID", "check_format", "is_used", "check_unused")
