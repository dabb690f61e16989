"""
Wallet hold — the wallet portion of a split payment.

    hold = WalletHold(session, wallet_id, order_id, Decimal("40.00"), events)
    match await hold.settle(record_gateway_part):
        case Ok(payments):
            ...  # debit stays, payments recorded
        case Error(e):
            ...  # debit credited back, hold.reversal is the REFUND entry

The hold runs inside the settlement transaction. Its reversal is a ledger
credit that stays next to the debit it undoes, so the log shows both.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from inkwell._errors import InsufficientFundsError
from inkwell._types import Error, Ok, Result
from inkwell.db import WalletTransactionTable
from inkwell.events import Event
from inkwell.wallet import LedgerMethod, append_credit, append_debit

logger = logging.getLogger(__name__)

type Remainder[T, E] = Callable[[WalletTransactionTable], Awaitable[Result[T, E]]]
"""Rest of the payment, given the wallet debit it builds on."""


class CompensationFailed(RuntimeError):
    """A wallet debit could not be credited back; the transaction must roll back."""


@dataclass(slots=True)
class WalletHold:
    session: AsyncSession
    wallet_id: int
    order_id: int
    amount: Decimal
    events: list[Event] = field(repr=False)
    debit: WalletTransactionTable | None = None
    reversal: WalletTransactionTable | None = None

    async def take(self) -> Result[WalletTransactionTable, InsufficientFundsError]:
        """Debit the wallet portion without overdraft."""
        match await append_debit(
            self.session,
            self.wallet_id,
            self.amount,
            f"Hybrid payment for order #{self.order_id} (wallet portion)",
            events=self.events,
            order_id=self.order_id,
        ):
            case Ok(entry):
                self.debit = entry
                return Ok(entry)
            case Error(e):
                return Error(e)

    async def release(self) -> WalletTransactionTable:
        """Credit the debit back as a REFUND entry."""
        if self.debit is None:
            raise RuntimeError("nothing to release: the wallet debit was never taken")
        if self.reversal is not None:
            return self.reversal
        try:
            self.reversal = await append_credit(
                self.session,
                self.wallet_id,
                self.debit.amount,
                f"Reversal of wallet portion for order #{self.order_id}",
                LedgerMethod.REFUND,
                events=self.events,
                order_id=self.order_id,
            )
        except SQLAlchemyError as exc:
            raise CompensationFailed(
                f"wallet debit {self.debit.id} for order #{self.order_id} could not be reversed"
            ) from exc
        return self.reversal

    async def settle[T, E](
        self, remainder: Remainder[T, E]
    ) -> Result[T, InsufficientFundsError | E]:
        """
        Take the debit, then run `remainder`.

        A failed remainder releases the debit and returns its error. A failed
        release raises CompensationFailed.
        """
        match await self.take():
            case Ok(debit):
                pass
            case Error(e):
                return Error(e)

        match await remainder(debit):
            case Ok(value):
                return Ok(value)
            case Error(e):
                logger.info(
                    "Order %s: releasing wallet debit %s after %s", self.order_id, debit.id, e
                )
                await self.release()
                return Error(e)


__all__ = ("WalletHold", "Remainder", "CompensationFailed")
