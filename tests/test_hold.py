from __future__ import annotations

from collections.abc import Awaitable, Callable
from decimal import Decimal

import pytest
from kungfu import Error, Ok
from sqlalchemy.exc import OperationalError

from _helpers import err, ok
from conftest import CLIENT, PlaceFn
from inkwell import Core, ExternalConfirmationError, InsufficientFundsError
from inkwell.db import WalletTransactionTable, write_session
from inkwell.events import Event
from inkwell.settlement import CompensationFailed, WalletHold
from inkwell.settlement import _hold
from inkwell.wallet import LedgerMethod, TransactionType, get_or_create_wallet

FundFn = Callable[..., Awaitable[None]]


async def test_successful_remainder_keeps_the_debit(core: Core, place: PlaceFn, fund: FundFn) -> None:
    order = await place(price="100.00")
    await fund("50.00")
    events: list[Event] = []

    async def remainder(debit: WalletTransactionTable):
        return Ok(f"paid:{debit.amount}")

    async with write_session(core.session_factory) as session:
        wallet = await get_or_create_wallet(session, CLIENT)
        hold = WalletHold(session, wallet.id, order.id, Decimal("40.00"), events)
        assert ok(await hold.settle(remainder)) == "paid:40.00"
        assert hold.reversal is None

    assert await core.wallet.balance(CLIENT) == Decimal("10.00")
    [debit, _top_up] = await core.wallet.transactions(CLIENT)
    assert (debit.type, debit.order_id) == (TransactionType.DEBIT, order.id)


async def test_failed_remainder_credits_the_debit_back(core: Core, place: PlaceFn, fund: FundFn) -> None:
    order = await place(price="100.00")
    await fund("50.00")
    events: list[Event] = []
    seen: list[int] = []

    async def remainder(debit: WalletTransactionTable):
        seen.append(debit.id)
        return Error(ExternalConfirmationError("capture declined"))

    async with write_session(core.session_factory) as session:
        wallet = await get_or_create_wallet(session, CLIENT)
        hold = WalletHold(session, wallet.id, order.id, Decimal("40.00"), events)
        e = err(await hold.settle(remainder))
        assert isinstance(e, ExternalConfirmationError)
        assert hold.debit is not None and seen == [hold.debit.id]
        assert hold.reversal is not None

    assert await core.wallet.balance(CLIENT) == Decimal("50.00")
    reversal, debit, _top_up = await core.wallet.transactions(CLIENT)
    assert (debit.type, debit.amount) == (TransactionType.DEBIT, Decimal("40.00"))
    assert (reversal.type, reversal.method, reversal.amount) == (
        TransactionType.CREDIT, LedgerMethod.REFUND, Decimal("40.00")
    )
    assert reversal.description == f"Reversal of wallet portion for order #{order.id}"


async def test_insufficient_funds_skip_the_remainder(core: Core, place: PlaceFn, fund: FundFn) -> None:
    order = await place(price="100.00")
    await fund("10.00")
    reached: list[WalletTransactionTable] = []

    async def remainder(debit: WalletTransactionTable):
        reached.append(debit)
        return Ok(None)

    async with write_session(core.session_factory) as session:
        wallet = await get_or_create_wallet(session, CLIENT)
        hold = WalletHold(session, wallet.id, order.id, Decimal("40.00"), [])
        e = err(await hold.settle(remainder))

    assert isinstance(e, InsufficientFundsError)
    assert reached == []
    assert hold.debit is None
    assert await core.wallet.balance(CLIENT) == Decimal("10.00")


async def test_failed_release_rolls_everything_back(
    core: Core, place: PlaceFn, fund: FundFn, monkeypatch: pytest.MonkeyPatch
) -> None:
    order = await place(price="100.00")
    await fund("50.00")

    async def broken_credit(*args, **kwargs):
        raise OperationalError("UPDATE wallets", {}, Exception("disk I/O error"))

    async def remainder(debit: WalletTransactionTable):
        return Error(ExternalConfirmationError("capture declined"))

    monkeypatch.setattr(_hold, "append_credit", broken_credit)
    with pytest.raises(CompensationFailed):
        async with write_session(core.session_factory) as session:
            wallet = await get_or_create_wallet(session, CLIENT)
            await WalletHold(session, wallet.id, order.id, Decimal("40.00"), []).settle(remainder)

    assert await core.wallet.balance(CLIENT) == Decimal("50.00")
    assert len(await core.wallet.transactions(CLIENT)) == 1


async def test_release_without_debit_is_a_programming_error(core: Core, place: PlaceFn) -> None:
    order = await place()
    async with core.session_factory() as session:
        hold = WalletHold(session, 1, order.id, Decimal("1.00"), [])
        with pytest.raises(RuntimeError):
            await hold.release()
