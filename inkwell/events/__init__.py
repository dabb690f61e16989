"""
Events — transition and payment notifications for audit/notification sinks.

    from inkwell import events as EV

    sink = EV.MemorySink()
    core = await build_core(settings, sink=sink)
"""

from __future__ import annotations

from inkwell.events._types import (
    OrderPlaced,
    StatusChanged,
    PriceOverridden,
    LedgerEntryAppended,
    PaymentRecorded,
    RefundIssued,
    Event,
)
from inkwell.events._sinks import EventSink, MemorySink, LoggingSink, publish_all

__all__ = (
    "OrderPlaced",
    "StatusChanged",
    "PriceOverridden",
    "LedgerEntryAppended",
    "PaymentRecorded",
    "RefundIssued",
    "Event",
    "EventSink",
    "MemorySink",
    "LoggingSink",
    "publish_all",
)
