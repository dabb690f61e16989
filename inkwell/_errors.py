"""
Error taxonomy.

Every error is a frozen dataclass deriving from InkwellError and travels inside
kungfu.Error. Each exposes a stable `kind` and a human-readable `message`.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, ClassVar

if TYPE_CHECKING:
    from inkwell.orders._status import OrderStatus


class InkwellError(Exception):
    """Base class for recoverable domain errors."""

    kind: ClassVar[str] = "error"

    @property
    def message(self) -> str:
        return str(self)


# ═══════════════════════════════════════════════════════════════════════════════
# Domain Errors
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class InvalidTransitionError(InkwellError):
    """Requested status change is not reachable from the current status."""

    kind: ClassVar[str] = "invalid_transition"

    current: OrderStatus
    requested: OrderStatus
    reason: str | None = None

    def __str__(self) -> str:
        text = f"Cannot transition from {self.current.value} to {self.requested.value}"
        return f"{text}: {self.reason}" if self.reason else text


@dataclass(frozen=True, slots=True)
class InsufficientFundsError(InkwellError):
    kind: ClassVar[str] = "insufficient_funds"

    required: Decimal
    available: Decimal

    def __str__(self) -> str:
        return f"Insufficient wallet balance: required {self.required}, available {self.available}"


@dataclass(frozen=True, slots=True)
class NotFoundError(InkwellError):
    kind: ClassVar[str] = "not_found"

    entity: str
    id: int | str

    def __str__(self) -> str:
        return f"{self.entity}:{self.id} not found"


@dataclass(frozen=True, slots=True)
class ExternalConfirmationError(InkwellError):
    """Gateway confirmation or refund is absent, malformed or failed."""

    kind: ClassVar[str] = "external_confirmation"

    reason: str

    def __str__(self) -> str:
        return f"External confirmation failed: {self.reason}"


@dataclass(frozen=True, slots=True)
class ValidationError(InkwellError):
    kind: ClassVar[str] = "validation"

    field: str
    reason: str

    def __str__(self) -> str:
        return f"Invalid {self.field}: {self.reason}"


@dataclass(frozen=True, slots=True)
class ConcurrentUpdateError(InkwellError):
    """Optimistic version check lost against a concurrent writer."""

    kind: ClassVar[str] = "concurrent_update"

    entity: str
    id: int

    def __str__(self) -> str:
        return f"{self.entity}:{self.id} was modified concurrently, retry"


# ═══════════════════════════════════════════════════════════════════════════════
# Programming Errors
# ═══════════════════════════════════════════════════════════════════════════════


class AppendOnlyViolation(RuntimeError):
    """Raised when code tries to mutate an append-only log row."""


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "InkwellError",
    "InvalidTransitionError",
    "InsufficientFundsError",
    "NotFoundError",
    "ExternalConfirmationError",
    "ValidationError",
    "ConcurrentUpdateError",
    "AppendOnlyViolation",
)
