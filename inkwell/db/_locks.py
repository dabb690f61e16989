"""
Keyed locks — per-entity serialization inside one process.

Callers take locks before opening a database transaction and always in
order → wallet order, so two operations never wait on each other in reverse.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

ORDER = "order"
WALLET = "wallet"

_RANK = {ORDER: 0, WALLET: 1}


@dataclass
class _Entry:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    holders: int = 0


class KeyedLocks:
    """
    Lazily created asyncio locks keyed by (kind, id).

    Entries are dropped once nobody holds or waits for them.
    """

    def __init__(self) -> None:
        self._entries: dict[tuple[str, int], _Entry] = {}

    @asynccontextmanager
    async def hold(self, *keys: tuple[str, int]) -> AsyncIterator[None]:
        """Acquire all keys in canonical order, release in reverse."""
        ordered = sorted(set(keys), key=lambda k: (_RANK.get(k[0], 99), k[1]))
        acquired: list[tuple[str, int]] = []
        try:
            for key in ordered:
                entry = self._entries.setdefault(key, _Entry())
                entry.holders += 1
                try:
                    await entry.lock.acquire()
                except BaseException:
                    self._release_entry(key, locked=False)
                    raise
                acquired.append(key)
            yield
        finally:
            for key in reversed(acquired):
                self._release_entry(key, locked=True)

    def _release_entry(self, key: tuple[str, int], *, locked: bool) -> None:
        entry = self._entries[key]
        if locked:
            entry.lock.release()
        entry.holders -= 1
        if entry.holders == 0:
            del self._entries[key]

    def __len__(self) -> int:
        return len(self._entries)


__all__ = ("KeyedLocks", "ORDER", "WALLET")
