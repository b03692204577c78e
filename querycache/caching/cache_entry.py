"""
Cache entry holding a deferred query value.
"""

import asyncio
from typing import Generic, TypeVar

T = TypeVar("T")

INVALIDATED = float("-inf")


class CacheEntry(Generic[T]):
    """A held future plus the time it was installed."""

    __slots__ = ("_value", "_created_at")

    def __init__(self, value: "asyncio.Future[T]", created_at: float):
        self._value = value
        self._created_at = created_at

    @property
    def value(self) -> "asyncio.Future[T]":
        return self._value

    @property
    def created_at(self) -> float:
        return self._created_at

    @property
    def invalidated(self) -> bool:
        return self._created_at == INVALIDATED

    def invalidate(self) -> None:
        """Mark the entry maximally stale; the held value stays until the next refresh."""
        self._created_at = INVALIDATED

    def state(self) -> str:
        """pending, fulfilled, rejected or cancelled."""
        if not self._value.done():
            return "pending"
        if self._value.cancelled():
            return "cancelled"
        return "rejected" if self._value.exception() is not None else "fulfilled"
