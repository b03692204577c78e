"""
Cancellation tokens threaded through query compute functions.
"""

import asyncio
import threading
from typing import Any, Callable, List, Optional

from ..shared.errors import QueryCancelledError
from ..shared.logging import get_logger


class CancellationToken:
    """
    One-shot cancellation signal.

    The cache only forwards the token to compute; reacting to it is up to the
    compute function (check `cancelled`, call `raise_if_cancelled`, or race
    `wait()` against its own work).
    """

    def __init__(self, name: str = "query"):
        self.name = name
        self.logger = get_logger("querycache.cancellation")
        self._cancelled = False
        self._reason: Optional[Any] = None
        self._callbacks: List[Callable[["CancellationToken"], None]] = []
        self._waiters: List[asyncio.Future] = []
        self._lock = threading.Lock()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> Optional[Any]:
        return self._reason

    def cancel(self, reason: Optional[Any] = None) -> bool:
        """Cancel the token. Returns False when it was already cancelled."""
        with self._lock:
            if self._cancelled:
                return False
            self._cancelled = True
            self._reason = reason
            callbacks, self._callbacks = self._callbacks, []
            waiters, self._waiters = self._waiters, []

        self.logger.debug("Cancellation requested", token=self.name, reason=str(reason) if reason else None)

        for waiter in waiters:
            if not waiter.done():
                waiter.get_loop().call_soon_threadsafe(_resolve_waiter, waiter)
        for callback in callbacks:
            callback(self)
        return True

    def add_callback(self, callback: Callable[["CancellationToken"], None]) -> None:
        """Run callback on cancellation, immediately if already cancelled."""
        with self._lock:
            if not self._cancelled:
                self._callbacks.append(callback)
                return
        callback(self)

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise QueryCancelledError(
                f"Query '{self.name}' was cancelled",
                details={"reason": str(self._reason) if self._reason is not None else None},
            )

    async def wait(self) -> None:
        """Wait until the token is cancelled."""
        with self._lock:
            if self._cancelled:
                return
            waiter = asyncio.get_running_loop().create_future()
            self._waiters.append(waiter)
        await waiter

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else "active"
        return f"CancellationToken(name={self.name!r}, state={state})"


def _resolve_waiter(waiter: asyncio.Future) -> None:
    if not waiter.done():
        waiter.set_result(None)
