"""Caller-supplied cancellation scopes.

All work in zen-assets is synchronous. Long running calls accept a
``CancelScope`` and check it at every I/O boundary, so a caller on another
thread can abort them, and a deadline can bound them.
"""

from __future__ import annotations

import threading
import time
from typing import Callable

from zen_assets.errors import OperationCancelled


class CancelScope:
    """A cancellable scope with an optional deadline.

    Args:
        timeout: Seconds until the scope expires. ``None`` means no deadline.
        parent: Optional enclosing scope. Cancelling the parent cancels
            this scope, and the effective deadline is the earlier of both.
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        timeout: float | None = None,
        *,
        parent: CancelScope | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self._event = threading.Event()
        self._parent = parent
        self._reason = "operation cancelled"
        deadline = clock() + timeout if timeout is not None else None
        if parent is not None and parent.deadline is not None:
            deadline = parent.deadline if deadline is None else min(deadline, parent.deadline)
        self.deadline = deadline

    def cancel(self, reason: str = "operation cancelled") -> None:
        self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._parent is not None and self._parent.cancelled:
            return True
        return self.deadline is not None and self._clock() >= self.deadline

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or ``None`` when unbounded."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - self._clock())

    def check(self) -> None:
        """Raise ``OperationCancelled`` if the scope is no longer live."""
        if not self.cancelled:
            return
        if self._event.is_set():
            raise OperationCancelled(self._reason)
        if self._parent is not None and self._parent.cancelled:
            self._parent.check()
        raise OperationCancelled("operation timed out", details={"deadline_exceeded": True})

    def child(self, timeout: float | None = None) -> CancelScope:
        """Derive a scope that ends no later than this one."""
        return CancelScope(timeout, parent=self, clock=self._clock)


def check_scope(scope: CancelScope | None) -> None:
    if scope is not None:
        scope.check()


def scope_timeout(scope: CancelScope | None, default: float) -> float:
    """Timeout to hand to a blocking call running inside ``scope``."""
    if scope is None:
        return default
    remaining = scope.remaining()
    if remaining is None:
        return default
    return min(default, remaining)
