"""Cancellation token port definition (interface)."""

from collections.abc import Callable
from typing import Protocol

__all__ = ["CancellationTokenPort"]


class CancellationTokenPort(Protocol):
    """Cooperative cancellation signal passed through every suspension point.

    Holders never cancel through this interface; only the owning source can.
    """

    @property
    def is_cancellation_requested(self) -> bool:
        """Return True once the owning source has been cancelled."""
        ...

    def add_cancel_listener(self, cb: Callable[[], None], /) -> None:
        """Register a callback invoked once on cancellation."""
        ...

    def remove_cancel_listener(self, cb: Callable[[], None], /) -> None:
        """Unregister a previously added callback."""
        ...

    def throw_if_cancellation_requested(self) -> None:
        """Raise OperationCancelledError if cancellation was requested."""
        ...
