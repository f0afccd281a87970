"""In-memory rate limiter with commit/rollback tokens."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Mapping
from typing import Any

from webclient.adapters.driven.config.settings import LimitSettings
from webclient.core.cancellation import run_cancellable
from webclient.ports.cancellation import CancellationTokenPort
from webclient.ports.errors import DisposedError, LimitTimeoutError

__all__ = ["InMemoryLimit", "InMemoryLimitToken", "limit_factory"]

logger = logging.getLogger(__name__)

WINDOWS_SEC = {"per_second": 1.0, "per_minute": 60.0, "per_hour": 3600.0}


class InMemoryLimitToken:
    """Lease on a weight of InMemoryLimit capacity."""

    def __init__(self, owner: InMemoryLimit, weight: int) -> None:
        self._owner = owner
        self.weight = weight
        self.finalized = False

    def commit(self) -> None:
        self._finalize()
        self._owner._release(self.weight, spent=True)

    def rollback(self) -> None:
        self._finalize()
        self._owner._release(self.weight, spent=False)

    def _finalize(self) -> None:
        if self.finalized:
            raise RuntimeError("Limit token was already committed or rolled back")
        self.finalized = True


class InMemoryLimit:
    """Sliding window limiter with a bound on outstanding tokens.

    Granted tokens count against every window while outstanding. commit()
    records their weight in the window history; rollback() releases it as if
    it was never granted.

    Both commit() and rollback() are synchronous and must be called from the
    event loop thread that runs accrue_token_lazy().
    """

    def __init__(self, settings: LimitSettings) -> None:
        """Initialize the limiter.

        Args:
            settings: Bounds to enforce.
        """
        self.settings = settings
        self._windows: list[tuple[float, int]] = [
            (size, bound)
            for name, size in WINDOWS_SEC.items()
            if (bound := getattr(settings, name)) is not None
        ]
        self._history: deque[tuple[float, int]] = deque()
        self._in_flight = 0
        self._changed = asyncio.Event()
        self._disposed = False

    @property
    def capacity(self) -> int:
        """Largest weight that can ever be granted."""
        bounds = [bound for _, bound in self._windows]
        if self.settings.parallel is not None:
            bounds.append(self.settings.parallel)
        return min(bounds)

    @property
    def in_flight(self) -> int:
        return self._in_flight

    async def accrue_token_lazy(
        self,
        weight: int,
        timeout_ms: int,
        cancellation: CancellationTokenPort | None = None,
    ) -> InMemoryLimitToken:
        """Wait until ``weight`` fits every bound and lease it.

        Args:
            weight: Capacity units requested.
            timeout_ms: Maximum wait in milliseconds.
            cancellation: Optional token aborting the wait.

        Returns:
            Token that must be committed or rolled back.

        Raises:
            ValueError: If weight is not positive or exceeds capacity.
            LimitTimeoutError: If not granted within ``timeout_ms``.
            OperationCancelledError: If ``cancellation`` fires while waiting.
            DisposedError: If the limit is or gets disposed.
        """
        if weight <= 0:
            raise ValueError("Limit weight must be positive")
        if weight > self.capacity:
            raise ValueError(f"Limit weight {weight} exceeds capacity {self.capacity}")

        deadline = time.monotonic() + timeout_ms / 1000
        while True:
            if self._disposed:
                raise DisposedError("Limit was disposed")
            if cancellation is not None:
                cancellation.throw_if_cancellation_requested()

            now = time.monotonic()
            retry_in = self._try_grant(weight, now)
            if retry_in is None:
                return InMemoryLimitToken(self, weight)

            remaining = deadline - now
            if remaining <= 0:
                raise LimitTimeoutError(f"Limit token of weight {weight} not granted within {timeout_ms}ms")

            changed = self._changed
            wait = remaining if retry_in == float("inf") else min(remaining, retry_in)
            try:
                await run_cancellable(asyncio.wait_for(changed.wait(), timeout=wait), cancellation)
            except TimeoutError:
                pass

    def _try_grant(self, weight: int, now: float) -> float | None:
        """Grant ``weight`` if it fits; else return seconds until a window frees up."""
        self._evict(now)

        parallel = self.settings.parallel
        if parallel is not None and self._in_flight + weight > parallel:
            # only a commit or rollback can free this bound
            return float("inf")

        retry_in: float | None = None
        for size, bound in self._windows:
            window_start = now - size
            used = sum(w for ts, w in self._history if ts > window_start)
            if used + self._in_flight + weight > bound:
                oldest = next(ts for ts, _ in self._history if ts > window_start) if used else now
                wait = max(oldest + size - now, 0.001)
                retry_in = wait if retry_in is None else max(retry_in, wait)
        if retry_in is not None:
            return retry_in

        self._in_flight += weight
        return None

    def _evict(self, now: float) -> None:
        if not self._windows:
            self._history.clear()
            return
        horizon = now - max(size for size, _ in self._windows)
        while self._history and self._history[0][0] <= horizon:
            self._history.popleft()

    def _release(self, weight: int, spent: bool) -> None:
        self._in_flight -= weight
        if spent and self._windows:
            self._history.append((time.monotonic(), weight))
        self._notify()

    def _notify(self) -> None:
        self._changed.set()
        self._changed = asyncio.Event()

    async def dispose(self) -> None:
        """Reject current and future waiters (idempotent)."""
        if self._disposed:
            return
        self._disposed = True
        logger.debug(f"Limit disposed with {self._in_flight} in-flight weight")
        self._notify()


def limit_factory(settings: LimitSettings | Mapping[str, Any]) -> InMemoryLimit:
    """Build an InMemoryLimit from settings or a plain mapping.

    Args:
        settings: LimitSettings or a mapping validated into one.

    Returns:
        New limiter owned by the caller.
    """
    if not isinstance(settings, LimitSettings):
        settings = LimitSettings.model_validate(dict(settings))
    return InMemoryLimit(settings)
