"""Rate limiter port definition (interface)."""

from __future__ import annotations

from typing import Protocol

from webclient.ports.cancellation import CancellationTokenPort

__all__ = ["LimitTokenPort", "LimitPort"]


class LimitTokenPort(Protocol):
    """Lease on limiter capacity.

    Exactly one of commit() or rollback() must be called per token.
    """

    def commit(self) -> None:
        """Mark the leased capacity as spent."""
        ...

    def rollback(self) -> None:
        """Return the leased capacity to the pool."""
        ...


class LimitPort(Protocol):
    """Interface of a shared or owned rate limiter."""

    async def accrue_token_lazy(
        self,
        weight: int,
        timeout_ms: int,
        cancellation: CancellationTokenPort | None = None,
    ) -> LimitTokenPort:
        """Wait for capacity and lease it.

        Args:
            weight: Capacity units requested.
            timeout_ms: Maximum wait before LimitTimeoutError.
            cancellation: Optional token aborting the wait.

        Returns:
            A token that must be committed or rolled back.
        """
        ...

    async def dispose(self) -> None:
        """Release the limiter and reject pending waiters."""
        ...
