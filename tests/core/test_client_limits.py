"""Scenario tests for WebClient with an owned in-memory limiter."""

import asyncio

import pytest
from multidict import CIMultiDict

from webclient.adapters.driven.config.settings import LimitSettings
from webclient.core.cancellation import DUMMY_CANCELLATION_TOKEN, ManualCancellationTokenSource
from webclient.core.client import WebClient
from webclient.ports.errors import CommunicationError, LimitTimeoutError, OperationCancelledError
from webclient.ports.settings import LimitOpts
from webclient.ports.transport import TransportRequest, TransportResponse

__all__ = []

LIMIT = LimitSettings(parallel=2, per_second=2, per_minute=4, per_hour=50)


class QuickTransport:
    """Transport replying after a short delay."""

    def __init__(self, delay_sec: float = 0.01) -> None:
        self.delay_sec = delay_sec
        self.calls = 0

    async def invoke(self, cancellation, request: TransportRequest) -> TransportResponse:
        """Reply 200 with an empty JSON object."""
        self.calls += 1
        await asyncio.sleep(self.delay_sec)
        return TransportResponse(200, "OK", CIMultiDict(), b"{}")


def spawn(client: WebClient, token, n: int, completed: list, errors: list) -> list[asyncio.Task]:
    """Start n GET calls recording outcomes.

    Returns:
        Started tasks.
    """

    async def one() -> None:
        try:
            await client.get(token, "a")
            completed.append(1)
        except Exception as e:  # noqa: BLE001
            errors.append(e)

    return [asyncio.create_task(one()) for _ in range(n)]


@pytest.mark.asyncio
async def test_limit_grants_capacity_then_times_out() -> None:
    """Only the window capacity should complete; the rest should time out."""
    completed: list = []
    errors: list = []
    client = WebClient(
        "http://echo.test", transport=QuickTransport(), limit=LimitOpts(instance=LIMIT, timeout_ms=3000)
    )
    try:
        tasks = spawn(client, DUMMY_CANCELLATION_TOKEN, 10, completed, errors)
        await asyncio.sleep(2.5)
        assert len(completed) + len(errors) == 4
        await asyncio.gather(*tasks)
    finally:
        await client.dispose()

    assert len(completed) == 4
    assert len(errors) == 6
    assert all(isinstance(e, LimitTimeoutError) for e in errors)


@pytest.mark.asyncio
async def test_cancel_stops_all_waiting_calls() -> None:
    """Cancellation should fail every waiting call at once without touching completed ones."""
    completed: list = []
    errors: list = []
    cts = ManualCancellationTokenSource()
    client = WebClient(
        "http://echo.test", transport=QuickTransport(), limit=LimitOpts(instance=LIMIT, timeout_ms=3000)
    )
    try:
        tasks = spawn(client, cts.token, 10, completed, errors)
        await asyncio.sleep(2.5)
        assert len(completed) + len(errors) == 4

        cts.cancel()
        await asyncio.sleep(0.025)

        assert len(completed) == 4
        assert len(errors) == 6
        assert all(isinstance(e, OperationCancelledError) for e in errors)
        await asyncio.gather(*tasks)
    finally:
        await client.dispose()


@pytest.mark.asyncio
async def test_cancel_during_transport_spends_token() -> None:
    """Cancelling an in-flight exchange should commit its token."""
    cts = ManualCancellationTokenSource()
    client = WebClient(
        "http://echo.test",
        transport=QuickTransport(delay_sec=10),
        limit=LimitOpts(instance=LimitSettings(parallel=1, per_minute=1), timeout_ms=100),
    )
    limit = client._limit_handle.instance
    try:
        task = asyncio.create_task(client.get(cts.token, "slow"))
        await asyncio.sleep(0.05)
        assert limit.in_flight == 1

        cts.cancel()
        with pytest.raises(OperationCancelledError):
            await task

        assert limit.in_flight == 0
        with pytest.raises(LimitTimeoutError):
            await client.get(None, "again")
    finally:
        await client.dispose()


@pytest.mark.asyncio
async def test_communication_error_refunds_capacity() -> None:
    """A refunded token should leave the window capacity available."""

    class RefusingTransport:
        async def invoke(self, cancellation, request):
            raise CommunicationError("connection refused")

    client = WebClient(
        "http://echo.test",
        transport=RefusingTransport(),
        limit=LimitOpts(instance=LimitSettings(per_minute=1), timeout_ms=100),
    )
    try:
        for _ in range(3):
            with pytest.raises(CommunicationError):
                await client.get(None, "a")
    finally:
        await client.dispose()
