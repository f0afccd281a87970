"""Tests for the retry decorator."""

from unittest.mock import AsyncMock, patch

import pytest

from webclient.adapters.driven.http.retry import RETRYABLE_ERRORS, retry
from webclient.ports.errors import OperationCancelledError

__all__ = []


@pytest.mark.asyncio
@pytest.mark.parametrize("exc_type", RETRYABLE_ERRORS)
async def test_retry_decorator_retries_on_transient_errors(
    exc_type: type[BaseException],
) -> None:
    """Retry decorator should retry on transient errors."""
    mock_fn = AsyncMock(side_effect=exc_type("transient"))
    wrapped = retry(times=3)(mock_fn)

    with (
        patch("webclient.adapters.driven.http.retry.asyncio.sleep", new=AsyncMock()),
        pytest.raises(exc_type),
    ):
        await wrapped()

    # Should attempt 3 times
    assert mock_fn.call_count == 3


@pytest.mark.asyncio
async def test_retry_decorator_first_call_success() -> None:
    """Retry decorator should not retry on first call success."""
    mock_fn = AsyncMock(return_value="ok")
    wrapped = retry(times=3)(mock_fn)

    result = await wrapped("a", k=1)

    assert mock_fn.call_count == 1
    mock_fn.assert_awaited_once_with("a", k=1)
    assert result == "ok"


@pytest.mark.asyncio
async def test_retry_decorator_recovers_after_transient_error() -> None:
    """Retry decorator should return the first successful result."""
    mock_fn = AsyncMock(side_effect=[RETRYABLE_ERRORS[0]("refused"), "ok"])
    wrapped = retry(times=3)(mock_fn)

    with patch("webclient.adapters.driven.http.retry.asyncio.sleep", new=AsyncMock()):
        result = await wrapped()

    assert result == "ok"
    assert mock_fn.call_count == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("exc", [ValueError("Invalid request"), OperationCancelledError("cancelled")])
async def test_retry_decorator_does_not_retry_permanent_errors(exc: Exception) -> None:
    """Retry decorator should not retry non-transient errors."""
    mock_fn = AsyncMock(side_effect=exc)
    wrapped = retry(times=3)(mock_fn)

    with pytest.raises(type(exc)):
        await wrapped()

    # Should only try once
    assert mock_fn.call_count == 1


@pytest.mark.asyncio
async def test_retry_decorator_delays_between_attempts() -> None:
    """Retry decorator should delay between retry attempts."""
    mock_fn = AsyncMock(side_effect=RETRYABLE_ERRORS[0]("refused"))
    wrapped = retry(times=3, delay_sec=(0.1, 0.2, 0.3))(mock_fn)

    mock_sleep = AsyncMock()
    with (
        patch("webclient.adapters.driven.http.retry.asyncio.sleep", mock_sleep),
        pytest.raises(RETRYABLE_ERRORS[0]),
    ):
        await wrapped()

    # Should sleep between attempts (2 sleeps for 3 attempts)
    assert mock_sleep.call_count == 2
    assert [c.args[0] for c in mock_sleep.call_args_list] == [0.1, 0.2]
