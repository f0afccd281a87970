"""Cooperative cancellation tokens."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from webclient.ports.cancellation import CancellationTokenPort
from webclient.ports.errors import OperationCancelledError

__all__ = [
    "CancellationToken",
    "ManualCancellationTokenSource",
    "DUMMY_CANCELLATION_TOKEN",
    "run_cancellable",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """Token handed out by a ManualCancellationTokenSource."""

    def __init__(self) -> None:
        self._cancelled = False
        self._listeners: list[Callable[[], None]] = []

    @property
    def is_cancellation_requested(self) -> bool:
        return self._cancelled

    def add_cancel_listener(self, cb: Callable[[], None], /) -> None:
        self._listeners.append(cb)

    def remove_cancel_listener(self, cb: Callable[[], None], /) -> None:
        try:
            self._listeners.remove(cb)
        except ValueError:
            pass

    def throw_if_cancellation_requested(self) -> None:
        if self._cancelled:
            raise OperationCancelledError("Operation was cancelled")

    def _cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        listeners, self._listeners = self._listeners, []

        errors: list[Exception] = []
        for cb in listeners:
            try:
                cb()
            except Exception as e:
                errors.append(e)
        if errors:
            raise ExceptionGroup("Cancel listeners failed", errors)


class _DummyCancellationToken:
    """Token that never fires."""

    @property
    def is_cancellation_requested(self) -> bool:
        return False

    def add_cancel_listener(self, cb: Callable[[], None], /) -> None:
        pass

    def remove_cancel_listener(self, cb: Callable[[], None], /) -> None:
        pass

    def throw_if_cancellation_requested(self) -> None:
        pass


DUMMY_CANCELLATION_TOKEN: CancellationTokenPort = _DummyCancellationToken()


class ManualCancellationTokenSource:
    """Owner side of a cancellation token.

    Example:
        cts = ManualCancellationTokenSource()
        task = asyncio.create_task(client.get(cts.token, "ip"))
        cts.cancel()
    """

    def __init__(self) -> None:
        self._token = CancellationToken()

    @property
    def token(self) -> CancellationToken:
        return self._token

    @property
    def is_cancellation_requested(self) -> bool:
        return self._token.is_cancellation_requested

    def cancel(self) -> None:
        """Request cancellation and notify listeners (only the first call has effect).

        Raises:
            ExceptionGroup: If one or more listeners raised; all listeners
                are still called.
        """
        logger.debug("Cancellation requested")
        self._token._cancel()


def _consume_result(task: "asyncio.Future[object]") -> None:
    # Abandoned task: retrieve the outcome so asyncio does not warn about it
    if not task.cancelled():
        task.exception()


async def run_cancellable(aw: Awaitable[T], cancellation: CancellationTokenPort | None) -> T:
    """Await ``aw`` unless ``cancellation`` fires first.

    When the token fires, the in-flight task is cancelled and its result
    abandoned.

    Args:
        aw: Awaitable to wait for.
        cancellation: Optional token; None waits unconditionally.

    Returns:
        Result of ``aw``.

    Raises:
        OperationCancelledError: If the token fired before ``aw`` completed.
    """
    if cancellation is None:
        return await aw

    if cancellation.is_cancellation_requested:
        if asyncio.iscoroutine(aw):
            aw.close()
        raise OperationCancelledError("Operation was cancelled")

    loop = asyncio.get_running_loop()
    task = asyncio.ensure_future(aw)
    cancelled: asyncio.Future[None] = loop.create_future()

    def on_cancel() -> None:
        if not cancelled.done():
            cancelled.set_result(None)

    cancellation.add_cancel_listener(on_cancel)
    try:
        await asyncio.wait({task, cancelled}, return_when=asyncio.FIRST_COMPLETED)
    except BaseException:
        task.cancel()
        task.add_done_callback(_consume_result)
        raise
    finally:
        cancellation.remove_cancel_listener(on_cancel)
        if not cancelled.done():
            cancelled.cancel()

    if task.done():
        return task.result()

    task.cancel()
    task.add_done_callback(_consume_result)
    raise OperationCancelledError("Operation was cancelled")
