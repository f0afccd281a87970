"""Signal handling for graceful cancellation."""

import asyncio
import logging
import signal

from webclient.core.cancellation import CancellationToken, ManualCancellationTokenSource

__all__ = ["make_cancel_on_sigterm"]

logger = logging.getLogger(__name__)


def make_cancel_on_sigterm() -> CancellationToken:
    """Create a cancellation token fired by SIGTERM/SIGINT.

    On Docker/Kubernetes, SIGTERM is sent 30s before SIGKILL, allowing
    in-flight calls to stop waiting and release their limit tokens.

    Returns:
        Token cancelled when a termination signal is received.
    """
    cts = ManualCancellationTokenSource()
    loop = asyncio.get_running_loop()

    def handle_signal() -> None:
        """Signal handler that cancels the token on SIGTERM/SIGINT."""
        logger.info("Termination signal received, cancelling in-flight calls...")
        cts.cancel()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_signal)

    return cts.token
