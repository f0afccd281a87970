"""aiohttp transport channel."""

import asyncio
import logging
from types import TracebackType

import aiohttp
from aiohttp import ClientTimeout
from multidict import CIMultiDict, CIMultiDictProxy

from webclient.adapters.driven.config.settings import TransportSettings
from webclient.core.cancellation import run_cancellable
from webclient.ports.cancellation import CancellationTokenPort
from webclient.ports.errors import CommunicationError, DisposedError
from webclient.ports.transport import TransportRequest, TransportResponse

__all__ = ["AiohttpTransport", "COMMUNICATION_ERRORS"]

# Failures where the server never produced a response
COMMUNICATION_ERRORS = (
    aiohttp.ClientConnectionError,  # Connection refused, DNS failed, OS error, disconnect
    aiohttp.ServerTimeoutError,  # Read/connect timeout
    asyncio.TimeoutError,  # Total timeout
)


class AiohttpTransport:
    """Transport channel backed by one aiohttp session.

    Features:
    - Session opened lazily on first request.
    - Transport errors surfaced as CommunicationError.
    - Cancellation token aware waits.
    - Context manager and dispose() for resource cleanup.
    """

    def __init__(
        self,
        settings: TransportSettings | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            settings: Transport settings; defaults apply when None.
            logger: Logger to use; defaults to the module logger.
        """
        self.settings = settings or TransportSettings()
        self.logger = logger or logging.getLogger(__name__)
        self.session: aiohttp.ClientSession | None = None
        self._disposed = False

    async def __aenter__(self) -> "AiohttpTransport":
        """Enter async context manager (start session).

        Returns:
            Self for use in async with statement.
        """
        self._ensure_session()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        """Exit async context manager (close session)."""
        await self.dispose()

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._disposed:
            raise DisposedError("Transport was disposed")
        if self.session is None:
            self.session = aiohttp.ClientSession(
                timeout=ClientTimeout(total=self.settings.timeout_ms / 1000),
            )
        return self.session

    async def _send(self, session: aiohttp.ClientSession, request: TransportRequest) -> TransportResponse:
        """Single HTTP exchange with the full body read.

        Raises:
            CommunicationError: On connection errors and timeouts.
        """
        try:
            async with session.request(
                request.method,
                request.url,
                headers=request.headers,
                data=request.body,
                allow_redirects=True,
            ) as resp:
                body = await resp.read()
                return TransportResponse(
                    status_code=resp.status,
                    status_text=resp.reason or "",
                    headers=CIMultiDictProxy(CIMultiDict(resp.headers)),
                    body=body,
                )
        except COMMUNICATION_ERRORS as e:
            raise CommunicationError(f"{request.method} {request.url} failed: {e!r}") from e

    async def invoke(
        self,
        cancellation: CancellationTokenPort | None,
        request: TransportRequest,
    ) -> TransportResponse:
        """Send HTTP request and return the full response.

        Args:
            cancellation: Optional token; waiting stops when it fires.
            request: Request to send.

        Returns:
            Response of any status code.

        Raises:
            CommunicationError: If the exchange could not complete.
            OperationCancelledError: If ``cancellation`` fired first.
            DisposedError: If the transport was disposed.
        """
        session = self._ensure_session()
        self.logger.debug(f"HTTP {request.method} {request.url}")
        resp = await run_cancellable(self._send(session, request), cancellation)
        self.logger.debug(f"HTTP {request.method} {request.url} returned status {resp.status_code}")
        return resp

    async def dispose(self) -> None:
        """Close the session (idempotent)."""
        if self._disposed:
            return
        self._disposed = True
        if self.session is not None:
            await self.session.close()
            self.session = None
