"""Transport channel port definition (interface and DTOs)."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Protocol

from multidict import CIMultiDict
from yarl import URL

from webclient.ports.cancellation import CancellationTokenPort

__all__ = ["TransportRequest", "TransportResponse", "TransportPort"]


@dataclass(slots=True, frozen=True)
class TransportRequest:
    """Outgoing request handed to a transport.

    Attributes:
        url: Fully resolved absolute URL.
        method: HTTP method (GET, POST, ...).
        headers: Case-insensitive header mapping.
        body: Raw body bytes or None.
    """

    url: URL
    method: str
    headers: CIMultiDict[str]
    body: bytes | None = None


@dataclass(slots=True, frozen=True)
class TransportResponse:
    """Completed HTTP exchange, whatever the status code.

    Attributes:
        status_code: HTTP status code.
        status_text: Reason phrase sent by the server.
        headers: Case-insensitive response headers.
        body: Raw response body.
    """

    status_code: int
    status_text: str
    headers: Mapping[str, str]
    body: bytes


class TransportPort(Protocol):
    """Interface for performing a single network exchange.

    Implementations raise CommunicationError when the exchange could not be
    completed. A non-2xx response is a successful exchange.
    """

    async def invoke(
        self,
        cancellation: CancellationTokenPort | None,
        request: TransportRequest,
        /,
    ) -> TransportResponse:
        """Send the request and return the full response.

        Args:
            cancellation: Optional token; the wait stops when it fires.
            request: Request to send.

        Returns:
            The response with its body fully read.
        """
        ...
