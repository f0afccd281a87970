"""Error taxonomy shared by core and adapters."""

__all__ = [
    "WebClientError",
    "DisposedError",
    "LimitTimeoutError",
    "OperationCancelledError",
    "CommunicationError",
]


class WebClientError(Exception):
    """Base class for all errors raised by the web client."""


class DisposedError(WebClientError):
    """Raised when an object is used after dispose() was called."""


class LimitTimeoutError(WebClientError):
    """Raised when a limit token is not granted within the acquire timeout."""


class OperationCancelledError(WebClientError):
    """Raised when a cancellation token fires while an operation is waiting."""


class CommunicationError(WebClientError):
    """Transport could not complete the exchange.

    The remote end never processed the request (connection refused, DNS
    failure, timeout before any response), so the limit token is refunded.
    The underlying transport exception is chained as ``__cause__``.
    """
