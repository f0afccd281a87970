"""Rate limited HTTP invocation pipeline."""

from __future__ import annotations

import inspect
import json
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from types import TracebackType
from typing import Any, ClassVar
from urllib.parse import quote, urlencode

from multidict import CIMultiDict
from yarl import URL

from webclient.adapters.driven.config.settings import LimitSettings, TransportSettings
from webclient.adapters.driven.http.transport import AiohttpTransport
from webclient.adapters.driven.limit.memory import limit_factory
from webclient.core.cancellation import run_cancellable
from webclient.ports.cancellation import CancellationTokenPort
from webclient.ports.errors import CommunicationError, DisposedError
from webclient.ports.limit import LimitPort, LimitTokenPort
from webclient.ports.settings import LimitOpts, WebClientSettingsPort
from webclient.ports.transport import TransportPort, TransportRequest

__all__ = ["WebClient", "InvokeResult", "LIMIT_WEIGHT_HEADER"]

LIMIT_WEIGHT_HEADER = "X-Limit-Weight"
JSON_CONTENT_TYPE = "application/json"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

RAW_BODY_TYPES = (bytes, bytearray, memoryview)

Headers = Mapping[str, str | int]
TransportFactory = Callable[[TransportSettings | None], TransportPort]


@dataclass(slots=True, frozen=True)
class InvokeResult:
    """Immutable result of one invocation.

    Attributes:
        status_code: HTTP status code (non-2xx included).
        status_text: Reason phrase.
        headers: Case-insensitive response headers.
        body: Raw response body.
    """

    status_code: int
    status_text: str
    headers: Mapping[str, str]
    body: bytes

    @property
    def body_as_json(self) -> Any:
        """Parse the body as JSON on every access.

        Raises:
            json.JSONDecodeError: If the body is not valid JSON.
        """
        return json.loads(self.body.decode("utf-8"))


@dataclass(slots=True, frozen=True)
class _LimitHandle:
    instance: LimitPort
    timeout_ms: int
    is_own_instance: bool


class WebClient:
    """Base class for HTTP API clients.

    Resolves paths against a base URL, throttles calls through an optional
    rate limiter, and disposes owned resources exactly once.

    Example:
        async with WebClient("http://httpbin.org") as client:
            response = await client.get(None, "ip")
            print(response.body_as_json)
    """

    _transport_factory: ClassVar[TransportFactory | None] = None

    def __init__(
        self,
        url: URL | str,
        *,
        limit: LimitOpts | None = None,
        transport: TransportSettings | TransportPort | None = None,
        user_agent: str | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            url: Absolute base URL.
            limit: Optional rate limiting; a limit configuration makes this
                client own the limiter, an instance stays caller-owned.
            transport: Transport instance (caller-owned), or settings for
                the internally constructed transport.
            user_agent: Default User-Agent header.
            logger: Logger; defaults to ``webclient.<ClassName>``.

        Raises:
            ValueError: If ``url`` is not absolute or the limit timeout is not positive.
        """
        self._base_url = URL(url) if isinstance(url, str) else url
        if not self._base_url.is_absolute():
            raise ValueError(f"Base URL must be absolute (got: {url})")

        self._logger = logger
        self._user_agent = user_agent
        self._disposed = False

        self._limit_handle: _LimitHandle | None = None
        if limit is not None:
            if limit.timeout_ms <= 0:
                raise ValueError("Limit timeout must be positive")
            if isinstance(limit.instance, (LimitSettings, Mapping)):
                self._limit_handle = _LimitHandle(
                    instance=limit_factory(limit.instance), timeout_ms=limit.timeout_ms, is_own_instance=True
                )
            else:
                self._limit_handle = _LimitHandle(
                    instance=limit.instance, timeout_ms=limit.timeout_ms, is_own_instance=False
                )

        self._transport: TransportPort
        if transport is not None and hasattr(transport, "invoke"):
            self._transport = transport
            self._is_own_transport = False
        else:
            factory = WebClient._transport_factory
            if factory is not None:
                self._transport = factory(transport)
            else:
                self._transport = AiohttpTransport(transport, logger=self.logger)
            self._is_own_transport = True

    @classmethod
    def from_settings(cls, settings: WebClientSettingsPort, **kwargs: Any) -> WebClient:
        """Build a client from settings.

        Args:
            settings: Construction settings.
            **kwargs: Extra constructor arguments (e.g. logger).

        Returns:
            New client.
        """
        return cls(
            settings.base_url,
            limit=settings.limit,
            transport=settings.transport,
            user_agent=settings.user_agent,
            **kwargs,
        )

    @staticmethod
    def set_transport_factory(value: TransportFactory) -> None:
        """Use ``value`` to build the transport of clients created afterwards."""
        WebClient._transport_factory = value

    @staticmethod
    def remove_transport_factory() -> None:
        WebClient._transport_factory = None

    @property
    def logger(self) -> logging.Logger:
        if self._logger is None:
            self._logger = logging.getLogger(f"webclient.{type(self).__name__}")
        return self._logger

    @logger.setter
    def logger(self, value: logging.Logger) -> None:
        if isinstance(self._transport, AiohttpTransport) and self._is_own_transport:
            self._transport.logger = value
        self._logger = value

    @property
    def base_url(self) -> URL:
        return self._base_url

    @property
    def disposed(self) -> bool:
        return self._disposed

    def verify_not_disposed(self) -> None:
        """Raise DisposedError once dispose() has been called."""
        if self._disposed:
            raise DisposedError(f"{type(self).__name__} was disposed")

    async def get(
        self,
        cancellation: CancellationTokenPort | None,
        path: str,
        *,
        query_args: Mapping[str, str] | None = None,
        headers: Headers | None = None,
        limit_weight: int = 1,
    ) -> InvokeResult:
        """Send a GET request with ``query_args`` encoded into the query string."""
        self.verify_not_disposed()

        if query_args is not None:
            path = f"{path}?{urlencode(query_args, quote_via=quote)}"

        return await self.invoke(cancellation, path, "GET", headers=headers, limit_weight=limit_weight)

    async def post_form(
        self,
        cancellation: CancellationTokenPort | None,
        path: str,
        *,
        post_args: Mapping[str, str] | None = None,
        headers: Headers | None = None,
        limit_weight: int = 1,
    ) -> InvokeResult:
        """Send a POST request with ``post_args`` as a urlencoded form body.

        Caller headers override the form Content-Type and Content-Length.
        """
        self.verify_not_disposed()

        body = urlencode(post_args).encode("utf-8") if post_args else None
        form_headers: CIMultiDict[str] = CIMultiDict(
            {"Content-Type": FORM_CONTENT_TYPE, "Content-Length": str(len(body) if body else 0)}
        )
        if headers is not None:
            form_headers.update((k, str(v)) for k, v in headers.items())

        return await self.invoke(
            cancellation, path, "POST", headers=form_headers, body=body, limit_weight=limit_weight
        )

    async def post_json(
        self,
        cancellation: CancellationTokenPort | None,
        path: str,
        data: Any,
        *,
        headers: Headers | None = None,
        limit_weight: int = 1,
    ) -> InvokeResult:
        """Send a POST request with ``data`` serialized as JSON."""
        return await self.invoke(cancellation, path, "POST", headers=headers, body=data, limit_weight=limit_weight)

    async def invoke(
        self,
        cancellation: CancellationTokenPort | None,
        path: str,
        method: str,
        *,
        headers: Headers | None = None,
        body: Any = None,
        limit_weight: int = 1,
    ) -> InvokeResult:
        """Perform one rate limited HTTP exchange.

        With a limiter, a token of ``limit_weight`` is acquired first and
        committed once the exchange completes or fails in any way except a
        CommunicationError, which rolls it back. Without a limiter the weight
        is sent in the X-Limit-Weight header. No retries are made.

        Args:
            cancellation: Optional token stopping the limit and transport waits.
            path: Path resolved against the base URL.
            method: HTTP method.
            headers: Caller headers; they take precedence over defaults.
            body: Raw bytes, or any other value to be sent as JSON.
            limit_weight: Capacity this request consumes.

        Returns:
            Result of the exchange, whatever the status code.

        Raises:
            DisposedError: If the client was disposed.
            ValueError: If ``limit_weight`` is not a positive integer.
            LimitTimeoutError: If no token was granted in time.
            OperationCancelledError: If ``cancellation`` fired.
            CommunicationError: If the transport could not complete the exchange.
        """
        self.verify_not_disposed()

        if isinstance(limit_weight, bool) or not isinstance(limit_weight, int) or limit_weight <= 0:
            raise ValueError(f"Limit weight must be a positive integer (got: {limit_weight!r})")

        friendly_headers: CIMultiDict[str] = CIMultiDict()
        if headers is not None:
            friendly_headers.extend((k, str(v)) for k, v in headers.items())
        # set User-Agent only if this is not present by user
        if self._user_agent is not None and "User-Agent" not in friendly_headers:
            friendly_headers["User-Agent"] = self._user_agent

        friendly_body: bytes | None = None
        if body is not None:
            if isinstance(body, RAW_BODY_TYPES):
                friendly_body = bytes(body)
            else:
                friendly_body = json.dumps(body).encode("utf-8")
                if "Content-Type" not in friendly_headers:
                    friendly_headers["Content-Type"] = JSON_CONTENT_TYPE
                    friendly_headers["Content-Length"] = str(len(friendly_body))

        limit_token: LimitTokenPort | None = None
        if self._limit_handle is not None:
            limit_token = await self._limit_handle.instance.accrue_token_lazy(
                limit_weight, self._limit_handle.timeout_ms, cancellation
            )
        elif LIMIT_WEIGHT_HEADER not in friendly_headers:
            friendly_headers[LIMIT_WEIGHT_HEADER] = str(limit_weight)

        try:
            url = self._base_url.join(URL(path))
            self.logger.debug(f"Invoke {method} {url}")

            invoke_result = await run_cancellable(
                self._transport.invoke(
                    cancellation,
                    TransportRequest(url=url, method=method, headers=friendly_headers, body=friendly_body),
                ),
                cancellation,
            )
        except CommunicationError:
            if limit_token is not None:
                # Token was not spent: the server did not do any job
                self.logger.debug(f"Rollback limit token of {method} {path}")
                limit_token.rollback()
            raise
        except BaseException:
            if limit_token is not None:
                limit_token.commit()
            raise

        if limit_token is not None:
            limit_token.commit()

        return InvokeResult(
            status_code=invoke_result.status_code,
            status_text=invoke_result.status_text,
            headers=invoke_result.headers,
            body=invoke_result.body,
        )

    async def __aenter__(self) -> WebClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.dispose()

    async def dispose(self) -> None:
        """Release owned resources (idempotent).

        The client rejects calls from the moment dispose() is entered.
        An owned limiter is disposed and its failure propagates; an
        internally built transport is disposed if it supports it, and its
        failure is only logged.
        """
        if self._disposed:
            return
        self._disposed = True

        try:
            if self._limit_handle is not None and self._limit_handle.is_own_instance:
                await self._limit_handle.instance.dispose()
        finally:
            if self._is_own_transport:
                await self._dispose_own_transport()

    async def _dispose_own_transport(self) -> None:
        dispose = getattr(self._transport, "dispose", None)
        if not callable(dispose):
            return
        try:
            result = dispose()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            self.logger.warning(f"Failed to dispose transport {type(self._transport).__name__}: {e}", exc_info=True)
