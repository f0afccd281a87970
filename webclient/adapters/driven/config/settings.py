"""Configuration loading from environment variables."""

import logging
import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field, HttpUrl, TypeAdapter, field_validator, model_validator

from webclient.ports.settings import DEFAULT_LIMIT_TIMEOUT_MS

__all__ = ["LimitSettings", "TransportSettings", "Settings", "load_settings"]

load_dotenv()

logger = logging.getLogger(__name__)
_http_url_adapter = TypeAdapter(HttpUrl)

DEFAULT_TRANSPORT_TIMEOUT_MS = 30000


class LimitSettings(BaseModel):
    """Capacity of an in-memory rate limiter.

    Every configured bound must hold for a token to be granted.

    Attributes:
        parallel: Maximum weight of tokens outstanding at once.
        per_second: Maximum weight granted within any 1 second window.
        per_minute: Maximum weight granted within any 60 second window.
        per_hour: Maximum weight granted within any 3600 second window.
    """

    parallel: int | None = Field(default=None, gt=0)
    per_second: int | None = Field(default=None, gt=0)
    per_minute: int | None = Field(default=None, gt=0)
    per_hour: int | None = Field(default=None, gt=0)

    @model_validator(mode="after")
    def validate_any_bound(self) -> "LimitSettings":
        """Reject a limit without any bound.

        Raises:
            ValueError: If no bound is configured.
        """
        if all(v is None for v in (self.parallel, self.per_second, self.per_minute, self.per_hour)):
            raise ValueError("At least one of parallel, per_second, per_minute, per_hour is required")
        return self


class TransportSettings(BaseModel):
    """Settings of the default aiohttp transport."""

    timeout_ms: int = Field(
        default=DEFAULT_TRANSPORT_TIMEOUT_MS, gt=0, description="Total timeout of one HTTP exchange."
    )


class Settings(BaseModel):
    """Runtime configuration of a web client.

    Attributes:
        base_url: Absolute http(s) URL requests are resolved against.
        user_agent: Optional default User-Agent header.
        transport: Default transport settings.
        limit: Optional rate limit; None disables client-side throttling.
        limit_timeout_ms: Maximum wait for a limit token.
    """

    base_url: str = Field(..., description="Base URL requests are resolved against.")
    user_agent: str | None = Field(default=None, description="Default User-Agent header.")
    transport: TransportSettings = Field(default_factory=TransportSettings)
    limit: LimitSettings | None = Field(default=None, description="Client-side rate limit.")
    limit_timeout_ms: int = Field(default=DEFAULT_LIMIT_TIMEOUT_MS, gt=0)

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Validate that the base URL is a valid HTTP(S) URL.

        Args:
            v: URL to validate.

        Returns:
            The validated URL.

        Raises:
            ValueError: If URL is invalid or not http(s).
        """
        try:
            url = _http_url_adapter.validate_python(v)
            if url.scheme not in ("http", "https"):
                raise ValueError("Only http:// and https:// URLs allowed")
        except Exception as e:
            raise ValueError(f"Invalid base URL: {e}") from e
        return v


def _optional_int(name: str) -> int | None:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError as e:
        raise RuntimeError(f"{name} must be an integer (got: {raw})") from e


def load_settings() -> Settings:
    """Load and validate settings from environment.

    Required environment variables:
    - WEBCLIENT_BASE_URL: Absolute http(s) URL.

    Optional:
    - WEBCLIENT_USER_AGENT: Default User-Agent header.
    - WEBCLIENT_TIMEOUT_MS: Transport timeout in milliseconds.
    - WEBCLIENT_LIMIT_PARALLEL, WEBCLIENT_LIMIT_PER_SECOND,
      WEBCLIENT_LIMIT_PER_MINUTE, WEBCLIENT_LIMIT_PER_HOUR: Rate limit
      bounds; throttling is disabled when none is set.
    - WEBCLIENT_LIMIT_TIMEOUT_MS: Maximum wait for a limit token.

    Returns:
        Validated Settings object.

    Raises:
        RuntimeError: If required env vars missing or not integers.
        ValueError: If configuration is invalid.
    """
    try:
        base_url = os.environ["WEBCLIENT_BASE_URL"]
    except KeyError as e:
        raise RuntimeError(f"Missing required environment variable: {e.args[0]}") from e

    timeout_ms = _optional_int("WEBCLIENT_TIMEOUT_MS")
    limit_timeout_ms = _optional_int("WEBCLIENT_LIMIT_TIMEOUT_MS")
    bounds = {
        "parallel": _optional_int("WEBCLIENT_LIMIT_PARALLEL"),
        "per_second": _optional_int("WEBCLIENT_LIMIT_PER_SECOND"),
        "per_minute": _optional_int("WEBCLIENT_LIMIT_PER_MINUTE"),
        "per_hour": _optional_int("WEBCLIENT_LIMIT_PER_HOUR"),
    }

    settings = Settings(
        base_url=base_url,
        user_agent=os.getenv("WEBCLIENT_USER_AGENT") or None,
        transport=TransportSettings(timeout_ms=timeout_ms or DEFAULT_TRANSPORT_TIMEOUT_MS),
        limit=LimitSettings(**bounds) if any(v is not None for v in bounds.values()) else None,
        limit_timeout_ms=limit_timeout_ms or DEFAULT_LIMIT_TIMEOUT_MS,
    )

    logger.info(
        f"Web client configured: base_url={settings.base_url}, "
        f"timeout={settings.transport.timeout_ms}ms, "
        f"limit={settings.limit.model_dump(exclude_none=True) if settings.limit else '<disabled>'}"
    )

    return settings
