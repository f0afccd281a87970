"""Settings port definitions (DTOs)."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from webclient.adapters.driven.config.settings import LimitSettings, TransportSettings
    from webclient.ports.limit import LimitPort

__all__ = ["DEFAULT_LIMIT_TIMEOUT_MS", "LimitOpts", "WebClientSettingsPort"]

DEFAULT_LIMIT_TIMEOUT_MS = 500


@dataclass
class LimitOpts:
    """Rate limiting options of a web client.

    Attributes:
        instance: Limit configuration (LimitSettings or a plain mapping), which
            makes the client build and own a limiter, or an existing limiter
            whose lifetime the caller manages.
        timeout_ms: Maximum time to wait for a limit token.
    """

    instance: LimitSettings | Mapping[str, Any] | LimitPort
    timeout_ms: int = DEFAULT_LIMIT_TIMEOUT_MS


@dataclass
class WebClientSettingsPort:
    """Construction settings for a web client.

    Decouples the client from concrete configuration sources.

    Attributes:
        base_url: Absolute URL every path is resolved against.
        user_agent: Default User-Agent header, if any.
        limit: Optional rate limiting options.
        transport: Optional transport settings for the default transport.
    """

    base_url: str
    user_agent: str | None = None
    limit: LimitOpts | None = None
    transport: TransportSettings | None = None
