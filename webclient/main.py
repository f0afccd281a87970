"""Command line entrypoint: GET a path relative to the configured base URL."""

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence

from webclient.adapters.driven.config.settings import Settings, load_settings
from webclient.adapters.driven.logging.logging_config import configure_logs
from webclient.adapters.driving.signals import make_cancel_on_sigterm
from webclient.core.client import WebClient
from webclient.ports.errors import WebClientError
from webclient.ports.settings import LimitOpts, WebClientSettingsPort

__all__ = ["main", "run", "to_settings_port", "parse_args"]

logger = logging.getLogger(__name__)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments.

    Args:
        argv: Arguments without the program name; sys.argv when None.

    Returns:
        Namespace with ``path`` and ``query`` (list of key=value).
    """
    parser = argparse.ArgumentParser(prog="webclient", description=__doc__)
    parser.add_argument("path", help="Path resolved against WEBCLIENT_BASE_URL")
    parser.add_argument(
        "-q", "--query", action="append", default=[], metavar="KEY=VALUE", help="Query argument (repeatable)"
    )
    return parser.parse_args(argv)


def to_settings_port(config: Settings) -> WebClientSettingsPort:
    """Wrap loaded settings into the client settings port."""
    return WebClientSettingsPort(
        base_url=config.base_url,
        user_agent=config.user_agent,
        limit=LimitOpts(instance=config.limit, timeout_ms=config.limit_timeout_ms) if config.limit else None,
        transport=config.transport,
    )


async def main(argv: Sequence[str] | None = None) -> int:
    """Fetch one path and print its body.

    Startup sequence:
    1. Configure logging.
    2. Load and validate configuration.
    3. GET the path, cancelled on SIGTERM/SIGINT.
    4. Print the JSON body (or raw text) to stdout.

    Returns:
        0 on a 2xx response, 1 otherwise.
    """
    args = parse_args(argv)
    configure_logs()

    try:
        config = load_settings()
    except (RuntimeError, ValueError) as exc:
        logger.error(
            "Configuration error: %s\nHint: check WEBCLIENT_BASE_URL and the WEBCLIENT_LIMIT_* variables.",
            exc,
        )
        return 1

    query_args = dict(item.split("=", 1) for item in args.query if "=" in item)

    async with WebClient.from_settings(to_settings_port(config)) as client:
        try:
            response = await client.get(make_cancel_on_sigterm(), args.path, query_args=query_args or None)
        except WebClientError as e:
            logger.error(f"Request failed: {e!r}")
            return 1

    logger.info(f"{response.status_code} {response.status_text}")
    try:
        print(json.dumps(response.body_as_json, indent=2))
    except ValueError:
        print(response.body.decode("utf-8", errors="replace"))

    return 0 if 200 <= response.status_code < 300 else 1


def run() -> None:
    """Console script entrypoint."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user (Ctrl+C).")


if __name__ == "__main__":
    run()
