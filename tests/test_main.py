"""Tests for the command line entrypoint."""

from unittest.mock import AsyncMock, Mock, patch

import pytest

from webclient.adapters.driven.config.settings import LimitSettings, Settings
from webclient.core.client import InvokeResult
from webclient.main import main, parse_args, to_settings_port
from webclient.ports.errors import CommunicationError

__all__ = []


def make_client(response: InvokeResult | None = None, error: Exception | None = None) -> AsyncMock:
    """Create a mocked WebClient usable with async with."""
    client = AsyncMock()
    client.__aenter__.return_value = client
    client.get = AsyncMock(return_value=response, side_effect=error)
    return client


def test_parse_args_collects_queries() -> None:
    """parse_args should accept repeated query arguments."""
    args = parse_args(["ip", "-q", "a=1", "--query", "b=2"])

    assert args.path == "ip"
    assert args.query == ["a=1", "b=2"]


def test_to_settings_port_maps_limit() -> None:
    """Settings should map to the client settings port."""
    config = Settings(
        base_url="http://localhost:8000",
        user_agent="cli",
        limit=LimitSettings(per_second=3),
        limit_timeout_ms=700,
    )

    port = to_settings_port(config)

    assert port.base_url == "http://localhost:8000"
    assert port.user_agent == "cli"
    assert port.limit.instance == LimitSettings(per_second=3)
    assert port.limit.timeout_ms == 700
    assert port.transport == config.transport


def test_to_settings_port_without_limit() -> None:
    """No limit settings should give no limit options."""
    assert to_settings_port(Settings(base_url="http://localhost")).limit is None


@pytest.mark.asyncio
async def test_main_prints_json_body(capsys: pytest.CaptureFixture[str]) -> None:
    """Main should GET the path and print its JSON body."""
    response = InvokeResult(200, "OK", {}, b'{"origin": "1.2.3.4"}')
    client = make_client(response)
    with (
        patch("webclient.main.configure_logs"),
        patch("webclient.main.load_settings", return_value=Settings(base_url="http://localhost")),
        patch("webclient.main.make_cancel_on_sigterm") as mock_cancel,
        patch("webclient.main.WebClient") as mock_client_class,
    ):
        mock_client_class.from_settings.return_value = client
        code = await main(["ip", "-q", "x=y z"])

    assert code == 0
    client.get.assert_awaited_once_with(mock_cancel.return_value, "ip", query_args={"x": "y z"})
    assert '"origin": "1.2.3.4"' in capsys.readouterr().out


@pytest.mark.asyncio
async def test_main_prints_raw_body_and_fails_on_error_status(capsys: pytest.CaptureFixture[str]) -> None:
    """Non-JSON bodies should be printed raw; non-2xx exits with 1."""
    client = make_client(InvokeResult(404, "Not Found", {}, b"nope"))
    with (
        patch("webclient.main.configure_logs"),
        patch("webclient.main.load_settings", return_value=Settings(base_url="http://localhost")),
        patch("webclient.main.make_cancel_on_sigterm"),
        patch("webclient.main.WebClient") as mock_client_class,
    ):
        mock_client_class.from_settings.return_value = client
        code = await main(["missing"])

    assert code == 1
    assert "nope" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_main_aborts_on_configuration_error() -> None:
    """Main should not build a client when settings are invalid."""
    with (
        patch("webclient.main.configure_logs"),
        patch("webclient.main.load_settings", side_effect=RuntimeError("missing")),
        patch("webclient.main.WebClient") as mock_client_class,
        patch("webclient.main.logger") as mock_logger,
    ):
        code = await main(["ip"])

    assert code == 1
    mock_client_class.from_settings.assert_not_called()
    mock_logger.error.assert_called()


@pytest.mark.asyncio
async def test_main_reports_request_errors() -> None:
    """Main should log client errors and exit with 1."""
    client = make_client(error=CommunicationError("refused"))
    with (
        patch("webclient.main.configure_logs"),
        patch("webclient.main.load_settings", return_value=Settings(base_url="http://localhost")),
        patch("webclient.main.make_cancel_on_sigterm"),
        patch("webclient.main.WebClient") as mock_client_class,
        patch("webclient.main.logger") as mock_logger,
    ):
        mock_client_class.from_settings.return_value = client
        code = await main(["ip"])

    assert code == 1
    mock_logger.error.assert_called_once()
    client.__aexit__.assert_awaited_once()
