"""
Unit tests for the command surface and CLI wiring
"""

from unittest.mock import AsyncMock, Mock

import pytest
from playwright.async_api import Error as PlaywrightError

from scout.data import CommandResult, SourcingConfig
from scout.errors import SessionInitError
from scout.pipeline import PipelineService, build_parser, main


SOURCING_PAYLOAD = {
    "userId": "u-1",
    "keywords": "phone case",
    "priceMin": "1000",
    "priceMax": "50000",
    "includeNaver": True,
}


@pytest.fixture
def service(fast_settings, fake_session):
    collection = Mock()
    collection.is_running = False
    collection.start = Mock(return_value=CommandResult(True, "collection started"))
    sourcing = Mock()
    sourcing.is_running = False
    sourcing.start = Mock(return_value=CommandResult(True, "sourcing started"))
    login = Mock()
    login.is_authenticated = AsyncMock(return_value=True)
    return PipelineService(
        fast_settings, fake_session, Mock(), collection=collection, sourcing=sourcing, login=login
    )


class TestPipelineService:
    @pytest.mark.asyncio
    async def test_start_collection_requires_login(self, service):
        service.login.is_authenticated.return_value = False

        result = await service.start_collection("u-1")

        assert result.success is False
        assert result.message == "authentication required"
        service.collection.start.assert_not_called()

    @pytest.mark.asyncio
    async def test_start_collection_accepted(self, service):
        result = await service.start_collection("u-1")

        assert result.success is True
        service.collection.start.assert_called_once_with("u-1")

    @pytest.mark.asyncio
    async def test_already_running_is_checked_first(self, service):
        service.sourcing.is_running = True

        result = await service.start_sourcing({})

        assert result.message == "sourcing already running"
        service.login.is_authenticated.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unlaunchable_browser_is_reported(self, service):
        service.login.is_authenticated.side_effect = SessionInitError(SessionInitError.BINARY_NOT_FOUND)

        result = await service.start_sourcing(SOURCING_PAYLOAD)

        assert result.success is False
        assert result.message == "browser binary not found"

    @pytest.mark.asyncio
    async def test_empty_user_id_skips_login_check(self, service):
        result = await service.start_collection("")

        assert result.message.startswith("invalid configuration")
        service.login.is_authenticated.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_sourcing_payload_skips_login_check(self, service):
        service.login.is_authenticated.return_value = False

        result = await service.start_sourcing({**SOURCING_PAYLOAD, "priceMin": "9", "priceMax": "1"})

        assert result.success is False
        assert result.message.startswith("invalid configuration")
        service.login.is_authenticated.assert_not_awaited()
        service.sourcing.start.assert_not_called()

    @pytest.mark.asyncio
    async def test_sourcing_starts_with_validated_config(self, service):
        result = await service.start_sourcing(SOURCING_PAYLOAD)

        assert result.success is True
        cfg = service.sourcing.start.call_args.args[0]
        assert isinstance(cfg, SourcingConfig)
        assert cfg.keywords == ("phone case",)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("start", ["collection", "sourcing"])
    async def test_browser_failure_during_login_check_is_reported(self, service, start):
        service.login.is_authenticated.side_effect = PlaywrightError("net::ERR_INTERNET_DISCONNECTED")

        if start == "collection":
            result = await service.start_collection("u-1")
        else:
            result = await service.start_sourcing(SOURCING_PAYLOAD)

        assert result.success is False
        assert "ERR_INTERNET_DISCONNECTED" in result.message
        service.collection.start.assert_not_called()
        service.sourcing.start.assert_not_called()

    @pytest.mark.asyncio
    async def test_unexpected_login_error_is_reported(self, service):
        service.login.is_authenticated.side_effect = RuntimeError("driver crashed")

        result = await service.start_collection("u-1")

        assert result.success is False
        assert result.message == "unexpected error: driver crashed"

    @pytest.mark.asyncio
    async def test_check_login_reports_browser_failure(self, service):
        service.login.is_authenticated.side_effect = PlaywrightError("Timeout 30000ms exceeded")

        result = await service.check_login()

        assert result.success is False
        assert "Timeout" in result.message

    @pytest.mark.asyncio
    async def test_open_login_reports_browser_failure(self, service):
        service.login.prompt_login = AsyncMock(side_effect=PlaywrightError("net::ERR_NAME_NOT_RESOLVED"))

        result = await service.open_login(wait=True)

        assert result.success is False
        assert "ERR_NAME_NOT_RESOLVED" in result.message


class TestParser:
    def test_source_arguments(self):
        args = build_parser().parse_args(
            ["source", "--user-id", "u-1", "--keywords", "a,b", "--min-price", "1000", "--max-price", "5000", "--naver"]
        )

        assert args.command == "source"
        assert args.naver is True
        assert args.auction is False
        assert args.keywords == "a,b"

    def test_global_options(self):
        args = build_parser().parse_args(["--captcha-max-wait", "60", "--rotate-user-agent", "check-login"])

        assert args.captcha_max_wait == 60
        assert args.rotate_user_agent is True
        assert args.command == "check-login"

    def test_main_without_command_prints_help(self, capsys, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        assert main([]) == 1
        assert "usage" in capsys.readouterr().out
