"""
Unit tests for the NAVER login bridge
"""

import pytest

from scout import config
from scout_tools.naver_login import NaverLogin
from tests.conftest import FakePage, FakeSession


def _cookie_without_home_title():
    return FakePage(
        url=config.NAVER_HOME_URL,
        title="Sign in",
        cookies=[{"name": config.NAVER_SESSION_COOKIE, "value": "x"}],
        evaluate=lambda script, arg: False,
    )


class TestWaitForLogin:
    @pytest.mark.asyncio
    async def test_pending_home_title_reloads_once_per_poll(self):
        page = _cookie_without_home_title()
        login = NaverLogin(FakeSession(page))
        login.login_timeout_sec = 0.1

        result = await login.wait_for_login(poll_interval=0.02)

        assert result.ok is False
        assert result.reason == "login_timeout"
        assert 1 <= len(page.visited) <= 7

    @pytest.mark.asyncio
    async def test_authenticated_page_finishes_the_wait(self):
        page = FakePage(
            url=config.NAVER_HOME_URL,
            title=config.NAVER_HOME_TITLE,
            cookies=[{"name": config.NAVER_SESSION_COOKIE, "value": "x"}],
            evaluate=lambda script, arg: False,
        )
        login = NaverLogin(FakeSession(page))

        result = await login.wait_for_login(poll_interval=0.01)

        assert result.ok is True
        assert result.final_state == "SUCCESS"
        assert page.visited == []

    @pytest.mark.asyncio
    async def test_closed_tab_ends_the_wait(self):
        page = FakePage()
        await page.close()

        result = await NaverLogin(FakeSession(page)).wait_for_login(poll_interval=0.01)

        assert result.reason == "tab_closed"
