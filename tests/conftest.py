"""
Pytest configuration and fixtures for the scout tests
"""

import pytest

from scout.config import Settings


class FakeKeyboard:
    def __init__(self):
        self.pressed = []

    async def press(self, key):
        self.pressed.append(key)


class FakeMouse:
    def __init__(self):
        self.moves = []

    async def move(self, x, y, steps=1):
        self.moves.append((x, y))

    async def wheel(self, dx, dy):
        self.moves.append(("wheel", dy))


class FakeContext:
    def __init__(self, cookies=None):
        self._cookies = list(cookies or [])
        self.cleared = []
        self.pages = []

    async def cookies(self):
        return list(self._cookies)

    async def clear_cookies(self, name=None, domain=None, path=None):
        self.cleared.append(name)
        self._cookies = [c for c in self._cookies if c["name"] != name]


class FakePage:
    """Just enough of a Playwright page for the detection and pipeline code."""

    def __init__(self, url="https://www.naver.com/", title="NAVER", cookies=None, evaluate=None):
        self.url = url
        self._title = title
        self._closed = False
        self._evaluate = evaluate
        self.context = FakeContext(cookies)
        self.context.pages.append(self)
        self.keyboard = FakeKeyboard()
        self.mouse = FakeMouse()
        self.viewport_size = {"width": 1366, "height": 768}
        self.visited = []

    def is_closed(self):
        return self._closed

    async def close(self):
        self._closed = True

    async def title(self):
        return self._title

    async def evaluate(self, script, arg=None):
        if self._evaluate is None:
            return None
        return self._evaluate(script, arg)

    async def query_selector(self, selector):
        return None

    async def goto(self, url, **kwargs):
        self.visited.append(url)
        self.url = url


class FakeSession:
    """Stands in for BrowserSession in pipeline tests."""

    def __init__(self, page=None):
        self.current_tab = page or FakePage()
        self.prepare_calls = 0

    async def prepare_for_service(self):
        self.prepare_calls += 1
        return self.current_tab

    def require_tab(self):
        return self.current_tab

    def set_current_tab(self, page):
        self.current_tab = page

    def is_alive(self):
        return not self.current_tab.is_closed()


@pytest.fixture
def fake_page():
    return FakePage()


@pytest.fixture
def fake_session(fake_page):
    return FakeSession(fake_page)


@pytest.fixture
def fast_settings():
    """Settings with the human-pacing delays switched off."""
    return Settings(item_delay_ms=(0, 0), keyword_delay_ms=(0, 0), captcha_max_wait_sec=1)
