# -*- coding: utf-8 -*-
"""Browser Session Manager for the NAVER / AUCTION scout

One persistent browser context shared by both pipelines, plus the "current tab"
pointer they borrow.
"""

import asyncio
import enum
from pathlib import Path
from typing import Optional

from playwright.async_api import BrowserContext, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError

from scout import config
from scout.errors import AuthenticationRequiredError, SessionInitError, SessionLostError
from scout_tools import detection, utils
from scout_tools.browser_launcher import BrowserLauncher


class LifecycleState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"


class BrowserSession:
    """
    Owns the browser engine and tracks which tab is active.

    Passed explicitly to the pipelines; there is no module-level instance.
    """

    def __init__(
        self,
        user_data_dir: str = "",
        custom_browser_path: str = "",
        user_agent: str = config.UA,
        launcher: Optional[BrowserLauncher] = None,
    ):
        self.user_data_dir = user_data_dir or config.default_user_data_dir()
        self.custom_browser_path = custom_browser_path
        self.user_agent = user_agent
        self.launcher = launcher or BrowserLauncher()
        self.playwright: Optional[Playwright] = None
        self.browser_context: Optional[BrowserContext] = None
        self.current_tab: Optional[Page] = None
        self.state = LifecycleState.UNINITIALIZED
        # Only one initialization may be in flight; later callers queue here
        self._init_lock = asyncio.Lock()
        self._tab_lock = asyncio.Lock()

    @property
    def is_ready(self) -> bool:
        return self.state is LifecycleState.READY and self.browser_context is not None

    def is_alive(self) -> bool:
        """Engine still up and the current tab still open"""
        return self.is_ready and self.current_tab is not None and not self.current_tab.is_closed()

    async def ensure_ready(self) -> BrowserContext:
        """
        Launch the browser unless it is already running

        Returns:
            BrowserContext: The shared context

        Raises:
            SessionInitError: No usable binary, or the launch was rejected
        """
        if self.is_ready:
            return self.browser_context

        async with self._init_lock:
            if self.is_ready:
                utils.logger.info("[BrowserSession] Already initialized (double-check), reusing context")
                return self.browser_context

            self.state = LifecycleState.INITIALIZING
            try:
                self.browser_context = await self._launch()
            except BaseException:
                self.state = LifecycleState.UNINITIALIZED
                await self._stop_playwright()
                raise
            self.browser_context.on("close", self._on_context_closed)
            self.state = LifecycleState.READY
            utils.logger.info(f"[BrowserSession] Browser ready: pages={len(self.browser_context.pages)}")
            return self.browser_context

    async def _launch(self) -> BrowserContext:
        executable_path, explicit = self.launcher.resolve(self.custom_browser_path)
        if explicit and not Path(executable_path).is_file():
            raise SessionInitError(SessionInitError.BINARY_NOT_FOUND, executable_path)

        user_data_path = Path(self.user_data_dir).resolve()
        user_data_path.mkdir(parents=True, exist_ok=True)
        utils.logger.info(f"[BrowserSession] Launching browser with profile {user_data_path}")

        # A context closed from the browser window leaves its driver running
        await self._stop_playwright()
        self.playwright = await async_playwright().start()
        launch_options = {
            "user_data_dir": str(user_data_path),
            "headless": False,
            "args": list(config.LAUNCH_ARGS),
            "ignore_default_args": list(config.IGNORED_DEFAULT_ARGS),
            "viewport": dict(config.WINDOW_SIZE),
            "user_agent": self.user_agent,
            "locale": "ko-KR",
            "extra_http_headers": {"Accept-Language": config.ACCEPT_LANGUAGE},
        }
        if executable_path:
            launch_options["executable_path"] = executable_path
        else:
            launch_options["channel"] = "chrome"

        try:
            context = await self.playwright.chromium.launch_persistent_context(**launch_options)
        except PlaywrightError as e:
            message = str(e)
            utils.logger.error(f"[BrowserSession] Launch failed: {message}")
            if "Executable doesn't exist" in message or "is not found at" in message:
                raise SessionInitError(SessionInitError.BINARY_NOT_FOUND, message) from e
            raise SessionInitError(SessionInitError.LAUNCH_REJECTED, message) from e

        await context.add_init_script(script=config.STEALTH_INIT_SCRIPT)
        return context

    def _on_context_closed(self, *_args) -> None:
        utils.logger.warning("[BrowserSession] Browser context closed")
        self.browser_context = None
        self.current_tab = None
        self.state = LifecycleState.UNINITIALIZED

    async def acquire_tab(self) -> Page:
        """Reuse a blank tab if there is one, otherwise open a new tab"""
        context = await self.ensure_ready()
        async with self._tab_lock:
            for page in context.pages:
                if not page.is_closed() and page.url in ("about:blank", ""):
                    utils.logger.info("[BrowserSession] Reusing blank tab")
                    self.current_tab = page
                    return page

            page = await context.new_page()
            page.set_default_navigation_timeout(config.NAVIGATION_TIMEOUT_MS)
            utils.logger.info("[BrowserSession] Created new tab")
            self.current_tab = page
            return page

    def set_current_tab(self, page: Page) -> None:
        self.current_tab = page

    def require_tab(self) -> Page:
        """The current tab, or SessionLostError when the engine or tab is gone"""
        if not self.is_ready:
            raise SessionLostError("browser session is no longer available")
        if self.current_tab is None or self.current_tab.is_closed():
            raise SessionLostError("browser tab was closed")
        return self.current_tab

    async def consolidate_tabs(self) -> Optional[Page]:
        """Keep the first tab, close the rest"""
        context = await self.ensure_ready()
        async with self._tab_lock:
            pages = [page for page in context.pages if not page.is_closed()]
            if not pages:
                return None
            keep, extra = pages[0], pages[1:]
            for page in extra:
                try:
                    await page.close()
                except PlaywrightError as e:
                    utils.logger.warning(f"[BrowserSession] Failed to close tab: {e}")
            if extra:
                utils.logger.info(f"[BrowserSession] Closed {len(extra)} extra tab(s)")
            self.current_tab = keep
            return keep

    async def prepare_for_service(self) -> Page:
        """
        Bring the session into a known state before a run

        Raises:
            SessionInitError: The browser could not be launched
            AuthenticationRequiredError: The NAVER session is not logged in
        """
        await self.ensure_ready()
        page = await self.consolidate_tabs()
        if page is None:
            page = await self.acquire_tab()
        if config.NAVER_DOMAIN not in (page.url or ""):
            await page.goto(config.NAVER_HOME_URL, wait_until="domcontentloaded")
        verdict = await detection.is_authenticated(page)
        if verdict.kind is not detection.VerdictKind.AUTHENTICATED:
            utils.logger.warning(f"[BrowserSession] Not authenticated: {verdict.reason}")
            raise AuthenticationRequiredError()
        return page

    async def _stop_playwright(self) -> None:
        if self.playwright:
            try:
                await self.playwright.stop()
            except Exception as e:
                utils.logger.error(f"[BrowserSession] Playwright stop failed: {e}")
            self.playwright = None

    async def cleanup(self) -> None:
        """Close the current tab, then the engine; safe to call repeatedly"""
        utils.logger.info("[BrowserSession] Cleaning up...")

        if self.current_tab is not None:
            try:
                if not self.current_tab.is_closed():
                    await self.current_tab.close()
            except Exception as e:
                utils.logger.error(f"[BrowserSession] Tab close failed: {e}")
            self.current_tab = None

        if self.browser_context is not None:
            try:
                await self.browser_context.close()
            except Exception as e:
                utils.logger.error(f"[BrowserSession] Context close failed: {e}")
            self.browser_context = None

        await self._stop_playwright()
        self.state = LifecycleState.UNINITIALIZED
        utils.logger.info("[BrowserSession] Cleanup complete")
