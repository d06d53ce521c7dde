# -*- coding: utf-8 -*-
"""NAVER Login Bridge

Checks whether the shared session is logged in and hands the login page to the
operator. Credentials are never touched here.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from scout import config
from scout_tools import utils
from scout_tools.browser_manager import BrowserSession
from scout_tools.detection import DetectionVerdict, VerdictKind, is_authenticated


@dataclass
class LoginHandleResult:
    ok: bool
    reason: str
    final_state: str
    decision_trace: list[dict[str, Any]] = field(default_factory=list)
    elapsed_sec: float = 0.0


class NaverLogin:
    """Login state checks and the login-page hand-off"""

    def __init__(self, session: BrowserSession, login_timeout_sec: int = 300):
        self.session = session
        self.login_timeout_sec = max(30, int(login_timeout_sec))
        self._decision_trace: list[dict[str, Any]] = []
        self._started_at: float = 0.0

    def _append_trace(self, state: str, verdict: Optional[DetectionVerdict] = None, note: str = "") -> None:
        event: dict[str, Any] = {"state": state, "note": note, "ts": round(time.time(), 3)}
        if self._started_at > 0:
            event["elapsed_sec"] = round(max(0.0, time.monotonic() - self._started_at), 3)
        if verdict is not None:
            event.update({"kind": verdict.kind.value, "reason": verdict.reason, "url": verdict.signals.get("url", "")})
        self._decision_trace.append(event)

    def _finalize(self, ok: bool, reason: str, final_state: str) -> LoginHandleResult:
        elapsed_sec = 0.0
        if self._started_at > 0:
            elapsed_sec = round(max(0.0, time.monotonic() - self._started_at), 3)
        return LoginHandleResult(
            ok=bool(ok),
            reason=reason,
            final_state=final_state,
            decision_trace=list(self._decision_trace),
            elapsed_sec=elapsed_sec,
        )

    async def _home_tab(self) -> Page:
        page = self.session.current_tab
        if page is None or page.is_closed():
            page = await self.session.acquire_tab()
        if config.NAVER_DOMAIN not in (page.url or "") or config.NAVER_LOGIN_PATH in (page.url or ""):
            await page.goto(config.NAVER_HOME_URL, wait_until="domcontentloaded")
        return page

    async def is_authenticated(self) -> bool:
        page = await self._home_tab()
        verdict = await is_authenticated(page)
        utils.logger.info(f"[NaverLogin] Login status: {verdict.kind.value} ({verdict.reason})")
        return verdict.kind is VerdictKind.AUTHENTICATED

    async def prompt_login(self) -> bool:
        """Open the NAVER login form in the current tab for the operator"""
        page = await self._home_tab()
        for selector in config.NAVER_LOGIN_LINK_SELECTORS:
            try:
                link = await page.query_selector(selector)
                if link is None:
                    continue
                async with page.expect_navigation(wait_until="domcontentloaded"):
                    await link.click()
                utils.logger.info(f"[NaverLogin] Opened login page via {selector}")
                break
            except PlaywrightError as e:
                utils.logger.warning(f"[NaverLogin] Login link {selector} failed: {e}")
        if config.NAVER_LOGIN_PATH not in (page.url or ""):
            await page.goto(config.NAVER_LOGIN_URL, wait_until="domcontentloaded")
        try:
            await page.bring_to_front()
            await page.focus(config.NAVER_LOGIN_ID_SELECTOR, timeout=5000)
        except PlaywrightError as e:
            utils.logger.warning(f"[NaverLogin] Could not focus login form: {e}")
        return config.NAVER_LOGIN_PATH in (page.url or "")

    async def wait_for_login(self, poll_interval: float = 1.0) -> LoginHandleResult:
        """Poll until the operator finishes logging in or the timeout passes"""
        self._decision_trace = []
        self._started_at = time.monotonic()
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.login_timeout_sec
        utils.logger.warning(f"[NaverLogin] Waiting for login (timeout: {self.login_timeout_sec}s)")

        while loop.time() < deadline:
            page = self.session.current_tab
            if page is None or page.is_closed():
                self._append_trace("FAILED", note="tab closed while waiting")
                return self._finalize(False, "tab_closed", "FAILED")
            if config.NAVER_LOGIN_PATH in (page.url or ""):
                self._append_trace("WAITING", note="still on login form")
            else:
                verdict = await is_authenticated(page)
                self._append_trace("CHECK", verdict)
                if verdict.kind is VerdictKind.AUTHENTICATED:
                    return self._finalize(True, "authenticated", "SUCCESS")
                if verdict.signals.get("session_cookie") and config.NAVER_DOMAIN in (page.url or ""):
                    # Cookie arrived but we are not on the home page yet
                    await page.goto(config.NAVER_HOME_URL, wait_until="domcontentloaded")
            await asyncio.sleep(poll_interval)

        self._append_trace("TIMEOUT", note="login timeout")
        return self._finalize(False, "login_timeout", "TIMEOUT")
