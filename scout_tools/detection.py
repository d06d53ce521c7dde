# -*- coding: utf-8 -*-
"""Page state detection

Authenticated-session, CAPTCHA and traffic-block checks. Each check reads the raw
signals from the tab once and hands them to a pure verdict function, so the
decision can be tested without a browser.
"""

import asyncio
import enum
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from scout import config
from scout_tools import utils


class VerdictKind(str, enum.Enum):
    AUTHENTICATED = "authenticated"
    # Also the "nothing detected" outcome of the captcha and block probes
    ANONYMOUS = "anonymous"
    CAPTCHA = "captcha"
    BLOCKED = "blocked"
    UNKNOWN = "unknown"


@dataclass
class DetectionVerdict:
    kind: VerdictKind
    signals: Dict[str, Any] = field(default_factory=dict)
    reason: str = ""
    timestamp: float = field(default_factory=time.time)


@dataclass
class CaptchaWaitResult:
    resolved: bool
    detected: bool
    reason: str
    polls: int = 0
    elapsed_sec: float = 0.0


Detector = Callable[[Page], Awaitable[DetectionVerdict]]
Hook = Optional[Callable[[DetectionVerdict], Any]]

_NEUTRALIZE_LOGIN_FORM_JS = """
(selector) => {
  const form = document.querySelector(selector);
  if (!form) return false;
  if (!form.dataset.scoutNeutralized) {
    const block = (event) => { event.preventDefault(); event.stopPropagation(); };
    form.addEventListener('submit', block, true);
    form.querySelectorAll('button, input[type="submit"]').forEach((el) => el.addEventListener('click', block, true));
    form.dataset.scoutNeutralized = '1';
  }
  return true;
}
"""

_CAPTCHA_PROBE_JS = """
(selectors) => {
  const script = document.querySelector(selectors.script);
  const frame = document.querySelector(selectors.frame);
  const container = document.querySelector(selectors.container);
  const heights = [frame, container].filter(Boolean).map((el) => el.getBoundingClientRect().height);
  if (script && typeof window.WtmCaptcha !== 'undefined') {
    const app = document.querySelector('#app');
    if (app) heights.push(app.getBoundingClientRect().height);
  }
  return {
    hasScript: !!script,
    hasFrame: !!frame,
    hasContainer: !!container,
    height: heights.length ? Math.max(...heights) : 0,
  };
}
"""

_BLOCK_PROBE_JS = """
(probe) => {
  const text = (document.body && document.body.innerText) || '';
  const phrase = probe.phrases.find((p) => text.includes(p)) || '';
  return {
    phrase,
    hasErrorClass: document.querySelector(probe.errorSelector) !== null,
    title: document.title || '',
    hasHelpLink: probe.helpSelectors.some((s) => document.querySelector(s) !== null),
  };
}
"""


def authentication_verdict(
    url: str, cookie_names: Iterable[str], has_login_form: bool, title: str
) -> DetectionVerdict:
    """All four signals must hold; any single miss means Anonymous."""
    signals = {
        "not_login_url": config.NAVER_LOGIN_PATH not in (url or ""),
        "session_cookie": config.NAVER_SESSION_COOKIE in set(cookie_names),
        "no_login_form": not has_login_form,
        "home_title": (title or "").strip() == config.NAVER_HOME_TITLE,
        "url": url or "",
        "title": title or "",
    }
    failed = [name for name in ("not_login_url", "session_cookie", "no_login_form", "home_title") if not signals[name]]
    if failed:
        return DetectionVerdict(VerdictKind.ANONYMOUS, signals, reason="missing:" + ",".join(failed))
    return DetectionVerdict(VerdictKind.AUTHENTICATED, signals, reason="all_signals_present")


def captcha_verdict(probe: Optional[Dict[str, Any]], url: str = "") -> DetectionVerdict:
    probe = probe or {}
    present = bool(probe.get("hasScript") or probe.get("hasFrame") or probe.get("hasContainer"))
    height = float(probe.get("height") or 0)
    signals = {
        "script": bool(probe.get("hasScript")),
        "frame": bool(probe.get("hasFrame")),
        "container": bool(probe.get("hasContainer")),
        "height": height,
        "url": url,
    }
    if present and height >= config.CAPTCHA_MIN_HEIGHT_PX:
        return DetectionVerdict(VerdictKind.CAPTCHA, signals, reason="captcha_rendered")
    if present:
        return DetectionVerdict(VerdictKind.ANONYMOUS, signals, reason="captcha_markup_not_rendered")
    return DetectionVerdict(VerdictKind.ANONYMOUS, signals, reason="no_captcha")


def block_verdict(
    phrase: str, has_error_class: bool, title: str, has_help_link: bool, url: str = ""
) -> DetectionVerdict:
    title = title or ""
    generic_title = title == config.BLOCK_GENERIC_TITLE or len(title) < config.BLOCK_GENERIC_TITLE_MAX_LEN
    signals = {
        "block_phrase": phrase or "",
        "error_class": bool(has_error_class),
        "generic_title": generic_title,
        "help_link": bool(has_help_link),
        "title": title,
        "url": url,
    }
    if phrase:
        return DetectionVerdict(VerdictKind.BLOCKED, signals, reason="block_phrase")
    if has_error_class:
        return DetectionVerdict(VerdictKind.BLOCKED, signals, reason="error_page_class")
    if generic_title and has_help_link:
        return DetectionVerdict(VerdictKind.BLOCKED, signals, reason="generic_title_with_help_link")
    return DetectionVerdict(VerdictKind.ANONYMOUS, signals, reason="not_blocked")


def _closed_verdict(page: Page) -> Optional[DetectionVerdict]:
    if page is None or page.is_closed():
        return DetectionVerdict(VerdictKind.UNKNOWN, {"closed": True}, reason="tab_closed")
    return None


async def is_authenticated(page: Page) -> DetectionVerdict:
    closed = _closed_verdict(page)
    if closed:
        return closed
    url = page.url or ""
    try:
        cookies = await page.context.cookies()
    except PlaywrightError as e:
        utils.logger.warning(f"[detection] Cookie read failed: {e}")
        cookies = []
    _, cookie_dict = utils.convert_cookies(cookies)
    try:
        has_login_form = bool(await page.evaluate(_NEUTRALIZE_LOGIN_FORM_JS, config.NAVER_LOGIN_FORM_SELECTOR))
    except PlaywrightError as e:
        # Unreadable DOM counts as "form may be present"
        utils.logger.warning(f"[detection] Login form probe failed: {e}")
        has_login_form = True
    if has_login_form:
        utils.logger.info("[detection] Login form present, submit neutralized")
    try:
        title = await page.title()
    except PlaywrightError as e:
        utils.logger.warning(f"[detection] Title read failed: {e}")
        title = ""
    return authentication_verdict(url, cookie_dict.keys(), has_login_form, title)


async def is_captcha(page: Page) -> DetectionVerdict:
    closed = _closed_verdict(page)
    if closed:
        return closed
    try:
        probe = await page.evaluate(
            _CAPTCHA_PROBE_JS,
            {
                "script": config.CAPTCHA_SCRIPT_SELECTOR,
                "frame": config.CAPTCHA_FRAME_SELECTOR,
                "container": config.CAPTCHA_CONTAINER_SELECTOR,
            },
        )
    except PlaywrightError as e:
        utils.logger.warning(f"[detection] Captcha probe failed: {e}")
        return DetectionVerdict(VerdictKind.UNKNOWN, {"error": str(e)}, reason="probe_failed")
    return captcha_verdict(probe, page.url or "")


async def is_blocked(page: Page) -> DetectionVerdict:
    closed = _closed_verdict(page)
    if closed:
        return closed
    try:
        probe = await page.evaluate(
            _BLOCK_PROBE_JS,
            {
                "phrases": list(config.BLOCK_PHRASES),
                "errorSelector": config.BLOCK_ERROR_SELECTOR,
                "helpSelectors": list(config.BLOCK_HELP_LINK_SELECTORS),
            },
        )
    except PlaywrightError as e:
        utils.logger.warning(f"[detection] Block probe failed: {e}")
        return DetectionVerdict(VerdictKind.UNKNOWN, {"error": str(e)}, reason="probe_failed")
    probe = probe or {}
    verdict = block_verdict(
        probe.get("phrase") or "",
        bool(probe.get("hasErrorClass")),
        probe.get("title") or "",
        bool(probe.get("hasHelpLink")),
        page.url or "",
    )
    if verdict.kind is VerdictKind.BLOCKED:
        utils.logger.warning(f"[detection] Block page detected ({verdict.reason}) at {page.url}")
    return verdict


async def _notify(hook: Hook, verdict: DetectionVerdict) -> None:
    if hook is None:
        return
    result = hook(verdict)
    if asyncio.iscoroutine(result):
        await result


async def await_captcha_resolution(
    page: Page,
    on_detected: Hook = None,
    on_resolved: Hook = None,
    max_wait: float = config.DEFAULT_CAPTCHA_MAX_WAIT_SEC,
    poll_interval: float = config.CAPTCHA_POLL_INTERVAL_SEC,
    detector: Detector = is_captcha,
    token: Optional[utils.CancelToken] = None,
) -> CaptchaWaitResult:
    """
    Wait for a person to solve a captcha shown in the tab

    Args:
        on_detected: Called once when the captcha is first seen
        on_resolved: Called once the captcha is gone
        max_wait: Upper bound in seconds before giving up
        poll_interval: Seconds between checks
        detector: Captcha predicate, replaceable in tests
        token: Stops the wait early when cancelled

    Returns:
        CaptchaWaitResult
    """
    verdict = await detector(page)
    if verdict.kind is not VerdictKind.CAPTCHA:
        return CaptchaWaitResult(resolved=True, detected=False, reason="no_captcha")

    utils.logger.warning(f"[detection] Captcha detected at {page.url}, waiting up to {max_wait}s")
    await _notify(on_detected, verdict)

    loop = asyncio.get_running_loop()
    started = loop.time()
    deadline = started + max_wait
    polls = 0
    while True:
        remaining = deadline - loop.time()
        if remaining <= 0:
            break
        await asyncio.sleep(min(poll_interval, remaining))
        if token is not None and token.cancelled:
            return CaptchaWaitResult(False, True, "cancelled", polls, round(loop.time() - started, 3))
        polls += 1
        verdict = await detector(page)
        if verdict.kind is not VerdictKind.CAPTCHA:
            utils.logger.info(f"[detection] Captcha resolved after {polls} checks")
            await _notify(on_resolved, verdict)
            return CaptchaWaitResult(True, True, "resolved", polls, round(loop.time() - started, 3))

    utils.logger.error(f"[detection] Captcha not resolved within {max_wait}s")
    return CaptchaWaitResult(False, True, "timeout", polls, round(loop.time() - started, 3))
