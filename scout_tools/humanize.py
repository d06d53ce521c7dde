# -*- coding: utf-8 -*-
"""Human-like input primitives

Jittered waits, typing with mistakes, pointer/scroll noise, organic navigation and
selective cleanup of automation fingerprints that keeps the login intact.
"""

import asyncio
import random
import re
from typing import Any, Dict, Iterable, Optional, Sequence, Union

from playwright.async_api import ElementHandle, Page
from playwright.async_api import Error as PlaywrightError

from scout import config
from scout.errors import InputTargetError
from scout_tools import utils

_COMPILED_AUTOMATION_PATTERNS = tuple(re.compile(p) for p in config.AUTOMATION_KEY_PATTERNS)

_INTERACTABLE_JS = """
(el) => {
  const rect = el.getBoundingClientRect();
  return rect.width > 0 && rect.height > 0 && !el.disabled && !el.readOnly;
}
"""

_NATURAL_LINK_JS = """
(url) => {
  document.querySelectorAll('a[data-natural-navigation]').forEach((el) => el.remove());
  const link = document.createElement('a');
  link.href = url;
  link.textContent = '.';
  link.setAttribute('data-natural-navigation', '1');
  link.style.cssText = 'position:fixed;left:45%;top:45%;width:24px;height:24px;display:block;z-index:2147483647;opacity:0.01;';
  document.body.appendChild(link);
}
"""

_STORAGE_CLEANUP_JS = """
async (rule) => {
  const allowed = (key) => rule.allow.some((a) => key.toLowerCase().includes(a.toLowerCase()));
  const patterns = rule.patterns.map((p) => new RegExp(p));
  const removable = (key) => !!key && !allowed(key) && patterns.some((re) => re.test(key));
  const purge = (store) => {
    const keys = [];
    for (let i = 0; i < store.length; i++) {
      const key = store.key(i);
      if (removable(key)) keys.push(key);
    }
    keys.forEach((key) => store.removeItem(key));
    return keys.length;
  };
  const removed = { localStorage: purge(window.localStorage), sessionStorage: purge(window.sessionStorage), indexedDB: 0 };
  if (window.indexedDB && indexedDB.databases) {
    const databases = await indexedDB.databases();
    databases.forEach((db) => {
      if (removable(db.name)) {
        indexedDB.deleteDatabase(db.name);
        removed.indexedDB += 1;
      }
    });
  }
  return removed;
}
"""


async def jittered_delay(
    min_ms: int, max_ms: int, token: Optional[utils.CancelToken] = None
) -> int:
    """Sleep for a uniform random duration in [min_ms, max_ms]; returns the ms chosen."""
    delay_ms = utils.random_between(min_ms, max_ms)
    if token is not None:
        await token.sleep(delay_ms / 1000)
    else:
        await asyncio.sleep(delay_ms / 1000)
    return delay_ms


def random_user_agent() -> str:
    return random.choice(config.USER_AGENTS)


def wrong_char(char: str) -> str:
    """A keyboard neighbour of `char`, keeping its case."""
    neighbours = config.KEYBOARD_NEIGHBOURS.get(char.lower())
    if neighbours:
        picked = random.choice(neighbours)
        return picked.upper() if char.isupper() else picked
    return chr(max(32, ord(char) + random.choice((-1, 1))))


async def _resolve_target(page: Page, target: Union[str, ElementHandle]) -> ElementHandle:
    if not isinstance(target, str):
        return target
    element = await page.query_selector(target)
    if element is None:
        raise InputTargetError(f"input not found: {target}")
    return element


async def type_naturally(
    page: Page,
    target: Union[str, ElementHandle],
    text: str,
    mistake_chance: float = 0.15,
    correction_chance: float = 1.0,
    min_delay: int = 80,
    max_delay: int = 200,
    clear_first: bool = True,
    keystroke_timeout_ms: int = 5000,
) -> None:
    """
    Type text one character at a time the way a person would

    Raises:
        InputTargetError: The element is missing or stops accepting input
    """
    element = await _resolve_target(page, target)
    try:
        if not await element.evaluate(_INTERACTABLE_JS):
            raise InputTargetError("input is not interactable")
        await element.click(timeout=keystroke_timeout_ms)
        if clear_first:
            await page.keyboard.press("Control+A")
            await page.keyboard.press("Delete")
            await jittered_delay(100, 300)

        for index, char in enumerate(text):
            if index > 0 and random.random() < mistake_chance:
                mistake = wrong_char(char)
                await element.type(mistake, delay=utils.random_between(min_delay, max_delay), timeout=keystroke_timeout_ms)
                await jittered_delay(200, 600)
                if random.random() < correction_chance:
                    await page.keyboard.press("Backspace")
                    await jittered_delay(100, 300)

            await element.type(char, delay=utils.random_between(min_delay, max_delay), timeout=keystroke_timeout_ms)

            # thinking pause
            if random.random() < 0.1:
                await jittered_delay(500, 1200)
    except PlaywrightError as e:
        raise InputTargetError(f"typing interrupted: {e}") from e


async def type_into_first(
    page: Page, selectors: Sequence[str], text: str, **options: Any
) -> Optional[str]:
    """Type into the first selector that resolves; returns it, or None if none did."""
    for selector in selectors:
        try:
            element = await page.query_selector(selector)
        except PlaywrightError as e:
            utils.logger.debug(f"[humanize] Selector {selector} failed: {e}")
            continue
        if element is None:
            continue
        try:
            await type_naturally(page, element, text, **options)
        except InputTargetError as e:
            utils.logger.warning(f"[humanize] Typing into {selector} failed: {e}")
            continue
        return selector
    return None


async def submit_search(page: Page, button_selectors: Iterable[str], enter_chance: float = 0.7) -> str:
    """Press Enter or click a search button; returns which one was used."""
    await jittered_delay(300, 900)
    if random.random() < enter_chance:
        await page.keyboard.press("Enter")
        return "enter"
    for selector in button_selectors:
        try:
            button = await page.query_selector(selector)
            if button is None or not await button.is_visible():
                continue
            await button.click(timeout=5000)
            return selector
        except PlaywrightError as e:
            utils.logger.debug(f"[humanize] Search button {selector} failed: {e}")
    await page.keyboard.press("Enter")
    return "enter"


async def simulate_mouse_movement(page: Page) -> None:
    try:
        viewport = page.viewport_size or config.WINDOW_SIZE
        for _ in range(random.randint(2, 4)):
            x = random.randint(50, max(60, viewport["width"] - 50))
            y = random.randint(50, max(60, viewport["height"] - 50))
            await page.mouse.move(x, y, steps=random.randint(5, 15))
            await jittered_delay(100, 400)
    except PlaywrightError as e:
        utils.logger.warning(f"[humanize] Mouse movement failed: {e}")


async def simulate_scroll(page: Page) -> None:
    try:
        for _ in range(random.randint(2, 4)):
            await page.mouse.wheel(0, random.randint(100, 600))
            await jittered_delay(300, 900)
        await page.evaluate("() => window.scrollTo({ top: 0, behavior: 'smooth' })")
    except PlaywrightError as e:
        utils.logger.warning(f"[humanize] Scroll simulation failed: {e}")


async def navigate_naturally(
    page: Page, url: str, timeout_ms: int = config.NATURAL_NAVIGATION_TIMEOUT_MS
) -> None:
    """Reach `url` by clicking an injected link so the visit carries a real referrer."""
    try:
        await page.evaluate(_NATURAL_LINK_JS, url)
        link = await page.query_selector("a[data-natural-navigation]")
        if link is not None:
            box = await link.bounding_box()
            if box:
                await page.mouse.move(
                    box["x"] + box["width"] / 2, box["y"] + box["height"] / 2, steps=random.randint(8, 20)
                )
                await jittered_delay(150, 450)
            async with page.expect_navigation(wait_until="domcontentloaded", timeout=timeout_ms):
                await link.click()
            return
    except PlaywrightError as e:
        utils.logger.warning(f"[humanize] Natural navigation failed, using goto: {e}")
    await page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)


def is_auth_key(name: str) -> bool:
    lowered = (name or "").lower()
    return any(marker.lower() in lowered for marker in config.AUTH_KEY_ALLOW_LIST)


def should_remove_key(name: str, patterns: Sequence["re.Pattern[str]"] = _COMPILED_AUTOMATION_PATTERNS) -> bool:
    """The auth allow-list wins over any remove pattern."""
    if not name or is_auth_key(name):
        return False
    return any(pattern.search(name) for pattern in patterns)


async def cleanup_automation_artifacts(page: Page) -> Dict[str, int]:
    """Remove fingerprinting cookies and storage keys; never touches login state."""
    removed = {"cookies": 0, "localStorage": 0, "sessionStorage": 0, "indexedDB": 0}
    if page is None or page.is_closed():
        return removed
    try:
        cookies = await page.context.cookies()
        for cookie in cookies:
            if not should_remove_key(cookie.get("name", "")):
                continue
            await page.context.clear_cookies(
                name=cookie["name"], domain=cookie.get("domain"), path=cookie.get("path")
            )
            removed["cookies"] += 1
    except PlaywrightError as e:
        utils.logger.warning(f"[humanize] Cookie cleanup failed: {e}")
    try:
        storage = await page.evaluate(
            _STORAGE_CLEANUP_JS,
            {"allow": list(config.AUTH_KEY_ALLOW_LIST), "patterns": list(config.AUTOMATION_KEY_PATTERNS)},
        )
        for key in ("localStorage", "sessionStorage", "indexedDB"):
            removed[key] = int((storage or {}).get(key) or 0)
    except PlaywrightError as e:
        utils.logger.warning(f"[humanize] Storage cleanup failed: {e}")
    utils.logger.info(f"[humanize] Automation artifacts removed: {removed}")
    return removed
