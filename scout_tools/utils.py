# -*- coding: utf-8 -*-
"""Utility functions for the NAVER / AUCTION scout"""

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional


# Initialize logging
def init_logging_config():
    level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(name)s %(levelname)s (%(filename)s:%(lineno)d) - %(message)s",
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    _logger = logging.getLogger("NaverScout")
    _logger.setLevel(level)

    # Disable httpx INFO level logs
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return _logger


logger = init_logging_config()


def convert_cookies(cookies_list):
    """
    Convert Playwright cookies to dict format

    Args:
        cookies_list: List of cookies from browser_context.cookies()

    Returns:
        tuple: (cookies_list, cookies_dict)
    """
    if not cookies_list:
        return [], {}

    cookies_dict = {}
    for cookie in cookies_list:
        name = cookie.get('name', '')
        value = cookie.get('value', '')
        if name:
            cookies_dict[name] = value

    return cookies_list, cookies_dict


def random_between(min_value: int, max_value: int) -> int:
    """Uniform integer in [min_value, max_value], tolerating swapped bounds."""
    low, high = sorted((int(min_value), int(max_value)))
    return random.randint(low, high)


class CancelToken:
    """Cooperative stop flag handed to every suspension point of a run."""

    def __init__(self):
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    async def sleep(
        self,
        seconds: float,
        on_tick: Optional[Callable[[int], Optional[Awaitable[None]]]] = None,
    ) -> bool:
        """
        Sleep in one-second ticks so a stop request is honoured within a second

        Args:
            seconds: Total duration to wait
            on_tick: Called with the whole seconds still remaining before each tick

        Returns:
            bool: False if the token was cancelled before the wait finished
        """
        remaining = max(0.0, float(seconds))
        while remaining > 0:
            if self._cancelled:
                return False
            if on_tick is not None:
                result = on_tick(int(remaining + 0.999))
                if asyncio.iscoroutine(result):
                    await result
            step = min(1.0, remaining)
            await asyncio.sleep(step)
            remaining -= step
        return not self._cancelled
