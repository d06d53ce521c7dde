# -*- coding: utf-8 -*-
"""Browser tooling for the NAVER / AUCTION scout"""

from .browser_launcher import BrowserLauncher
from .browser_manager import BrowserSession, LifecycleState
from .naver_login import LoginHandleResult, NaverLogin
from . import detection, humanize, utils

__all__ = [
    "BrowserLauncher",
    "BrowserSession",
    "LifecycleState",
    "LoginHandleResult",
    "NaverLogin",
    "detection",
    "humanize",
    "utils",
]
