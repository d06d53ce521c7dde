# -*- coding: utf-8 -*-
"""Browser executable discovery

Locates a locally installed Chrome/Edge so the session does not depend on
Playwright's bundled Chromium, which is easier to fingerprint.
"""

import os
import platform
import subprocess
from pathlib import Path
from typing import List, Optional, Tuple

from scout_tools import utils


class BrowserLauncher:
    """Resolve browser executables for the current platform"""

    def __init__(self):
        self.system = platform.system()

    def _candidate_paths(self) -> List[str]:
        if self.system == "Windows":
            roots = [
                os.environ.get("PROGRAMFILES", r"C:\Program Files"),
                os.environ.get("PROGRAMFILES(X86)", r"C:\Program Files (x86)"),
                os.environ.get("LOCALAPPDATA", ""),
            ]
            suffixes = [
                r"Google\Chrome\Application\chrome.exe",
                r"Microsoft\Edge\Application\msedge.exe",
            ]
            return [os.path.join(root, suffix) for root in roots if root for suffix in suffixes]
        if self.system == "Darwin":
            return [
                "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
                str(Path.home() / "Applications/Google Chrome.app/Contents/MacOS/Google Chrome"),
                "/Applications/Microsoft Edge.app/Contents/MacOS/Microsoft Edge",
            ]
        return [
            "/usr/bin/google-chrome",
            "/usr/bin/google-chrome-stable",
            "/opt/google/chrome/chrome",
            "/usr/bin/microsoft-edge",
            "/usr/bin/chromium",
            "/usr/bin/chromium-browser",
        ]

    def _registry_path(self) -> Optional[str]:
        """Chrome's App Paths registry entry; Windows only"""
        if self.system != "Windows":
            return None
        import winreg

        key_path = r"SOFTWARE\Microsoft\Windows\CurrentVersion\App Paths\chrome.exe"
        for hive in (winreg.HKEY_LOCAL_MACHINE, winreg.HKEY_CURRENT_USER):
            try:
                with winreg.OpenKey(hive, key_path) as key:
                    value, _ = winreg.QueryValueEx(key, "")
            except OSError:
                continue
            if value and os.path.isfile(value):
                return value
        return None

    def detect_browser_paths(self) -> List[str]:
        """
        Detect installed browsers, most preferred first

        Returns:
            List[str]: Existing executable paths
        """
        found: List[str] = []
        registry_path = self._registry_path()
        if registry_path:
            found.append(registry_path)
        for candidate in self._candidate_paths():
            if os.path.isfile(candidate) and candidate not in found:
                found.append(candidate)
        return found

    def resolve(self, custom_browser_path: str = "") -> Tuple[Optional[str], bool]:
        """
        Pick the executable to launch

        Returns:
            (path, explicit): path is None when the Playwright channel should be used;
            explicit is True when the caller configured a custom path
        """
        if custom_browser_path:
            if os.path.isfile(custom_browser_path):
                utils.logger.info(f"[BrowserLauncher] Using custom browser: {custom_browser_path}")
            else:
                utils.logger.warning(f"[BrowserLauncher] Custom browser path does not exist: {custom_browser_path}")
            return custom_browser_path, True

        browser_paths = self.detect_browser_paths()
        if not browser_paths:
            utils.logger.info("[BrowserLauncher] No installed browser detected, falling back to chrome channel")
            return None, False

        browser_path = browser_paths[0]
        browser_name, browser_version = self.get_browser_info(browser_path)
        utils.logger.info(f"[BrowserLauncher] Detected: {browser_name} ({browser_version})")
        return browser_path, False

    def get_browser_info(self, browser_path: str) -> Tuple[str, str]:
        name = "Edge" if "edge" in browser_path.lower() else "Chrome"
        if self.system == "Windows":
            return name, "unknown"
        try:
            output = subprocess.run(
                [browser_path, "--version"],
                capture_output=True,
                text=True,
                timeout=5,
            ).stdout.strip()
        except (OSError, subprocess.SubprocessError):
            return name, "unknown"
        return name, output or "unknown"
