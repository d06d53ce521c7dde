"""Sourcing pipeline: search keywords and relay the matching listings."""

from __future__ import annotations

import asyncio
import traceback
from typing import Any

from playwright.async_api import Page

from scout.config import LOG, Settings
from scout.data import CommandResult, Platform, RunProgress, SearchResult, SourcingConfig
from scout.errors import EmptyWorkError, RunAbortedError, ScoutError
from scout.relay import RelayClient
from scout.scraper import ShoppingSearch, filter_listings_by_price
from scout_tools import detection, humanize
from scout_tools.browser_manager import BrowserSession
from scout_tools.utils import CancelToken


def build_search_payload(
    keyword: str, cfg: SourcingConfig, platform: Platform, result: SearchResult, listings: list
) -> dict[str, Any]:
    return {
        "squery": keyword,
        "usernum": cfg.user_id,
        "spricelimit": cfg.price_min,
        "epricelimit": cfg.price_max,
        "bestyn": "Y" if cfg.include_best else "N",
        "newyn": "Y" if cfg.include_new else "N",
        "platforms": platform.value,
        "result": {
            "relatedTags": list(result.related_tags),
            "uniqueMenuTag": list(result.menu_tags),
            "list": [listing.to_payload() for listing in listings],
        },
    }


class SourcingPipeline:
    def __init__(
        self,
        session: BrowserSession,
        relay: RelayClient,
        settings: Settings,
        search: ShoppingSearch | None = None,
    ) -> None:
        self.session = session
        self.relay = relay
        self.settings = settings
        self.search = search or ShoppingSearch()
        self.progress = RunProgress()
        self._token = CancelToken()
        self._task: asyncio.Task | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def _validate(self, payload: dict[str, Any] | SourcingConfig) -> SourcingConfig | CommandResult:
        if self._running:
            return CommandResult(False, "sourcing already running")
        if isinstance(payload, SourcingConfig):
            cfg = payload
        else:
            try:
                cfg = SourcingConfig.from_payload(payload)
            except ValueError as exc:
                return CommandResult(False, f"invalid configuration: {exc}")
        if not cfg.user_id:
            return CommandResult(False, "invalid configuration: user id is required")
        return cfg

    def _begin(self) -> None:
        self._running = True
        self._token = CancelToken()
        self.progress.begin("starting")

    def start(self, payload: dict[str, Any] | SourcingConfig) -> CommandResult:
        cfg = self._validate(payload)
        if isinstance(cfg, CommandResult):
            return cfg
        self._begin()
        self._task = asyncio.create_task(self._execute(cfg))
        return CommandResult(True, "sourcing started")

    async def run(self, payload: dict[str, Any] | SourcingConfig) -> CommandResult:
        cfg = self._validate(payload)
        if isinstance(cfg, CommandResult):
            return cfg
        self._begin()
        return await self._execute(cfg)

    async def wait(self) -> CommandResult | None:
        if self._task is None:
            return None
        return await self._task

    def stop(self) -> CommandResult:
        if not self._running:
            return CommandResult(False, "sourcing is not running")
        self._token.cancel()
        self.progress.log("Stop requested")
        return CommandResult(True, "stop requested")

    def snapshot(self) -> dict[str, Any]:
        return self.progress.snapshot()

    async def _execute(self, cfg: SourcingConfig) -> CommandResult:
        progress = self.progress
        relayed = 0
        try:
            progress.status = "preparing session"
            page = await self.session.prepare_for_service()

            keywords = list(cfg.keywords)
            if not keywords:
                raise EmptyWorkError("no keywords to search")
            progress.total = len(keywords)
            progress.log(f"Sourcing {len(keywords)} keywords ({cfg.platforms})")

            progress.status = "initial search"
            await self.search.search_from_home(page, keywords[0])
            results_tab = await self.search.open_results_tab(self.session, page)

            progress.status = "processing"
            stopped = False
            for index, keyword in enumerate(keywords):
                if self._token.cancelled:
                    stopped = True
                    break
                progress.current_index = index + 1
                progress.current_label = keyword
                progress.log(f"[{index + 1}/{len(keywords)}] {keyword}")
                relayed += await self._process_keyword(results_tab, index, keyword, cfg)

                if index < len(keywords) - 1:
                    low, high = self.settings.keyword_delay_ms
                    await humanize.jittered_delay(low, high, token=self._token)

            summary = {"totalKeywords": len(keywords), "relayed": relayed}
            if stopped:
                progress.log("Sourcing stopped")
                progress.reset("stopped")
                return CommandResult(True, "sourcing stopped", summary)
            progress.finish("completed")
            progress.log(f"Sourcing completed: {relayed} results relayed")
            return CommandResult(True, "sourcing completed", summary)
        except ScoutError as exc:
            progress.log(f"Sourcing failed: {exc}")
            progress.reset(f"failed: {exc}")
            return CommandResult(False, str(exc))
        except Exception as exc:
            LOG.error("%s: %s", type(exc).__name__, exc)
            LOG.debug("Traceback:\n%s", traceback.format_exc())
            progress.log(f"Sourcing failed unexpectedly: {exc}")
            progress.reset(f"failed: {exc}")
            return CommandResult(False, f"unexpected error: {exc}")
        finally:
            self._running = False

    async def _process_keyword(self, tab: Page, index: int, keyword: str, cfg: SourcingConfig) -> int:
        """Search and relay one keyword; returns how many relay posts succeeded."""
        blocked = (await detection.is_blocked(tab)).kind is detection.VerdictKind.BLOCKED
        if blocked:
            self.progress.log("Results tab is blocked, using data fetch only")
        elif index > 0:
            try:
                await self.search.search_in_results_tab(tab, keyword)
            except RunAbortedError:
                raise
            except Exception as exc:
                self.progress.log(f"Search for {keyword!r} failed: {exc}")
                return 0

        relayed = 0
        if cfg.include_naver:
            relayed += await self._extract_and_relay(
                Platform.NAVER, keyword, cfg, lambda: self.search.collect_naver(tab, keyword, blocked=blocked)
            )
        if cfg.include_auction:
            relayed += await self._extract_and_relay(
                Platform.AUCTION, keyword, cfg, lambda: self.search.collect_auction(tab, keyword)
            )
        return relayed

    async def _extract_and_relay(self, platform: Platform, keyword: str, cfg: SourcingConfig, collect) -> int:
        try:
            result = await collect()
            listings = filter_listings_by_price(result.listings, cfg.price_min, cfg.price_max)
            if not listings:
                self.progress.log(f"{platform.value} {keyword!r}: no matching listings")
                return 0
            payload = build_search_payload(keyword, cfg, platform, result, listings)
            await self.relay.post_search_result(payload, platform)
        except RunAbortedError:
            raise
        except Exception as exc:
            LOG.debug("Keyword traceback:\n%s", traceback.format_exc())
            self.progress.log(f"{platform.value} {keyword!r} failed: {type(exc).__name__}: {exc}")
            return 0
        self.progress.log(f"{platform.value} {keyword!r}: relayed {len(listings)} listings")
        return 1
