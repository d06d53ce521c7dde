"""Collection pipeline: scrape every store on the relay's work list."""

from __future__ import annotations

import asyncio
import traceback
from typing import Any

from scout.config import LOG, Settings
from scout.data import CommandResult, ExtractionResult, RunProgress, WorkItem
from scout.errors import (
    BlockDetectedError,
    CaptchaTimeoutError,
    EmptyWorkError,
    QuotaExceededError,
    RunAbortedError,
    ScoutError,
)
from scout.relay import RelayClient
from scout.scraper import StoreAdapter, default_adapters
from scout_tools import detection, humanize
from scout_tools.browser_manager import BrowserSession
from scout_tools.utils import CancelToken, random_between


def build_collection_payload(item: WorkItem, user_id: str, result: ExtractionResult) -> dict[str, Any]:
    return {
        "urlnum": item.id,
        "usernum": user_id,
        "spricelimit": item.price_min,
        "epricelimit": item.price_max,
        "platforms": item.raw_platform,
        "bestyn": "Y" if item.include_best else "N",
        "newyn": "Y" if item.include_new else "N",
        "result": {
            "error": result.error,
            "errorMsg": result.message,
            "list": [product.to_payload() for product in result.products],
        },
    }


class CollectionPipeline:
    def __init__(
        self,
        session: BrowserSession,
        relay: RelayClient,
        settings: Settings,
        adapters: dict | None = None,
    ) -> None:
        self.session = session
        self.relay = relay
        self.settings = settings
        self.progress = RunProgress()
        self._adapters = adapters
        self._token = CancelToken()
        self._task: asyncio.Task | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def _rejection(self, user_id: str) -> CommandResult | None:
        if self._running:
            return CommandResult(False, "collection already running")
        if not str(user_id or "").strip():
            return CommandResult(False, "invalid configuration: user id is required")
        return None

    def _begin(self) -> None:
        self._running = True
        self._token = CancelToken()
        self.progress.begin("starting")

    def start(self, user_id: str) -> CommandResult:
        """Accept or reject immediately; the run continues in the background."""
        rejection = self._rejection(user_id)
        if rejection:
            return rejection
        self._begin()
        self._task = asyncio.create_task(self._execute(str(user_id).strip()))
        return CommandResult(True, "collection started")

    async def run(self, user_id: str) -> CommandResult:
        rejection = self._rejection(user_id)
        if rejection:
            return rejection
        self._begin()
        return await self._execute(str(user_id).strip())

    async def wait(self) -> CommandResult | None:
        if self._task is None:
            return None
        return await self._task

    def stop(self) -> CommandResult:
        if not self._running:
            return CommandResult(False, "collection is not running")
        self._token.cancel()
        self.progress.log("Stop requested")
        return CommandResult(True, "stop requested")

    def snapshot(self) -> dict[str, Any]:
        return self.progress.snapshot()

    async def _execute(self, user_id: str) -> CommandResult:
        progress = self.progress
        adapters = self._adapters or default_adapters(self.settings.captcha_max_wait_sec, self._token)
        attempted = succeeded = failed = 0
        try:
            progress.status = "fetching work list"
            work = await self.relay.fetch_work_list(user_id)
            if work.today_stop:
                raise QuotaExceededError()
            if not work.items:
                raise EmptyWorkError("no store URLs to process")
            progress.total = len(work.items)
            progress.log(f"Received {len(work.items)} store URLs")

            progress.status = "preparing session"
            await self.session.prepare_for_service()

            progress.status = "processing"
            stopped = False
            for index, item in enumerate(work.items):
                if self._token.cancelled:
                    stopped = True
                    break
                page = self.session.require_tab()

                if (await detection.is_blocked(page)).kind is detection.VerdictKind.BLOCKED:
                    raise BlockDetectedError()
                wait = await detection.await_captcha_resolution(
                    page,
                    on_detected=lambda _v: progress.log("Captcha detected, waiting for it to be solved"),
                    on_resolved=lambda _v: progress.log("Captcha solved, resuming"),
                    max_wait=self.settings.captcha_max_wait_sec,
                    token=self._token,
                )
                if not wait.resolved:
                    if wait.reason == "cancelled":
                        stopped = True
                        break
                    raise CaptchaTimeoutError()

                progress.current_index = index + 1
                progress.current_label = item.label
                adapter: StoreAdapter | None = adapters.get(item.platform) if item.platform else None
                if adapter is None:
                    progress.log(f"Skipping {item.label}: unsupported platform {item.raw_platform!r}")
                else:
                    attempted += 1
                    progress.log(f"[{index + 1}/{len(work.items)}] {item.platform.value} {item.label}")
                    try:
                        result = await adapter.extract(page, item)
                        payload = build_collection_payload(item, user_id, result)
                        response = await self.relay.post_collection_result(payload, item.platform, work.insert_url)
                        if response.get("todayStop"):
                            raise QuotaExceededError()
                        succeeded += 1
                        outcome = result.message if result.error else f"{len(result.products)} products"
                        progress.log(f"Relayed {item.label}: {outcome}")
                    except RunAbortedError:
                        raise
                    except Exception as exc:
                        failed += 1
                        LOG.debug("Item traceback:\n%s", traceback.format_exc())
                        progress.log(f"Failed {item.label}: {type(exc).__name__}: {exc}")

                    if index < len(work.items) - 1 and not await self._wait_between_items():
                        stopped = True
                await humanize.cleanup_automation_artifacts(self.session.current_tab)
                if stopped:
                    break

            totals = {"totalItems": len(work.items), "attempted": attempted, "succeeded": succeeded, "failed": failed}
            if stopped:
                progress.log("Collection stopped")
                progress.reset("stopped")
                return CommandResult(True, "collection stopped", totals)
            progress.finish("completed")
            progress.log(f"Collection completed: {succeeded}/{attempted} relayed")
            return CommandResult(True, "collection completed", totals)
        except ScoutError as exc:
            progress.log(f"Collection failed: {exc}")
            progress.reset(f"failed: {exc}")
            return CommandResult(False, str(exc), {"attempted": attempted, "succeeded": succeeded, "failed": failed})
        except Exception as exc:
            LOG.error("%s: %s", type(exc).__name__, exc)
            LOG.debug("Traceback:\n%s", traceback.format_exc())
            progress.log(f"Collection failed unexpectedly: {exc}")
            progress.reset(f"failed: {exc}")
            return CommandResult(False, f"unexpected error: {exc}")
        finally:
            self._running = False

    async def _wait_between_items(self) -> bool:
        low, high = self.settings.item_delay_ms
        seconds = random_between(low, high) / 1000

        def tick(remaining: int) -> None:
            self.progress.wait_seconds_remaining = remaining

        finished = await self._token.sleep(seconds, on_tick=tick)
        self.progress.wait_seconds_remaining = None
        return finished
