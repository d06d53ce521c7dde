"""Command surface for both pipelines and the CLI definition."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
import traceback
from pathlib import Path
from typing import Any

from playwright.async_api import Error as PlaywrightError

from scout.collection import CollectionPipeline
from scout.config import LOG, UA, Settings, load_simple_dotenv
from scout.data import CommandResult, SourcingConfig
from scout.errors import ScoutError
from scout.relay import RelayClient
from scout.sourcing import SourcingPipeline
from scout_tools import humanize
from scout_tools.browser_manager import BrowserSession
from scout_tools.naver_login import NaverLogin


class PipelineService:
    """The start/stop/progress commands the UI or CLI talks to."""

    def __init__(
        self,
        settings: Settings,
        session: BrowserSession,
        relay: RelayClient,
        collection: CollectionPipeline | None = None,
        sourcing: SourcingPipeline | None = None,
        login: NaverLogin | None = None,
    ) -> None:
        self.settings = settings
        self.session = session
        self.relay = relay
        self.collection = collection or CollectionPipeline(session, relay, settings)
        self.sourcing = sourcing or SourcingPipeline(session, relay, settings)
        self.login = login or NaverLogin(session)

    async def _is_authenticated(self) -> bool | CommandResult:
        try:
            return await self.login.is_authenticated()
        except ScoutError as exc:
            return CommandResult(False, str(exc))
        except PlaywrightError as exc:
            LOG.warning("Login check failed: %s", exc)
            return CommandResult(False, f"browser error: {exc}")
        except Exception as exc:
            LOG.error("%s: %s", type(exc).__name__, exc)
            LOG.debug("Traceback:\n%s", traceback.format_exc())
            return CommandResult(False, f"unexpected error: {exc}")

    async def _preflight(self) -> CommandResult | None:
        authenticated = await self._is_authenticated()
        if isinstance(authenticated, CommandResult):
            return authenticated
        if not authenticated:
            return CommandResult(False, "authentication required")
        return None

    async def start_collection(self, user_id: str) -> CommandResult:
        if self.collection.is_running:
            return CommandResult(False, "collection already running")
        if not str(user_id or "").strip():
            return CommandResult(False, "invalid configuration: user id is required")
        rejection = await self._preflight()
        if rejection:
            return rejection
        return self.collection.start(user_id)

    def stop_collection(self) -> CommandResult:
        return self.collection.stop()

    def collection_progress(self) -> dict[str, Any]:
        return self.collection.snapshot()

    async def start_sourcing(self, payload: dict[str, Any]) -> CommandResult:
        if self.sourcing.is_running:
            return CommandResult(False, "sourcing already running")
        try:
            cfg = SourcingConfig.from_payload(payload)
        except ValueError as exc:
            return CommandResult(False, f"invalid configuration: {exc}")
        if not cfg.user_id:
            return CommandResult(False, "invalid configuration: user id is required")
        rejection = await self._preflight()
        if rejection:
            return rejection
        return self.sourcing.start(cfg)

    def stop_sourcing(self) -> CommandResult:
        return self.sourcing.stop()

    def sourcing_progress(self) -> dict[str, Any]:
        return self.sourcing.snapshot()

    async def check_login(self) -> CommandResult:
        authenticated = await self._is_authenticated()
        if isinstance(authenticated, CommandResult):
            return authenticated
        return CommandResult(True, "authenticated" if authenticated else "not authenticated", {"authenticated": authenticated})

    async def open_login(self, wait: bool = False, timeout_sec: int | None = None) -> CommandResult:
        if timeout_sec:
            self.login.login_timeout_sec = max(30, int(timeout_sec))
        try:
            opened = await self.login.prompt_login()
            if not wait:
                return CommandResult(opened, "login page opened" if opened else "login page not reached")
            result = await self.login.wait_for_login()
        except ScoutError as exc:
            return CommandResult(False, str(exc))
        except PlaywrightError as exc:
            LOG.warning("Login page failed: %s", exc)
            return CommandResult(False, f"browser error: {exc}")
        except Exception as exc:
            LOG.error("%s: %s", type(exc).__name__, exc)
            LOG.debug("Traceback:\n%s", traceback.format_exc())
            return CommandResult(False, f"unexpected error: {exc}")
        return CommandResult(result.ok, result.reason, {"finalState": result.final_state, "elapsedSec": result.elapsed_sec})

    async def shutdown(self) -> None:
        for pipeline in (self.collection, self.sourcing):
            if pipeline.is_running:
                pipeline.stop()
                await pipeline.wait()
        await self.relay.aclose()
        await self.session.cleanup()


def print_json(payload: Any) -> None:
    text = json.dumps(payload, ensure_ascii=False, indent=2) + "\n"
    try:
        sys.stdout.write(text)
    except UnicodeEncodeError:
        sys.stdout.buffer.write(text.encode("utf-8", errors="replace"))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="NAVER / AUCTION scout: store collection and keyword sourcing relayed to the backend."
    )
    parser.add_argument("--log-level", default=os.getenv("LOG_LEVEL", "INFO"),
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--browser-path", default=None, help="Chrome/Edge executable to launch")
    parser.add_argument("--user-data-dir", default=None, help="Persistent browser profile directory")
    parser.add_argument("--captcha-max-wait", type=int, default=None, help="Seconds to wait for a captcha")
    parser.add_argument("--rotate-user-agent", action="store_true", help="Pick a random desktop Chrome identity for this launch")
    sub = parser.add_subparsers(dest="command")

    collect = sub.add_parser("collect", help="Scrape every store on the relay's work list")
    collect.add_argument("--user-id", required=True)

    source = sub.add_parser("source", help="Search keywords and relay matching listings")
    source.add_argument("--user-id", required=True)
    source.add_argument("--keywords", required=True, help="Comma-separated keywords")
    source.add_argument("--min-price", required=True)
    source.add_argument("--max-price", required=True)
    source.add_argument("--naver", action="store_true", help="Include NAVER results")
    source.add_argument("--auction", action="store_true", help="Include AUCTION results")
    source.add_argument("--best", action="store_true")
    source.add_argument("--new", action="store_true")

    keywords = sub.add_parser("keywords", help="Fetch recommended keywords")
    keywords.add_argument("--user-id", required=True)

    login = sub.add_parser("login", help="Open the NAVER login page and wait for the operator")
    login.add_argument("--no-wait", action="store_true")
    login.add_argument("--timeout", type=int, default=300, help="Seconds to wait for the operator to log in")

    sub.add_parser("check-login", help="Report whether the browser session is logged in")
    return parser


def setup_services(args: argparse.Namespace) -> PipelineService:
    settings = Settings.from_env()
    overrides: dict[str, Any] = {}
    if args.browser_path:
        overrides["browser_path"] = args.browser_path
    if args.user_data_dir:
        overrides["user_data_dir"] = args.user_data_dir
    if args.captcha_max_wait:
        overrides["captcha_max_wait_sec"] = max(1, args.captcha_max_wait)
    if overrides:
        settings = Settings(**{**settings.__dict__, **overrides})
    session = BrowserSession(
        user_data_dir=settings.user_data_dir,
        custom_browser_path=settings.browser_path,
        user_agent=humanize.random_user_agent() if args.rotate_user_agent else UA,
    )
    relay = RelayClient(settings)
    return PipelineService(settings, session, relay)


async def _run_until_done(start: CommandResult, pipeline) -> CommandResult:
    if not start.success:
        return start
    try:
        result = await pipeline.wait()
    except asyncio.CancelledError:
        pipeline.stop()
        raise
    return result or start


async def run_command(args: argparse.Namespace) -> dict[str, Any]:
    service = setup_services(args)
    try:
        if args.command == "collect":
            start = await service.start_collection(args.user_id)
            result = await _run_until_done(start, service.collection)
            return {**result.as_dict(), "progress": service.collection_progress()}
        if args.command == "source":
            payload = {
                "userId": args.user_id,
                "keywords": args.keywords,
                "priceMin": args.min_price,
                "priceMax": args.max_price,
                "includeNaver": args.naver,
                "includeAuction": args.auction,
                "includeBest": args.best,
                "includeNew": args.new,
            }
            start = await service.start_sourcing(payload)
            result = await _run_until_done(start, service.sourcing)
            return {**result.as_dict(), "progress": service.sourcing_progress()}
        if args.command == "keywords":
            keywords = await service.relay.fetch_recommended_keywords(args.user_id)
            return {"success": True, "keywords": keywords}
        if args.command == "login":
            return (await service.open_login(wait=not args.no_wait, timeout_sec=args.timeout)).as_dict()
        if args.command == "check-login":
            return (await service.check_login()).as_dict()
        raise ValueError(f"unknown command: {args.command}")
    finally:
        await service.shutdown()


def main(argv: list[str] | None = None) -> int:
    load_simple_dotenv(Path(".env"))
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.getLogger().setLevel(getattr(logging, args.log_level))
    if not args.command:
        parser.print_help()
        return 1
    try:
        payload = asyncio.run(run_command(args))
        print_json(payload)
        return 0 if payload.get("success") else 1
    except KeyboardInterrupt:
        LOG.warning("Interrupted, stop requested")
        print_json({"success": False, "message": "interrupted"})
        return 130
    except Exception as exc:
        LOG.error("%s: %s", type(exc).__name__, exc)
        LOG.debug("Traceback:\n%s", traceback.format_exc())
        print_json({"success": False, "error_type": type(exc).__name__, "error": str(exc)})
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
