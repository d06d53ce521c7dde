"""HTTP client for the relay service that hands out work and receives results."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import httpx

from scout.config import LOG, Settings
from scout.data import Platform, WorkItem
from scout.errors import RelayError


@dataclass
class WorkList:
    today_stop: bool
    insert_url: str
    items: list[WorkItem] = field(default_factory=list)


class RelayClient:
    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None) -> None:
        self.settings = settings
        self._client = client

    async def __aenter__(self) -> "RelayClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.settings.http_timeout_sec)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._http().request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise RelayError(f"{method} {url} failed: {exc}") from exc
        return response

    @staticmethod
    def _json(response: httpx.Response) -> dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as exc:
            raise RelayError(f"relay returned non-JSON body: {response.text[:200]}") from exc
        if not isinstance(payload, dict):
            raise RelayError(f"relay returned unexpected payload type {type(payload).__name__}")
        return payload

    async def fetch_work_list(self, user_id: str) -> WorkList:
        response = await self._request("GET", self.settings.work_list_url, params={"usernum": user_id})
        payload = self._json(response)
        items = [WorkItem.from_payload(raw) for raw in payload.get("item") or [] if isinstance(raw, dict)]
        LOG.info("Work list for %s: %d items, todayStop=%s", user_id, len(items), payload.get("todayStop"))
        return WorkList(
            today_stop=bool(payload.get("todayStop")),
            insert_url=str(payload.get("inserturl") or ""),
            items=items,
        )

    async def post_collection_result(
        self, data: dict[str, Any], platform: Platform, insert_url: str
    ) -> dict[str, Any]:
        url = f"{self.settings.api_base}/product-collect/relay-{platform.value.lower()}-goods"
        body = {"data": data, "context": {"isParsed": True, "inserturl": insert_url}}
        return self._json(await self._request("POST", url, json=body))

    async def post_search_result(self, data: dict[str, Any], platform: Platform) -> dict[str, Any]:
        url = f"{self.settings.search_relay_base}/relay-{platform.value.lower()}"
        body = {"data": data, "context": {"isParsed": True, "inserturl": self.settings.search_insert_url}}
        payload = self._json(await self._request("POST", url, json=body))
        if str(payload.get("result", "")).upper() not in {"OK", ""}:
            raise RelayError(f"relay rejected search result: {payload.get('result')}")
        return payload

    async def fetch_recommended_keywords(self, user_id: str) -> list[str]:
        response = await self._request("GET", self.settings.keyword_url, params={"usernum": user_id})
        payload = self._json(response)
        raw = str(payload.get("result") or "")
        return [keyword.strip() for keyword in raw.split(",") if keyword.strip()]
