"""
Unit tests for the relay HTTP client
"""

import json

import httpx
import pytest

from scout.config import Settings
from scout.data import Platform
from scout.errors import RelayError
from scout.relay import RelayClient

SETTINGS = Settings(
    api_base="https://relay.test/api",
    work_list_url="https://relay.test/api/work",
    search_relay_base="https://relay.test/search",
    search_insert_url="https://backend.test/insert",
    keyword_url="https://relay.test/keywords",
)


def _client(handler):
    return RelayClient(SETTINGS, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


class TestWorkList:
    @pytest.mark.asyncio
    async def test_parses_items_and_flags(self):
        def handler(request):
            assert request.url.params["usernum"] == "u-1"
            return httpx.Response(
                200,
                json={
                    "todayStop": False,
                    "inserturl": "https://backend.test/goods",
                    "item": [
                        {"URLNUM": 1, "TARGETURL": "https://smartstore.naver.com/a", "URLPLATFORMS": "NAVER"},
                        {"URLNUM": 2, "TARGETURL": "https://www.auction.co.kr/b", "URLPLATFORMS": "AUCTION"},
                    ],
                },
            )

        async with _client(handler) as relay:
            work = await relay.fetch_work_list("u-1")

        assert work.today_stop is False
        assert work.insert_url == "https://backend.test/goods"
        assert [item.platform for item in work.items] == [Platform.NAVER, Platform.AUCTION]

    @pytest.mark.asyncio
    async def test_http_error_becomes_relay_error(self):
        async with _client(lambda request: httpx.Response(503, text="down")) as relay:
            with pytest.raises(RelayError, match="GET"):
                await relay.fetch_work_list("u-1")

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        async with _client(lambda request: httpx.Response(200, text="<html>")) as relay:
            with pytest.raises(RelayError, match="non-JSON"):
                await relay.fetch_work_list("u-1")


class TestResultPosts:
    @pytest.mark.asyncio
    async def test_collection_post_envelope(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"todayStop": True})

        async with _client(handler) as relay:
            response = await relay.post_collection_result({"urlnum": "1"}, Platform.AUCTION, "https://ins")

        assert seen["url"] == "https://relay.test/api/product-collect/relay-auction-goods"
        assert seen["body"] == {"data": {"urlnum": "1"}, "context": {"isParsed": True, "inserturl": "https://ins"}}
        assert response["todayStop"] is True

    @pytest.mark.asyncio
    async def test_search_post_uses_search_insert_url(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"result": "OK"})

        async with _client(handler) as relay:
            await relay.post_search_result({"squery": "case"}, Platform.NAVER)

        assert seen["url"] == "https://relay.test/search/relay-naver"
        assert seen["body"]["context"]["inserturl"] == "https://backend.test/insert"

    @pytest.mark.asyncio
    async def test_search_post_rejected(self):
        async with _client(lambda request: httpx.Response(200, json={"result": "FAIL"})) as relay:
            with pytest.raises(RelayError, match="rejected"):
                await relay.post_search_result({}, Platform.NAVER)


@pytest.mark.asyncio
async def test_recommended_keywords():
    async with _client(lambda request: httpx.Response(200, json={"result": "phone case, ,charger"})) as relay:
        keywords = await relay.fetch_recommended_keywords("u-1")

    assert keywords == ["phone case", "charger"]
