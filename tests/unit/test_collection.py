"""
Unit tests for the collection pipeline
"""

from unittest.mock import AsyncMock, Mock

import pytest

from scout import config
from scout.collection import CollectionPipeline, build_collection_payload
from scout.data import ExtractedProduct, ExtractionResult, Platform, WorkItem
from scout.errors import ExtractionError, RelayError, SessionLostError
from scout.relay import WorkList
from tests.conftest import FakePage, FakeSession


def _items(count, platform="NAVER"):
    return [
        WorkItem(
            id=str(i),
            target_url=f"https://smartstore.naver.com/store{i}",
            platform=Platform.parse(platform),
            price_min=1000,
            price_max=50000,
            store_name=f"store{i}",
            include_best=True,
            raw_platform=platform,
        )
        for i in range(1, count + 1)
    ]


def _ok(code="P1"):
    return ExtractionResult.ok([ExtractedProduct(code=code, name="case", sale_price=9000, discounted_price=8000)])


@pytest.fixture
def relay():
    relay = Mock()
    relay.fetch_work_list = AsyncMock(return_value=WorkList(False, "https://backend.test/goods", _items(3)))
    relay.post_collection_result = AsyncMock(return_value={})
    return relay


@pytest.fixture
def adapter():
    adapter = Mock()
    adapter.extract = AsyncMock(return_value=_ok())
    return adapter


@pytest.fixture
def pipeline(fake_session, relay, fast_settings, adapter):
    return CollectionPipeline(fake_session, relay, fast_settings, adapters={Platform.NAVER: adapter})


class TestCollectionRun:
    @pytest.mark.asyncio
    async def test_all_items_relayed(self, pipeline, relay, adapter, fake_session):
        result = await pipeline.run("u-1")

        assert result.success is True
        assert result.data == {"totalItems": 3, "attempted": 3, "succeeded": 3, "failed": 0}
        assert relay.post_collection_result.await_count == 3
        assert fake_session.prepare_calls == 1
        snapshot = pipeline.snapshot()
        assert snapshot["status"] == "completed"
        assert snapshot["currentIndex"] == 3
        assert snapshot["isRunning"] is False

    @pytest.mark.asyncio
    async def test_quota_short_circuits_before_any_dispatch(self, pipeline, relay, adapter, fake_session):
        relay.fetch_work_list.return_value = WorkList(True, "", _items(10))

        result = await pipeline.run("u-1")

        assert result.success is False
        assert result.message == "daily quota exceeded"
        adapter.extract.assert_not_awaited()
        relay.post_collection_result.assert_not_awaited()
        assert fake_session.prepare_calls == 0
        snapshot = pipeline.snapshot()
        assert snapshot["isRunning"] is False
        assert snapshot["currentIndex"] == 0

    @pytest.mark.asyncio
    async def test_partial_failure_continues(self, pipeline, relay, adapter):
        adapter.extract.side_effect = [_ok("P1"), ExtractionError("no state blob"), _ok("P3")]

        result = await pipeline.run("u-1")

        assert result.success is True
        assert result.data["attempted"] == 3
        assert result.data["succeeded"] == 2
        assert result.data["failed"] == 1
        relayed = [call.args[0]["urlnum"] for call in relay.post_collection_result.await_args_list]
        assert relayed == ["1", "3"]
        assert any("Failed store2" in line for line in pipeline.snapshot()["logLines"])

    @pytest.mark.asyncio
    async def test_relay_error_is_per_item(self, pipeline, relay):
        relay.post_collection_result.side_effect = [{}, RelayError("POST failed"), {}]

        result = await pipeline.run("u-1")

        assert result.data["succeeded"] == 2
        assert result.data["failed"] == 1

    @pytest.mark.asyncio
    async def test_quota_in_post_response_is_terminal(self, pipeline, relay, adapter):
        relay.post_collection_result.side_effect = [{}, {"todayStop": True}, {}]

        result = await pipeline.run("u-1")

        assert result.success is False
        assert result.message == "daily quota exceeded"
        assert adapter.extract.await_count == 2
        assert pipeline.snapshot()["status"].startswith("failed")

    @pytest.mark.asyncio
    async def test_empty_work_list(self, pipeline, relay):
        relay.fetch_work_list.return_value = WorkList(False, "", [])

        result = await pipeline.run("u-1")

        assert result.success is False
        assert "no store URLs" in result.message

    @pytest.mark.asyncio
    async def test_unsupported_platform_is_skipped(self, pipeline, relay, adapter):
        relay.fetch_work_list.return_value = WorkList(False, "", _items(1, "GMARKET") + _items(1))

        result = await pipeline.run("u-1")

        assert result.success is True
        assert result.data["attempted"] == 1
        assert adapter.extract.await_count == 1

    @pytest.mark.asyncio
    async def test_artifacts_cleaned_after_every_item(self, mocker, pipeline, relay, fake_session):
        cleanup = mocker.patch("scout.collection.humanize.cleanup_automation_artifacts", new=AsyncMock())
        relay.fetch_work_list.return_value = WorkList(False, "", _items(1) + _items(1, "GMARKET") + _items(1))

        await pipeline.run("u-1")

        assert cleanup.await_count == 3
        assert all(call.args[0] is fake_session.current_tab for call in cleanup.await_args_list)

    @pytest.mark.asyncio
    async def test_block_page_fails_the_run(self, relay, fast_settings, adapter):
        page = FakePage(evaluate=lambda script, arg: {"phrase": config.BLOCK_PHRASES[0]})
        pipeline = CollectionPipeline(FakeSession(page), relay, fast_settings, adapters={Platform.NAVER: adapter})

        result = await pipeline.run("u-1")

        assert result.success is False
        assert "blocked" in result.message
        adapter.extract.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_lost_session_aborts(self, pipeline, fake_session, adapter):
        fake_session.require_tab = Mock(side_effect=SessionLostError("browser tab was closed"))

        result = await pipeline.run("u-1")

        assert result.success is False
        assert result.message == "browser tab was closed"
        assert pipeline.snapshot()["status"] == "failed: browser tab was closed"


class TestCollectionCommands:
    @pytest.mark.asyncio
    async def test_start_rejects_empty_user_id(self, pipeline):
        result = pipeline.start("  ")

        assert result.success is False
        assert result.message.startswith("invalid configuration")

    @pytest.mark.asyncio
    async def test_start_rejects_second_run(self, pipeline):
        first = pipeline.start("u-1")
        second = pipeline.start("u-1")
        outcome = await pipeline.wait()

        assert first.success is True
        assert second.success is False
        assert second.message == "collection already running"
        assert outcome.success is True

    @pytest.mark.asyncio
    async def test_stop_between_items(self, pipeline, adapter):
        def extract_then_stop(page, item):
            pipeline.stop()
            return _ok()

        adapter.extract.side_effect = extract_then_stop

        result = await pipeline.run("u-1")

        assert result.success is True
        assert result.message == "collection stopped"
        assert adapter.extract.await_count == 1
        assert pipeline.snapshot()["status"] == "stopped"

    def test_stop_when_idle(self, pipeline):
        result = pipeline.stop()

        assert result.success is False
        assert result.message == "collection is not running"


def test_collection_payload_shape():
    item = _items(1)[0]

    payload = build_collection_payload(item, "u-1", ExtractionResult.failed("store not operating"))

    assert payload["urlnum"] == "1"
    assert payload["bestyn"] == "Y"
    assert payload["newyn"] == "N"
    assert payload["result"] == {"error": True, "errorMsg": "store not operating", "list": []}
