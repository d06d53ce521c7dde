"""
Unit tests for data models, normalisation helpers and RunProgress
"""

import pytest

from scout.data import (
    CommandResult,
    ExtractedProduct,
    Platform,
    RunProgress,
    SourcingConfig,
    WorkItem,
    dedupe_keep_first,
    parse_keywords,
    parse_price,
    within_price_range,
)


def _product(code, price):
    return ExtractedProduct(code=code, name=f"item {code}", sale_price=price, discounted_price=price)


class TestHelpers:
    def test_dedupe_keeps_first_occurrence(self):
        first = _product("A1", 1000)
        duplicate = _product("A1", 2500)

        unique = dedupe_keep_first([first, _product("B2", 500), duplicate], key=lambda p: p.code)

        assert [p.code for p in unique] == ["A1", "B2"]
        assert unique[0] is first
        assert unique[0].sale_price == 1000

    @pytest.mark.parametrize(
        "price, expected",
        [(1000, True), (50000, True), (999, False), (50001, False), (None, False)],
    )
    def test_price_range_is_inclusive(self, price, expected):
        assert within_price_range(price, 1000, 50000) is expected

    @pytest.mark.parametrize(
        "raw, expected",
        [("12,900원", 12900), (15000, 15000), ("무료", None), (None, None), ("", None)],
    )
    def test_parse_price(self, raw, expected):
        assert parse_price(raw) == expected

    def test_parse_keywords_trims_and_drops_empties(self):
        assert parse_keywords(" phone case, ,screen protector ,") == ["phone case", "screen protector"]
        assert parse_keywords(["  a ", ""]) == ["a"]

    def test_platform_parse(self):
        assert Platform.parse(" naver ") is Platform.NAVER
        assert Platform.parse("AUCTION") is Platform.AUCTION
        assert Platform.parse("GMARKET") is None


class TestWorkItem:
    def test_from_relay_payload(self):
        item = WorkItem.from_payload(
            {
                "URLNUM": 17,
                "TARGETURL": "https://smartstore.naver.com/acme",
                "TARGETSTORENAME": " Acme  Store ",
                "URLPLATFORMS": "NAVER",
                "SPRICELIMIT": "1,000",
                "EPRICELIMIT": "50000",
                "BESTYN": "Y",
                "NEWYN": "N",
            }
        )

        assert item.id == "17"
        assert item.platform is Platform.NAVER
        assert (item.price_min, item.price_max) == (1000, 50000)
        assert item.include_best is True
        assert item.include_new is False
        assert item.label == "Acme Store"

    def test_unknown_platform_keeps_raw_value(self):
        item = WorkItem.from_payload({"URLPLATFORMS": "11ST", "TARGETURL": "https://x"})

        assert item.platform is None
        assert item.raw_platform == "11ST"
        assert item.label == "https://x"


class TestExtractedProduct:
    def test_payload_field_names(self):
        payload = _product("9", 3000).to_payload()

        assert payload["goodscode"] == "9"
        assert payload["saleprice"] == 3000
        assert payload["discountsaleprice"] == 3000
        assert payload["isOverseas"] is False


class TestSourcingConfig:
    def _payload(self, **overrides):
        payload = {
            "keywords": "phone case, screen protector",
            "priceMin": "1000",
            "priceMax": "50000",
            "includeNaver": True,
            "includeAuction": False,
            "userId": "u-1",
        }
        payload.update(overrides)
        return payload

    def test_valid_payload(self):
        cfg = SourcingConfig.from_payload(self._payload())

        assert cfg.keywords == ("phone case", "screen protector")
        assert (cfg.price_min, cfg.price_max) == (1000, 50000)
        assert cfg.platforms == "NAVER"

    def test_inverted_price_range_rejected(self):
        with pytest.raises(ValueError, match="inverted"):
            SourcingConfig.from_payload(self._payload(priceMin="60000"))

    def test_missing_price_rejected(self):
        with pytest.raises(ValueError, match="price range"):
            SourcingConfig.from_payload(self._payload(priceMax=""))

    def test_no_platform_rejected(self):
        with pytest.raises(ValueError, match="platform"):
            SourcingConfig.from_payload(self._payload(includeNaver=False))


class TestRunProgress:
    def test_idle_snapshot_before_any_run(self):
        snapshot = RunProgress().snapshot()

        assert snapshot["isRunning"] is False
        assert snapshot["status"] == "idle"
        assert snapshot["currentIndex"] == 0
        assert snapshot["logLines"] == []

    def test_log_buffer_is_bounded_fifo(self):
        progress = RunProgress()

        for i in range(150):
            progress.log(f"line {i}")

        lines = progress.snapshot()["logLines"]
        assert len(lines) == 100
        for offset, line in enumerate(lines):
            assert line.endswith(f"] line {50 + offset}")

    def test_reset_returns_to_idle_counters(self):
        progress = RunProgress()
        progress.begin("processing")
        progress.current_index, progress.total = 4, 9

        progress.reset()

        assert progress.snapshot()["status"] == "idle"
        assert progress.current_index == 0
        assert progress.total == 0

    def test_finish_keeps_counters(self):
        progress = RunProgress()
        progress.begin("processing")
        progress.current_index, progress.total = 2, 2

        progress.finish("completed")

        assert progress.is_running is False
        assert progress.current_index == 2
        assert progress.status == "completed"


def test_command_result_omits_empty_data():
    assert CommandResult(False, "already running").as_dict() == {"success": False, "message": "already running"}
    assert CommandResult(True, "ok", {"n": 1}).as_dict()["data"] == {"n": 1}
