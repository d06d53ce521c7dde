"""Data models, normalisation helpers, and the run progress tracker."""

from __future__ import annotations

import datetime as dt
import enum
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, TypeVar

from scout.config import LOG, LOG_CAPACITY, NON_DIGIT_RE, WHITESPACE_RE

T = TypeVar("T")


class Platform(str, enum.Enum):
    NAVER = "NAVER"
    AUCTION = "AUCTION"

    @classmethod
    def parse(cls, raw: Any) -> "Platform | None":
        value = str(raw or "").strip().upper()
        for member in cls:
            if member.value == value:
                return member
        return None


def clean_text(value: Any, max_len: int = 300) -> str:
    text = WHITESPACE_RE.sub(" ", str(value or "")).strip()
    if len(text) > max_len:
        return text[: max_len - 3] + "..."
    return text


def parse_price(value: Any) -> int | None:
    """Digits of `value` as an int; None when nothing numeric is present."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    digits = NON_DIGIT_RE.sub("", str(value))
    if not digits:
        return None
    return int(digits)


def is_yes(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().upper() in {"Y", "YES", "TRUE", "1"}


def dedupe_keep_first(items: Iterable[T], key: Callable[[T], Any]) -> list[T]:
    seen: set[Any] = set()
    unique: list[T] = []
    for item in items:
        marker = key(item)
        if marker in seen:
            continue
        seen.add(marker)
        unique.append(item)
    return unique


def within_price_range(price: int | None, price_min: int, price_max: int) -> bool:
    return price is not None and price_min <= price <= price_max


def parse_keywords(raw: str | Iterable[str]) -> list[str]:
    parts = raw.split(",") if isinstance(raw, str) else list(raw)
    return [clean_text(part) for part in parts if clean_text(part)]


@dataclass(frozen=True)
class WorkItem:
    id: str
    target_url: str
    platform: Platform | None
    price_min: int
    price_max: int
    store_name: str = ""
    include_best: bool = False
    include_new: bool = False
    raw_platform: str = ""

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "WorkItem":
        raw_platform = str(payload.get("URLPLATFORMS") or "").strip()
        return cls(
            id=str(payload.get("URLNUM") or "").strip(),
            target_url=str(payload.get("TARGETURL") or "").strip(),
            platform=Platform.parse(raw_platform),
            price_min=parse_price(payload.get("SPRICELIMIT")) or 0,
            price_max=parse_price(payload.get("EPRICELIMIT")) or 0,
            store_name=clean_text(payload.get("TARGETSTORENAME")),
            include_best=is_yes(payload.get("BESTYN")),
            include_new=is_yes(payload.get("NEWYN")),
            raw_platform=raw_platform,
        )

    @property
    def label(self) -> str:
        return self.store_name or self.target_url


@dataclass(frozen=True)
class ExtractedProduct:
    code: str
    name: str
    sale_price: int
    discounted_price: int
    discount_rate: int = 0
    delivery_fee: int = 0
    category_id: str = ""
    image_url: str = ""
    product_url: str = ""
    seller_tag: Any = None
    is_overseas: bool = False

    def to_payload(self) -> dict[str, Any]:
        return {
            "goodscode": self.code,
            "goodsname": self.name,
            "saleprice": self.sale_price,
            "discountsaleprice": self.discounted_price,
            "discountrate": self.discount_rate,
            "deliveryfee": self.delivery_fee,
            "nvcate": self.category_id,
            "imageurl": self.image_url,
            "goodsurl": self.product_url,
            "seoinfo": self.seller_tag,
            "isOverseas": self.is_overseas,
        }


@dataclass
class ExtractionResult:
    error: bool
    message: str = ""
    products: list[ExtractedProduct] = field(default_factory=list)

    @classmethod
    def failed(cls, message: str) -> "ExtractionResult":
        return cls(error=True, message=message, products=[])

    @classmethod
    def ok(cls, products: list[ExtractedProduct]) -> "ExtractionResult":
        return cls(error=False, message="", products=list(products))


@dataclass(frozen=True)
class SearchListing:
    mall_name: str
    mall_url: str
    title: str = ""
    price: int | None = None
    image_url: str = ""

    def to_payload(self) -> dict[str, Any]:
        return {
            "mallName": self.mall_name,
            "mallPcUrl": self.mall_url,
            "productTitle": self.title,
            "price": self.price,
            "imageUrl": self.image_url,
        }


@dataclass
class SearchResult:
    listings: list[SearchListing] = field(default_factory=list)
    related_tags: list[str] = field(default_factory=list)
    menu_tags: list[str] = field(default_factory=list)
    strategy: str = ""


@dataclass(frozen=True)
class SourcingConfig:
    price_min: int
    price_max: int
    keywords: tuple[str, ...]
    include_naver: bool
    include_auction: bool
    include_best: bool
    include_new: bool
    user_id: str

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "SourcingConfig":
        """Build from UI/CLI input; raises ValueError on an unusable configuration."""
        price_min = parse_price(payload.get("priceMin"))
        price_max = parse_price(payload.get("priceMax"))
        if price_min is None or price_max is None:
            raise ValueError("price range is required")
        if price_min > price_max:
            raise ValueError(f"price range is inverted: {price_min} > {price_max}")
        include_naver = is_yes(payload.get("includeNaver"))
        include_auction = is_yes(payload.get("includeAuction"))
        if not (include_naver or include_auction):
            raise ValueError("at least one platform must be selected")
        return cls(
            price_min=price_min,
            price_max=price_max,
            keywords=tuple(parse_keywords(payload.get("keywords") or "")),
            include_naver=include_naver,
            include_auction=include_auction,
            include_best=is_yes(payload.get("includeBest")),
            include_new=is_yes(payload.get("includeNew")),
            user_id=str(payload.get("userId") or "").strip(),
        )

    @property
    def platforms(self) -> str:
        selected = []
        if self.include_naver:
            selected.append(Platform.NAVER.value)
        if self.include_auction:
            selected.append(Platform.AUCTION.value)
        return ",".join(selected)


@dataclass
class CommandResult:
    success: bool
    message: str
    data: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": self.success, "message": self.message}
        if self.data:
            payload["data"] = self.data
        return payload


class RunProgress:
    """Status snapshot plus a bounded operator log, polled by the UI."""

    def __init__(self, capacity: int = LOG_CAPACITY) -> None:
        self.is_running = False
        self.current_index = 0
        self.total = 0
        self.current_label = ""
        self.status = "idle"
        self.wait_seconds_remaining: int | None = None
        self.log_lines: deque[str] = deque(maxlen=capacity)

    def begin(self, status: str) -> None:
        self.is_running = True
        self.current_index = 0
        self.total = 0
        self.current_label = ""
        self.status = status
        self.wait_seconds_remaining = None
        self.log_lines.clear()

    def reset(self, status: str = "idle") -> None:
        self.is_running = False
        self.current_index = 0
        self.total = 0
        self.current_label = ""
        self.status = status
        self.wait_seconds_remaining = None

    def finish(self, status: str) -> None:
        self.is_running = False
        self.current_label = ""
        self.status = status
        self.wait_seconds_remaining = None

    def log(self, message: str) -> None:
        stamp = dt.datetime.now().strftime("%H:%M:%S")
        self.log_lines.append(f"[{stamp}] {message}")
        LOG.info("%s", message)

    def snapshot(self) -> dict[str, Any]:
        return {
            "isRunning": self.is_running,
            "currentIndex": self.current_index,
            "total": self.total,
            "currentLabel": self.current_label,
            "status": self.status,
            "waitSecondsRemaining": self.wait_seconds_remaining,
            "logLines": list(self.log_lines),
        }
