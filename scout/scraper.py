"""Marketplace extraction: store adapters for collection, search extraction for sourcing."""

from __future__ import annotations

import asyncio
import json
import random
from typing import Any, Iterable
from urllib.parse import quote

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from scout import config
from scout.config import LOG
from scout.data import (
    ExtractedProduct,
    ExtractionResult,
    Platform,
    SearchListing,
    SearchResult,
    WorkItem,
    clean_text,
    dedupe_keep_first,
    parse_price,
    within_price_range,
)
from scout.errors import CaptchaTimeoutError, ExtractionError, SearchError
from scout_tools import detection, humanize
from scout_tools.browser_manager import BrowserSession
from scout_tools.utils import CancelToken

NAVER_BEST_PERIODS = ("REALTIME", "DAILY", "WEEKLY", "MONTHLY")

MSG_NO_STATE = "no state blob"
MSG_NOT_OPERATING = "store not operating"
MSG_NO_TARGETS = "no best/new products"
MSG_NO_MATCHING = "no collected product data"
MSG_FILTERED_OUT = "no products left after price/name filter"
MSG_NO_PRODUCTS = "no products"
MSG_DOMESTIC_SELLER = "domestic seller"

_READ_JSON_SCRIPT_JS = """
(selector) => {
  const el = document.querySelector(selector);
  return el ? el.textContent : null;
}
"""
_PRELOADED_STATE_JS = "() => window.__PRELOADED_STATE__ || null"

_SHOPPING_FETCH_JS = """
async (url) => {
  const response = await fetch(url, {
    method: 'GET',
    headers: { Accept: 'application/json, text/plain, */*', Logic: 'PART' },
    credentials: 'include',
  });
  if (!response.ok) return { error: true, status: response.status };
  return await response.json();
}
"""

_CLICK_BY_TEXT_JS = """
(text) => {
  const nodes = Array.from(document.querySelectorAll('a, button, li'));
  const hit = nodes.find((el) => (el.textContent || '').trim().includes(text) || (el.getAttribute('title') || '').includes(text));
  if (!hit) return false;
  hit.click();
  return true;
}
"""

_CLICK_SHOPPING_TAB_JS = """
() => {
  const nodes = Array.from(document.querySelectorAll('a'));
  const hit = nodes.find((el) => (el.textContent || '').trim() === '쇼핑')
    || nodes.find((el) => (el.textContent || '').includes('쇼핑') && (el.href || '').includes('shopping'))
    || nodes.find((el) => (el.href || '').includes('search.shopping.naver.com'));
  if (!hit) return false;
  hit.click();
  return true;
}
"""


def dig(obj: Any, *keys: Any) -> Any:
    for key in keys:
        if isinstance(obj, dict):
            obj = obj.get(key)
        elif isinstance(obj, list) and isinstance(key, int) and -len(obj) <= key < len(obj):
            obj = obj[key]
        else:
            return None
    return obj


def first_number(text: Any) -> int:
    """First thousands-grouped number in `text`, 0 if none."""
    match = config.THOUSANDS_NUMBER_RE.search(str(text or ""))
    if not match:
        return 0
    return int(match.group(0).replace(",", ""))


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


async def read_json_script(page: Page, selector: str = "#__NEXT_DATA__") -> dict[str, Any] | None:
    try:
        raw = await page.evaluate(_READ_JSON_SCRIPT_JS, selector)
    except PlaywrightError as exc:
        raise ExtractionError(f"could not read {selector}: {exc}") from exc
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ExtractionError(f"malformed {selector} JSON: {exc}") from exc
    return data if isinstance(data, dict) else None


async def goto(page: Page, url: str) -> None:
    try:
        await page.goto(url, wait_until="domcontentloaded", timeout=config.NAVIGATION_TIMEOUT_MS)
    except PlaywrightError as exc:
        raise ExtractionError(f"navigation to {url} failed: {exc}") from exc


# ---------------------------------------------------------------------------
# NAVER SmartStore
# ---------------------------------------------------------------------------


def naver_target_ids(state: dict[str, Any], item: WorkItem) -> list[str]:
    special = dig(state, "smartStoreV2", "specialProducts") or {}
    ids: list[Any] = []
    if item.include_best:
        ids.extend(_as_list(special.get("bestProductNos")))
    if item.include_new:
        ids.extend(_as_list(special.get("newProductNos")))
    return [str(value) for value in ids if value is not None]


def naver_candidate_sections(state: dict[str, Any]) -> list[list[dict[str, Any]]]:
    widgets = state.get("widgetContents") or {}
    best = dig(widgets, "bestProductWidget", "A", "data") or {}
    sections = [dig(best, "bestProducts", period, "simpleProducts") for period in NAVER_BEST_PERIODS]
    sections.append(dig(best, "allCategoryProducts", "simpleProducts"))
    sections.append(dig(widgets, "bestReviewWidget", "A", "data", "reviewProducts"))
    sections.append(dig(widgets, "wholeProductWidget", "A", "data", "simpleProducts"))
    sections.append(dig(state, "category", "A", "simpleProducts"))
    return [[p for p in _as_list(section) if isinstance(p, dict)] for section in sections]


def map_naver_product(raw: dict[str, Any], channel_url: str, seller_tags: Any = "") -> ExtractedProduct:
    sale_price = parse_price(raw.get("salePrice")) or 0
    discounted = parse_price(dig(raw, "benefitsView", "discountedSalePrice"))
    return ExtractedProduct(
        code=str(raw.get("id")),
        name=clean_text(raw.get("name")),
        sale_price=sale_price,
        discounted_price=discounted if discounted is not None else sale_price,
        discount_rate=parse_price(dig(raw, "benefitsView", "discountedRatio")) or 0,
        delivery_fee=parse_price(dig(raw, "productDeliveryInfo", "baseFee")) or 0,
        category_id=str(dig(raw, "category", "categoryId") or ""),
        image_url=str(raw.get("representativeImageUrl") or ""),
        product_url=f"{config.SMARTSTORE_URL_PREFIX}/{channel_url}/products/{raw.get('id')}",
        seller_tag=seller_tags,
    )


def parse_naver_state(state: dict[str, Any], item: WorkItem) -> ExtractionResult:
    """Turn a SmartStore `__PRELOADED_STATE__` into the allowed, in-range products."""
    if not dig(state, "categoryTree", "A"):
        return ExtractionResult.failed(MSG_NOT_OPERATING)

    allowed = set(naver_target_ids(state, item))
    if not allowed:
        return ExtractionResult.failed(MSG_NO_TARGETS)

    candidates = [
        product
        for section in naver_candidate_sections(state)
        for product in section
        if str(product.get("id")) in allowed
    ]
    unique = dedupe_keep_first(candidates, key=lambda p: str(p.get("id")))
    if not unique:
        return ExtractionResult.failed(MSG_NO_MATCHING)

    channel_url = str(dig(state, "smartStoreV2", "channel", "url") or "unknown")
    seller_tags = dig(state, "seoInfo", "sellerTags")
    products = [
        map_naver_product(raw, channel_url, "" if seller_tags is None else seller_tags)
        for raw in unique
        if within_price_range(parse_price(raw.get("salePrice")), item.price_min, item.price_max)
        and clean_text(raw.get("name"))
    ]
    if not products:
        return ExtractionResult.failed(MSG_FILTERED_OUT)
    return ExtractionResult.ok(products)


class StoreAdapter:
    """Extracts one store page into an ExtractionResult; retry policy belongs to the caller."""

    platform: Platform

    async def extract(self, page: Page, item: WorkItem) -> ExtractionResult:
        raise NotImplementedError


class NaverStoreAdapter(StoreAdapter):
    platform = Platform.NAVER

    def __init__(
        self,
        captcha_max_wait: float = config.DEFAULT_CAPTCHA_MAX_WAIT_SEC,
        token: CancelToken | None = None,
    ) -> None:
        self.captcha_max_wait = captcha_max_wait
        self.token = token

    async def extract(self, page: Page, item: WorkItem) -> ExtractionResult:
        if config.NAVER_DOMAIN not in (page.url or ""):
            await goto(page, config.NAVER_HOME_URL)
            await humanize.jittered_delay(800, 1500)
        try:
            await humanize.navigate_naturally(page, item.target_url)
        except PlaywrightError as exc:
            raise ExtractionError(f"navigation to {item.target_url} failed: {exc}") from exc

        wait = await detection.await_captcha_resolution(page, max_wait=self.captcha_max_wait, token=self.token)
        if not wait.resolved and wait.reason != "cancelled":
            raise CaptchaTimeoutError()

        try:
            state = await page.evaluate(_PRELOADED_STATE_JS)
        except PlaywrightError as exc:
            raise ExtractionError(f"{MSG_NO_STATE}: {exc}") from exc
        if not isinstance(state, dict):
            raise ExtractionError(MSG_NO_STATE)
        return parse_naver_state(state, item)


# ---------------------------------------------------------------------------
# AUCTION store
# ---------------------------------------------------------------------------


def auction_delivery_fee(view_model: dict[str, Any]) -> int:
    if view_model.get("isFreeDelivery"):
        return 0
    for tag in _as_list(view_model.get("deliveryTags")):
        text = dig(tag, "text", "text")
        if isinstance(text, str) and config.AUCTION_DELIVERY_FEE_LABEL in text:
            fee = first_number(text)
            if fee:
                return fee
            break
    for tag in _as_list(view_model.get("tags")):
        if isinstance(tag, str) and tag.startswith(config.AUCTION_DELIVERY_FEE_LABEL):
            return first_number(tag)
    return 0


def is_auction_overseas(view_model: dict[str, Any]) -> bool:
    badges = _as_list(dig(view_model, "sellerOfficialTag", "title"))
    return any(dig(badge, "text") == config.AUCTION_OVERSEAS_BADGE for badge in badges)


def map_auction_row(view_model: dict[str, Any]) -> ExtractedProduct:
    price = view_model.get("price") or {}
    sale_price = parse_price(dig(price, "price", "text")) or 0
    discounted = parse_price(price.get("couponDiscountedBinPrice"))
    return ExtractedProduct(
        code=str(view_model.get("itemNo") or ""),
        name=clean_text(dig(view_model, "item", "text")),
        sale_price=sale_price,
        discounted_price=discounted if discounted else sale_price,
        discount_rate=parse_price(price.get("discountRate")) or 0,
        delivery_fee=auction_delivery_fee(view_model),
        image_url=str(dig(view_model, "item", "imageUrl") or ""),
        product_url=str(dig(view_model, "item", "link") or ""),
        seller_tag="",
        is_overseas=is_auction_overseas(view_model),
    )


def parse_auction_items(next_data: dict[str, Any]) -> list[ExtractedProduct]:
    modules = dig(
        next_data, "props", "pageProps", "initialStates", "curatorData", "regionsData", "content", "modules"
    )
    products: list[ExtractedProduct] = []
    for module in _as_list(modules):
        for row in _as_list(dig(module, "rows")):
            if not isinstance(row, dict) or row.get("designName") != config.AUCTION_CARD_DESIGN:
                continue
            view_model = row.get("viewModel") or {}
            if not parse_price(dig(view_model, "score", "payCount", "text")):
                continue
            products.append(map_auction_row(view_model))
    return dedupe_keep_first(products, key=lambda p: p.code)


def auction_eligibility(products: list[ExtractedProduct]) -> ExtractionResult:
    if not products:
        return ExtractionResult.failed(MSG_NO_PRODUCTS)
    if not any(p.is_overseas for p in products):
        return ExtractionResult.failed(MSG_DOMESTIC_SELLER)
    return ExtractionResult.ok(products)


class AuctionStoreAdapter(StoreAdapter):
    platform = Platform.AUCTION

    async def extract(self, page: Page, item: WorkItem) -> ExtractionResult:
        if config.AUCTION_DOMAIN not in (page.url or ""):
            await goto(page, config.AUCTION_HOME_URL)
            await humanize.jittered_delay(800, 1500)
        await goto(page, item.target_url)
        next_data = await read_json_script(page)
        if next_data is None:
            raise ExtractionError(MSG_NO_STATE)
        products = parse_auction_items(next_data)
        overseas = sum(1 for p in products if p.is_overseas)
        LOG.info("AUCTION %s: %d products (%d cross-border)", item.label, len(products), overseas)
        return auction_eligibility(products)


def default_adapters(
    captcha_max_wait: float = config.DEFAULT_CAPTCHA_MAX_WAIT_SEC, token: CancelToken | None = None
) -> dict[Platform, StoreAdapter]:
    return {
        Platform.NAVER: NaverStoreAdapter(captcha_max_wait=captcha_max_wait, token=token),
        Platform.AUCTION: AuctionStoreAdapter(),
    }


# ---------------------------------------------------------------------------
# Sourcing search
# ---------------------------------------------------------------------------


def parse_composite_list(next_data: dict[str, Any]) -> SearchResult:
    """Non-ad SmartStore listings plus tags from the shopping results `__NEXT_DATA__`."""
    root = dig(next_data, "props", "pageProps") or {}
    related = [str(tag) for tag in _as_list(root.get("relatedTags"))]
    listings: list[SearchListing] = []
    menu_tags: list[str] = []
    for entry in _as_list(dig(root, "compositeList", "list")):
        product = dig(entry, "item") or {}
        manu_tag = product.get("manuTag")
        if isinstance(manu_tag, str) and manu_tag:
            menu_tags.extend(tag.strip() for tag in manu_tag.split(",") if tag.strip())
        mall_url = str(product.get("mallPcUrl") or "")
        if product.get("adId") or not mall_url.startswith(config.SMARTSTORE_URL_PREFIX):
            continue
        listings.append(
            SearchListing(
                mall_name=clean_text(product.get("mallName")),
                mall_url=mall_url,
                title=clean_text(product.get("productTitle")),
                price=parse_price(product.get("price") or product.get("lowPrice")),
                image_url=str(product.get("imageUrl") or ""),
            )
        )
    return SearchResult(
        listings=dedupe_keep_first(listings, key=lambda l: l.mall_url),
        related_tags=related,
        menu_tags=dedupe_keep_first(menu_tags, key=lambda t: t),
        strategy="click",
    )


def parse_fetch_products(payload: dict[str, Any]) -> SearchResult:
    products = _as_list(dig(payload, "shoppingResult", "products"))
    listings = [
        SearchListing(
            mall_name=clean_text(p.get("mallName")),
            mall_url=str(p.get("mallPcUrl") or ""),
            title=clean_text(p.get("productTitle")),
            price=parse_price(p.get("price")),
            image_url=str(p.get("imageUrl") or ""),
        )
        for p in products
        if isinstance(p, dict) and p.get("mallPcUrl")
    ]
    return SearchResult(listings=dedupe_keep_first(listings, key=lambda l: l.mall_url), strategy="fetch")


def parse_auction_search(next_data: dict[str, Any]) -> SearchResult:
    regions = dig(next_data, "props", "pageProps", "initialStates", "curatorData", "regions")
    listings: list[SearchListing] = []
    for region in _as_list(regions):
        for module in _as_list(dig(region, "modules")):
            for row in _as_list(dig(module, "rows")):
                if not isinstance(row, dict) or row.get("designName") != config.AUCTION_CARD_DESIGN:
                    continue
                view_model = row.get("viewModel") or {}
                seller = dig(view_model, "seller") or {}
                if not seller.get("text"):
                    continue
                listings.append(
                    SearchListing(
                        mall_name=clean_text(seller.get("text")),
                        mall_url=str(seller.get("link") or ""),
                        title=clean_text(dig(view_model, "item", "text")),
                        price=parse_price(dig(view_model, "price", "price", "text")),
                        image_url=str(dig(view_model, "item", "imageUrl") or ""),
                    )
                )
    return SearchResult(listings=dedupe_keep_first(listings, key=lambda l: l.mall_name), strategy="auction")


def shopping_api_url(keyword: str) -> str:
    q = quote(keyword)
    return (
        f"{config.SHOPPING_SEARCH_API}?sort=rel&pagingIndex=1&pagingSize={config.SHOPPING_PAGE_SIZE}"
        f"&viewType=list&productSet=checkout&frm=NVSCPRO&query={q}&origQuery={q}&adQuery={q}"
        "&iq=&eq=&xq=&window=&agency=true"
    )


def filter_listings_by_price(listings: Iterable[SearchListing], price_min: int, price_max: int) -> list[SearchListing]:
    """Listings without a known price are kept; priced ones must fall in range."""
    return [l for l in listings if l.price is None or within_price_range(l.price, price_min, price_max)]


class ShoppingSearch:
    """Search-driven extraction on the NAVER shopping tab and AUCTION search."""

    def __init__(self, results_tab_timeout_ms: int = 10_000) -> None:
        self.results_tab_timeout_ms = results_tab_timeout_ms

    async def search_from_home(self, page: Page, keyword: str) -> None:
        try:
            await page.goto(config.NAVER_HOME_URL, wait_until="domcontentloaded")
        except PlaywrightError as exc:
            raise SearchError(f"could not open NAVER home: {exc}") from exc
        await humanize.simulate_mouse_movement(page)
        used = await humanize.type_into_first(page, config.NAVER_SEARCH_INPUT_SELECTORS, keyword)
        if used is None:
            raise SearchError("search input not found on NAVER home")
        before = page.url
        try:
            async with page.expect_navigation(wait_until="domcontentloaded", timeout=config.NAVIGATION_TIMEOUT_MS):
                await humanize.submit_search(page, config.NAVER_SEARCH_BUTTON_SELECTORS, config.HOME_ENTER_CHANCE)
        except PlaywrightError as exc:
            raise SearchError(f"search did not navigate: {exc}") from exc
        if page.url == before:
            raise SearchError("search did not leave the home page")
        LOG.info("Initial search for %r landed on %s", keyword, page.url)

    async def open_results_tab(self, session: BrowserSession, page: Page) -> Page:
        """Click the shopping tab and follow the new browser tab it opens."""
        context = page.context
        count_before = len(context.pages)
        clicked = await page.evaluate(_CLICK_SHOPPING_TAB_JS)
        if not clicked:
            raise SearchError("shopping tab link not found")
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.results_tab_timeout_ms / 1000
        while len(context.pages) <= count_before and loop.time() < deadline:
            await asyncio.sleep(0.25)

        if len(context.pages) > count_before:
            results = context.pages[-1]
        elif config.SHOPPING_DOMAIN in (page.url or ""):
            results = page
        else:
            raise SearchError("shopping results tab did not open")
        try:
            await results.wait_for_load_state("domcontentloaded")
            await results.bring_to_front()
        except PlaywrightError as exc:
            raise SearchError(f"shopping results tab unusable: {exc}") from exc
        session.set_current_tab(results)
        await asyncio.sleep(3)
        return results

    async def search_in_results_tab(self, page: Page, keyword: str) -> None:
        used = await humanize.type_into_first(
            page,
            config.SHOPPING_SEARCH_INPUT_SELECTORS,
            keyword,
            min_delay=120,
            max_delay=280,
            mistake_chance=0.12,
        )
        if used is None:
            raise SearchError("search input not found on shopping tab")
        await humanize.submit_search(page, config.SHOPPING_SEARCH_BUTTON_SELECTORS, config.SHOPPING_ENTER_CHANCE)
        try:
            await page.wait_for_load_state("domcontentloaded", timeout=config.NAVIGATION_TIMEOUT_MS)
        except PlaywrightError as exc:
            raise SearchError(f"shopping search did not load: {exc}") from exc
        if random.random() < 0.3:
            await humanize.simulate_scroll(page)

    async def _click(self, page: Page, selector: str | None = None, text: str | None = None) -> bool:
        try:
            if selector:
                element = await page.query_selector(selector)
                if element is None:
                    return False
                await element.click(timeout=5000)
            else:
                if not await page.evaluate(_CLICK_BY_TEXT_JS, text):
                    return False
        except PlaywrightError as exc:
            LOG.warning("Click on %s failed: %s", selector or text, exc)
            return False
        await humanize.jittered_delay(1500, 3000)
        return True

    async def collect_by_clicking(self, page: Page) -> SearchResult:
        if not await self._click(page, text=config.NAVER_PAY_TAB_TEXT):
            LOG.warning("NaverPay tab not found, continuing with the current listing")
        if await self._click(page, selector=config.OVERSEAS_FILTER_SELECTOR):
            await self._click(page, selector=config.OVERSEAS_OPTION_SELECTOR)
        await self._click(page, text=config.PAGE_SIZE_OPTION_TEXT)
        try:
            await page.wait_for_load_state("networkidle", timeout=15_000)
        except PlaywrightError as exc:
            LOG.debug("networkidle not reached: %s", exc)
        next_data = await read_json_script(page)
        if next_data is None:
            return SearchResult(strategy="click")
        return parse_composite_list(next_data)

    async def collect_by_fetch(self, page: Page, keyword: str) -> SearchResult:
        try:
            payload = await page.evaluate(_SHOPPING_FETCH_JS, shopping_api_url(keyword))
        except PlaywrightError as exc:
            raise ExtractionError(f"shopping API fetch failed: {exc}") from exc
        if not isinstance(payload, dict) or payload.get("error"):
            status = payload.get("status") if isinstance(payload, dict) else "?"
            raise ExtractionError(f"shopping API returned an error (status {status})")
        return parse_fetch_products(payload)

    async def collect_naver(self, page: Page, keyword: str, blocked: bool = False) -> SearchResult:
        """Click-based extraction, falling back to the raw API; API only while blocked."""
        if blocked:
            return await self.collect_by_fetch(page, keyword)
        try:
            result = await self.collect_by_clicking(page)
        except ExtractionError as exc:
            LOG.warning("Click-based extraction failed for %r: %s", keyword, exc)
            result = SearchResult(strategy="click")
        if result.listings:
            return result
        LOG.info("Click-based extraction empty for %r, trying the shopping API", keyword)
        fetched = await self.collect_by_fetch(page, keyword)
        fetched.related_tags = result.related_tags
        fetched.menu_tags = result.menu_tags
        return fetched

    async def collect_auction(self, page: Page, keyword: str) -> SearchResult:
        await goto(page, config.AUCTION_SEARCH_URL.format(keyword=quote(keyword)))
        try:
            next_data = await read_json_script(page)
        finally:
            try:
                await page.go_back(wait_until="domcontentloaded")
            except PlaywrightError as exc:
                LOG.warning("Could not navigate back from AUCTION search: %s", exc)
        if next_data is None:
            return SearchResult(strategy="auction")
        return parse_auction_search(next_data)
