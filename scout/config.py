"""Global constants, selectors, regular expressions, and runtime settings."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path

LOG = logging.getLogger("naver_scout")

UA = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
USER_AGENTS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
    UA,
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
)
ACCEPT_LANGUAGE = "ko-KR,ko;q=0.9,en-US;q=0.8,en;q=0.7"
WINDOW_SIZE = {"width": 1366, "height": 768}
NAVIGATION_TIMEOUT_MS = 30_000
NATURAL_NAVIGATION_TIMEOUT_MS = 45_000

LAUNCH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--disable-infobars",
    "--no-first-run",
    "--no-default-browser-check",
    f"--window-size={WINDOW_SIZE['width']},{WINDOW_SIZE['height']}",
    f"--lang={ACCEPT_LANGUAGE.split(',')[0]}",
]
IGNORED_DEFAULT_ARGS = ["--enable-automation"]
STEALTH_INIT_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
Object.defineProperty(navigator, 'languages', { get: () => ['ko-KR', 'ko', 'en-US', 'en'] });
window.chrome = window.chrome || { runtime: {} };
"""

# NAVER surfaces
NAVER_HOME_URL = "https://www.naver.com"
NAVER_HOME_TITLE = "NAVER"
NAVER_LOGIN_URL = "https://nid.naver.com/nidlogin.login"
NAVER_LOGIN_PATH = "nid.naver.com/nidlogin.login"
NAVER_SESSION_COOKIE = "NID_SES"
NAVER_LOGIN_FORM_SELECTOR = "form#frmNIDLogin"
NAVER_LOGIN_LINK_SELECTORS = (
    ".MyView-module__link_login___HpHMW",
    'a[href*="nid.naver.com/nidlogin.login"]',
    ".btn_login",
)
NAVER_LOGIN_ID_SELECTOR = "#id"
NAVER_DOMAIN = "naver.com"
SMARTSTORE_URL_PREFIX = "https://smartstore.naver.com"
SHOPPING_DOMAIN = "search.shopping.naver.com"

NAVER_SEARCH_INPUT_SELECTORS = (
    "#query",
    'input[name="query"]',
    "input.search_input",
    'input[type="search"]',
)
NAVER_SEARCH_BUTTON_SELECTORS = (
    "button.bt_search",
    '#nx_search_form button[type="submit"]',
    'button[type="submit"]',
    ".btn_search",
)
SHOPPING_SEARCH_INPUT_SELECTORS = (
    'form[name="search"] input[type="text"]',
    'input[name="query"]',
    'input[title="검색어 입력"]',
    'input[type="text"][placeholder*="검색"]',
)
SHOPPING_SEARCH_BUTTON_SELECTORS = (
    'form[name="search"] button[type="button"]:last-of-type',
    'form[name="search"] button[type="submit"]',
    'button[class*="searchInput_search"]',
)
HOME_ENTER_CHANCE = 0.85
SHOPPING_ENTER_CHANCE = 0.75

NAVER_PAY_TAB_TEXT = "네이버페이"
OVERSEAS_FILTER_SELECTOR = 'a[data-shp-contents-id="상품타입(전체)"]'
OVERSEAS_OPTION_SELECTOR = 'a[data-shp-contents-id="해외직구보기"]'
PAGE_SIZE_OPTION_TEXT = "80개씩 보기"

SHOPPING_SEARCH_API = "/api/search/all"
SHOPPING_PAGE_SIZE = 80

# AUCTION surfaces
AUCTION_HOME_URL = "https://www.auction.co.kr"
AUCTION_DOMAIN = "auction.co.kr"
AUCTION_SEARCH_URL = "https://www.auction.co.kr/n/search?keyword={keyword}"
AUCTION_CARD_DESIGN = "ItemCardGeneral"
AUCTION_OVERSEAS_BADGE = "해외직구"
AUCTION_DELIVERY_FEE_LABEL = "배송비"

# Detection
BLOCK_PHRASES = (
    "쇼핑 서비스 접속이 일시적으로 제한되었습니다",
    "접속이 일시적으로 제한",
    "비정상적인 접근이 감지",
    "시스템을 통해 아래와 같은 비정상적인 접근",
)
BLOCK_ERROR_SELECTOR = ".content_error"
BLOCK_GENERIC_TITLE = "네이버쇼핑"
BLOCK_GENERIC_TITLE_MAX_LEN = 10
BLOCK_HELP_LINK_SELECTORS = ('a[href*="help.naver.com"]', 'a[href*="help.pay.naver.com"]')
CAPTCHA_SCRIPT_SELECTOR = 'script[src*="wtm_captcha.js"]'
CAPTCHA_FRAME_SELECTOR = 'iframe[src*="captcha"]'
CAPTCHA_CONTAINER_SELECTOR = ".captcha_container"
CAPTCHA_MIN_HEIGHT_PX = 50
CAPTCHA_POLL_INTERVAL_SEC = 2.0

# Cleanup: auth keys win over remove patterns
AUTH_KEY_ALLOW_LIST = (
    "NID_AUT",
    "NID_SES",
    "NID_JKL",
    "NID_INFO",
    "NID_SI",
    "NID_CC",
    "NID_CCK",
    "naver_login",
    "naver_session",
    "naver_user",
    "naver_auth",
    "login",
    "session",
    "auth",
    "user",
    "token",
    "jwt",
)
AUTOMATION_KEY_PATTERNS = (
    r"^_ga",
    r"^_gid$",
    r"^_gcl",
    r"^_fbp$",
    r"^NNB$",
    r"^nx_",
    r"^wcs_",
    r"^BUC$",
    r"^ASID$",
    r"^page_uid$",
    r"^SRT\d+$",
    r"^ba\.",
    r"^nstore_",
    r"^sus_val$",
    r"webdriver",
    r"fingerprint",
    r"^cdc_",
    r"^__",
    r"^ncpa",
    r"^ncaptcha",
    r"^wtm_",
)

KEYBOARD_NEIGHBOURS = {
    "q": "was", "w": "qesd", "e": "wrdf", "r": "etfg", "t": "rygh",
    "y": "tuhj", "u": "yijk", "i": "uokl", "o": "ipl", "p": "ol",
    "a": "qsz", "s": "adzx", "d": "sfxc", "f": "dgcv", "g": "fhvb",
    "h": "gjbn", "j": "hknm", "k": "jlm", "l": "km",
    "z": "asx", "x": "zsdc", "c": "xdfv", "v": "cfgb", "b": "vghn",
    "n": "bhjm", "m": "njk",
}

# Relay endpoints
DEFAULT_API_BASE = "https://api.opennest.co.kr/selltkey/v1"
DEFAULT_WORK_LIST_URL = "https://selltkey.com/scb/api/getUrlList_scraper.asp"
DEFAULT_SEARCH_RELAY_BASE = "https://api.opennest.co.kr/restful/v1/selltkey"
DEFAULT_SEARCH_INSERT_URL = "https://selltkey.com/scb/api/setSearchResult.asp"
DEFAULT_KEYWORD_URL = "https://selltkey.com/scb/api/getRecommandKeyword.asp"

DEFAULT_ITEM_DELAY_MS = (15_000, 20_000)
DEFAULT_KEYWORD_DELAY_MS = (1_000, 2_800)
DEFAULT_CAPTCHA_MAX_WAIT_SEC = 300
DEFAULT_HTTP_TIMEOUT_SEC = 30
LOG_CAPACITY = 100

THOUSANDS_NUMBER_RE = re.compile(r"\d{1,3}(?:,\d{3})*")
NON_DIGIT_RE = re.compile(r"[^\d]")
WHITESPACE_RE = re.compile(r"\s+")


def load_simple_dotenv(path: Path) -> None:
    if not path.exists():
        return
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        LOG.warning("Could not read %s: %s", path, exc)
        return
    for line in raw.splitlines():
        item = line.strip()
        if not item or item.startswith("#") or "=" not in item:
            continue
        key, value = item.split("=", 1)
        env_key = key.strip().lstrip("\ufeff")
        env_val = value.strip().strip('"').strip("'")
        if env_key and env_key not in os.environ:
            os.environ[env_key] = env_val


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    try:
        return max(minimum, int(os.getenv(name, str(default))))
    except ValueError:
        return default


def _env_range(name: str, default: tuple[int, int]) -> tuple[int, int]:
    raw = (os.getenv(name, "") or "").strip()
    if not raw:
        return default
    try:
        low, high = (int(part) for part in raw.split(",", 1))
    except ValueError:
        return default
    if low < 0 or high < low:
        return default
    return low, high


def default_user_data_dir() -> str:
    appdata = os.getenv("APPDATA", "")
    if appdata:
        return str(Path(appdata) / "naver_scout_profile")
    return str(Path.home() / ".config" / "naver_scout_profile")


@dataclass(frozen=True)
class Settings:
    api_base: str = DEFAULT_API_BASE
    work_list_url: str = DEFAULT_WORK_LIST_URL
    search_relay_base: str = DEFAULT_SEARCH_RELAY_BASE
    search_insert_url: str = DEFAULT_SEARCH_INSERT_URL
    keyword_url: str = DEFAULT_KEYWORD_URL
    browser_path: str = ""
    user_data_dir: str = ""
    captcha_max_wait_sec: int = DEFAULT_CAPTCHA_MAX_WAIT_SEC
    item_delay_ms: tuple[int, int] = DEFAULT_ITEM_DELAY_MS
    keyword_delay_ms: tuple[int, int] = DEFAULT_KEYWORD_DELAY_MS
    http_timeout_sec: int = DEFAULT_HTTP_TIMEOUT_SEC

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            api_base=(os.getenv("SCOUT_API_BASE") or DEFAULT_API_BASE).rstrip("/"),
            work_list_url=os.getenv("SCOUT_WORK_LIST_URL") or DEFAULT_WORK_LIST_URL,
            search_relay_base=(
                os.getenv("SCOUT_SEARCH_RELAY_BASE") or DEFAULT_SEARCH_RELAY_BASE
            ).rstrip("/"),
            search_insert_url=os.getenv("SCOUT_SEARCH_INSERT_URL") or DEFAULT_SEARCH_INSERT_URL,
            keyword_url=os.getenv("SCOUT_KEYWORD_URL") or DEFAULT_KEYWORD_URL,
            browser_path=(os.getenv("SCOUT_BROWSER_PATH") or "").strip(),
            user_data_dir=(os.getenv("SCOUT_USER_DATA_DIR") or "").strip()
            or default_user_data_dir(),
            captcha_max_wait_sec=_env_int(
                "SCOUT_CAPTCHA_MAX_WAIT_SEC", DEFAULT_CAPTCHA_MAX_WAIT_SEC, minimum=1
            ),
            item_delay_ms=_env_range("SCOUT_ITEM_DELAY_MS", DEFAULT_ITEM_DELAY_MS),
            keyword_delay_ms=_env_range("SCOUT_KEYWORD_DELAY_MS", DEFAULT_KEYWORD_DELAY_MS),
            http_timeout_sec=_env_int(
                "SCOUT_HTTP_TIMEOUT_SEC", DEFAULT_HTTP_TIMEOUT_SEC, minimum=1
            ),
        )
