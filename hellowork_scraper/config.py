"""
Run configuration.

CrawlInput validates the user-facing input (actor-style JSON or CLI flags).
CrawlSettings combines it with tier and browser knobs read from the
environment.
"""
import os
import sys
import math
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .core.errors import CrawlConfigError
from .core.urls import SearchQuery, normalize

logger = logging.getLogger(__name__)

UNBOUNDED = sys.maxsize
DEFAULT_RESULTS_WANTED = 100
DEFAULT_MAX_PAGES = 999
DEFAULT_TIME_LIMIT_SECS = 260.0
DEFAULT_BATCH_SIZE = 10


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"[config] Ignoring non-integer {name}={raw!r}, using {default}")
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"[config] Ignoring non-numeric {name}={raw!r}, using {default}")
        return default


def _to_number(value: Any) -> Optional[float]:
    """Numeric coercion that rejects booleans, NaN and infinities."""
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(str(value).strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


@dataclass
class TierSettings:
    """Concurrency, retry and pacing policy for one fetch tier."""
    concurrency: int
    max_retries: int
    timeout_secs: float
    min_delay_secs: float = 0.0
    max_delay_secs: float = 0.0
    backoff_min_secs: float = 1.0
    backoff_max_secs: float = 8.0


@dataclass
class BrowserSettings:
    """Render tier browser pool."""
    headless: bool = True
    locale: str = "fr-FR"
    timezone_id: str = "Europe/Paris"
    retire_after_pages: int = 30
    max_browser_age_secs: float = 3600.0
    max_open_pages_per_browser: int = 2
    navigation_timeout_secs: float = 20.0
    ready_selector: str = "h1"
    ready_timeout_secs: float = 8.0
    modal_timeout_secs: float = 2.0


def listing_tier_from_env() -> TierSettings:
    return TierSettings(
        concurrency=_env_int("HELLOWORK_LISTING_CONCURRENCY", 15),
        max_retries=_env_int("HELLOWORK_CHEAP_RETRIES", 3),
        timeout_secs=_env_float("HELLOWORK_LISTING_TIMEOUT_SECS", 20.0),
        min_delay_secs=0.2,
        max_delay_secs=0.6,
    )


def detail_tier_from_env() -> TierSettings:
    return TierSettings(
        concurrency=_env_int("HELLOWORK_CHEAP_CONCURRENCY", 20),
        max_retries=_env_int("HELLOWORK_CHEAP_RETRIES", 3),
        timeout_secs=_env_float("HELLOWORK_CHEAP_TIMEOUT_SECS", 15.0),
        min_delay_secs=0.15,
        max_delay_secs=0.5,
    )


def render_tier_from_env() -> TierSettings:
    return TierSettings(
        concurrency=_env_int("HELLOWORK_RENDER_CONCURRENCY", 5),
        max_retries=_env_int("HELLOWORK_RENDER_RETRIES", 2),
        timeout_secs=_env_float("HELLOWORK_RENDER_TIMEOUT_SECS", 45.0),
        backoff_min_secs=2.0,
        backoff_max_secs=10.0,
    )


class CrawlInput(BaseModel):
    """Run input. Accepts the camelCase keys of the actor input schema."""

    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    keyword: str = ""
    location: str = ""
    category: str = ""
    results_wanted: int = DEFAULT_RESULTS_WANTED
    max_pages: int = DEFAULT_MAX_PAGES
    collect_details: bool = Field(default=True, alias="collectDetails")
    start_url: Optional[str] = Field(default=None, alias="startUrl")
    start_urls: List[str] = Field(default_factory=list, alias="startUrls")
    url: Optional[str] = None
    proxy_configuration: Optional[Dict[str, Any]] = Field(default=None, alias="proxyConfiguration")

    @field_validator('keyword', 'location', 'category', mode='before')
    @classmethod
    def _strip_text(cls, value: Any) -> str:
        if value is None:
            return ""
        return str(value).strip()

    @field_validator('results_wanted', mode='before')
    @classmethod
    def _coerce_results_wanted(cls, value: Any) -> int:
        if value is None:
            return DEFAULT_RESULTS_WANTED
        number = _to_number(value)
        if number is None:
            # Non-numeric means "no limit"
            return UNBOUNDED
        return max(1, int(number))

    @field_validator('max_pages', mode='before')
    @classmethod
    def _coerce_max_pages(cls, value: Any) -> int:
        number = _to_number(value)
        if number is None:
            return DEFAULT_MAX_PAGES
        return max(1, int(number))

    @field_validator('start_urls', mode='before')
    @classmethod
    def _flatten_start_urls(cls, value: Any) -> List[str]:
        """startUrls entries may be plain strings or request objects ({"url": ...})."""
        if not value:
            return []
        if not isinstance(value, list):
            value = [value]
        urls = []
        for entry in value:
            if isinstance(entry, dict):
                entry = entry.get('url')
            if isinstance(entry, str) and entry.strip():
                urls.append(entry.strip())
        return urls

    def search_query(self) -> SearchQuery:
        return SearchQuery(self.keyword, self.location, self.category)

    def initial_urls(self) -> List[str]:
        """Explicit start URLs in input order, else one URL built from the search query."""
        urls = list(self.start_urls)
        if self.start_url:
            urls.append(self.start_url.strip())
        if self.url:
            urls.append(self.url.strip())
        if not urls:
            urls.append(self.search_query().to_start_url())
        return urls


def _proxy_urls(proxy_configuration: Optional[Dict[str, Any]]) -> List[str]:
    if not proxy_configuration:
        return []
    raw: Union[str, List[str], None] = proxy_configuration.get('proxyUrls') or proxy_configuration.get('proxyUrl')
    if not raw:
        return []
    if isinstance(raw, str):
        raw = [raw]

    proxies = []
    for proxy in raw:
        proxy = str(proxy).strip()
        if not proxy.lower().startswith(('http://', 'https://', 'socks5://')):
            raise CrawlConfigError(f"Unsupported proxy URL: {proxy!r}")
        proxies.append(proxy)
    return proxies


@dataclass
class CrawlSettings:
    """Everything the orchestrator needs for one run."""
    start_urls: List[str]
    results_wanted: int = DEFAULT_RESULTS_WANTED
    max_pages: int = DEFAULT_MAX_PAGES
    collect_details: bool = True
    time_limit_secs: float = DEFAULT_TIME_LIMIT_SECS
    batch_size: int = DEFAULT_BATCH_SIZE
    probe_empty_first_page: bool = True
    proxy_urls: List[str] = field(default_factory=list)
    listing_tier: TierSettings = field(default_factory=listing_tier_from_env)
    detail_tier: TierSettings = field(default_factory=detail_tier_from_env)
    render_tier: TierSettings = field(default_factory=render_tier_from_env)
    browser: BrowserSettings = field(default_factory=BrowserSettings)

    @classmethod
    def from_input(cls, crawl_input: CrawlInput) -> "CrawlSettings":
        """
        Build settings from validated input and environment overrides.

        Raises:
            CrawlConfigError: no usable start URL or an invalid proxy
        """
        start_urls = []
        for raw in crawl_input.initial_urls():
            absolute = normalize(raw)
            if not absolute:
                raise CrawlConfigError(f"Start URL is not a valid target-domain URL: {raw!r}")
            if absolute not in start_urls:
                start_urls.append(absolute)

        settings = cls(
            start_urls=start_urls,
            results_wanted=crawl_input.results_wanted,
            max_pages=crawl_input.max_pages,
            collect_details=crawl_input.collect_details,
            time_limit_secs=_env_float("HELLOWORK_TIME_LIMIT_SECS", DEFAULT_TIME_LIMIT_SECS),
            batch_size=max(1, _env_int("HELLOWORK_BATCH_SIZE", DEFAULT_BATCH_SIZE)),
            proxy_urls=_proxy_urls(crawl_input.proxy_configuration),
        )

        logger.info(
            f"[config] start_urls={len(settings.start_urls)}, results_wanted={settings.results_wanted}, "
            f"max_pages={settings.max_pages}, collect_details={settings.collect_details}, "
            f"proxies={len(settings.proxy_urls)}"
        )
        return settings
