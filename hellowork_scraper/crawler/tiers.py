"""
Fetch tier manager.

Two worker pools over detail URLs:
- cheap tier: plain HTTP fetch + extraction cascade
- render tier: browser-rendered content + the same cascade, for the URLs
  the cheap tier could not handle

The cheap pass returns its escalations as a list; the render pass consumes
that list. Each URL is attempted at most once per tier.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, NamedTuple, Optional

from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from ..config import TierSettings
from ..core.errors import CrawlConfigError, FetchError, RenderError
from ..core.net import HTTPClient
from ..core.state import CrawlState
from ..pipeline.extractor import ExtractionCascade, ExtractionResult
from .browser_crawler import Renderer

logger = logging.getLogger(__name__)

TIER_CHEAP = 'cheap'
TIER_RENDER = 'render'

# Escalation reasons
REASON_FETCH_FAILED = 'fetch_failed'
REASON_NO_TITLE = 'no_title'

EmitFn = Callable[[Dict[str, Any]], Awaitable[None]]


class EscalationItem(NamedTuple):
    url: str
    reason: str


class FetchTierManager:
    """Runs the cheap and render tiers against the shared crawl state."""

    def __init__(
        self,
        state: CrawlState,
        cascade: ExtractionCascade,
        listing_client: HTTPClient,
        detail_client: HTTPClient,
        renderer: Optional[Renderer],
        render_settings: TierSettings
    ):
        self.state = state
        self.cascade = cascade
        self.listing_client = listing_client
        self.detail_client = detail_client
        self.renderer = renderer
        self.render_settings = render_settings
        self.stats = {
            'cheap_saved': 0,
            'cheap_fetch_failed': 0,
            'cheap_no_title': 0,
            'render_saved': 0,
            'render_failed': 0,
            'render_no_title': 0,
            'skipped': 0,
        }

    async def fetch_listing(self, url: str) -> str:
        """Listing pages always go through the cheap tier."""
        return await self.listing_client.fetch_text(url)

    async def _save(self, result: ExtractionResult, emit: EmitFn) -> bool:
        """Reserve an output slot and hand the record over. False once the quota is full."""
        if not await self.state.try_reserve_slot():
            logger.debug(f"[tiers] Quota reached, discarding {result.url}")
            return False
        await emit(result.fields)
        return True

    async def _cheap_one(self, url: str, emit: EmitFn) -> Optional[EscalationItem]:
        if not await self.state.try_mark_attempted(TIER_CHEAP, url):
            return None

        try:
            html = await self.detail_client.fetch_text(url)
        except FetchError as e:
            self.stats['cheap_fetch_failed'] += 1
            logger.info(f"[cheap_tier] Fetch failed, escalating {url}: {e.reason}")
            return EscalationItem(url, REASON_FETCH_FAILED)

        result = self.cascade.extract(html, url)
        if not result.success:
            self.stats['cheap_no_title'] += 1
            logger.info(f"[cheap_tier] No title found, escalating {url}")
            return EscalationItem(url, REASON_NO_TITLE)

        if await self._save(result, emit):
            self.stats['cheap_saved'] += 1
            logger.info(f"[cheap_tier] Saved ({result.fields.get('_source')}): {result.title}")
        return None

    async def run_cheap_pass(self, urls: List[str], emit: EmitFn) -> List[EscalationItem]:
        """
        Fetch and extract every URL with the cheap tier.

        Args:
            urls: Detail URLs in discovery order
            emit: Async callback receiving each saved record

        Returns:
            Items to forward to the render tier, in input order
        """
        semaphore = asyncio.Semaphore(self.detail_client.settings.concurrency)
        escalations: List[Optional[EscalationItem]] = [None] * len(urls)

        async def worker(index: int, url: str):
            async with semaphore:
                reason = self.state.stop_reason()
                if reason:
                    self.stats['skipped'] += 1
                    logger.debug(f"[cheap_tier] Stop ({reason}), not dispatching {url}")
                    return
                try:
                    escalations[index] = await self._cheap_one(url, emit)
                except Exception as e:
                    logger.error(f"[cheap_tier] Unexpected error on {url}: {e}", exc_info=True)

        logger.info(f"[cheap_tier] Dispatching {len(urls)} detail URLs")
        await asyncio.gather(*(worker(i, url) for i, url in enumerate(urls)))

        items = [item for item in escalations if item is not None]
        logger.info(
            f"[cheap_tier] Done: saved={self.stats['cheap_saved']}, "
            f"escalated={len(items)}, skipped={self.stats['skipped']}"
        )
        return items

    async def _render_with_retry(self, url: str) -> str:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.render_settings.max_retries + 1),
            wait=wait_exponential(
                multiplier=1,
                min=self.render_settings.backoff_min_secs,
                max=self.render_settings.backoff_max_secs
            ),
            retry=retry_if_exception_type(RenderError),
            reraise=True
        )
        async for attempt in retrying:
            with attempt:
                attempt_no = attempt.retry_state.attempt_number
                if attempt_no > 1:
                    logger.info(f"[render_tier] Retry {attempt_no - 1}/{self.render_settings.max_retries} for {url}")
                try:
                    return await asyncio.wait_for(
                        self.renderer.render(url),
                        timeout=self.render_settings.timeout_secs
                    )
                except asyncio.TimeoutError as e:
                    raise RenderError(url, "render timeout") from e

    async def _render_one(self, item: EscalationItem, emit: EmitFn):
        url = item.url
        if not await self.state.try_mark_attempted(TIER_RENDER, url):
            return

        try:
            html = await self._render_with_retry(url)
        except FetchError as e:
            # Last resort: drop
            self.stats['render_failed'] += 1
            logger.warning(f"[render_tier] Dropping {url} ({item.reason}): {e.reason}")
            return

        result = self.cascade.extract(html, url, rendered=True)
        if not result.success:
            self.stats['render_no_title'] += 1
            logger.warning(f"[render_tier] No title after rendering, dropping {url}")
            return

        if await self._save(result, emit):
            self.stats['render_saved'] += 1
            logger.info(f"[render_tier] Saved ({result.fields.get('_source')}): {result.title}")

    async def run_render_pass(self, items: List[EscalationItem], emit: EmitFn):
        """
        Render each escalated URL once. Failures are dropped, never re-escalated.

        Raises:
            CrawlConfigError: the render transport failed; raised once every
                worker has settled
        """
        if not items:
            return
        if self.renderer is None:
            logger.warning(f"[render_tier] No renderer configured, dropping {len(items)} escalated URLs")
            self.stats['render_failed'] += len(items)
            return

        semaphore = asyncio.Semaphore(self.render_settings.concurrency)

        async def worker(item: EscalationItem):
            async with semaphore:
                reason = self.state.stop_reason()
                if reason:
                    self.stats['skipped'] += 1
                    logger.debug(f"[render_tier] Stop ({reason}), not dispatching {item.url}")
                    return
                try:
                    await self._render_one(item, emit)
                except CrawlConfigError:
                    raise
                except Exception as e:
                    self.stats['render_failed'] += 1
                    logger.error(f"[render_tier] Unexpected error on {item.url}: {e}", exc_info=True)

        logger.info(f"[render_tier] Dispatching {len(items)} escalated URLs")
        results = await asyncio.gather(*(worker(item) for item in items), return_exceptions=True)
        logger.info(
            f"[render_tier] Done: saved={self.stats['render_saved']}, "
            f"failed={self.stats['render_failed']}, no_title={self.stats['render_no_title']}"
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
