"""
Crawl orchestrator - sequences discovery, the cheap detail pass, the render
fallback pass and batched output for one run.
"""
import time
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .config import CrawlSettings
from .core.errors import FetchError
from .core.net import HTTPClient, ProxyRotator
from .core.output import OutputSink
from .core.state import CrawlBudget, CrawlState
from .crawler.browser_crawler import PlaywrightRenderer, Renderer
from .crawler.paginator import ListingPaginator
from .crawler.tiers import FetchTierManager
from .pipeline.extractor import ExtractionCascade
from .pipeline.records import url_stub

logger = logging.getLogger(__name__)

STOP_COMPLETE = "complete"


class OutputBatch:
    """Buffer of records awaiting a push to the sink."""

    def __init__(self, sink: OutputSink, batch_size: int):
        self.sink = sink
        self.batch_size = max(1, batch_size)
        self._records: List[Dict[str, Any]] = []
        self._lock = asyncio.Lock()
        self.flushed = 0

    def __len__(self):
        return len(self._records)

    async def add(self, record: Dict[str, Any]):
        self._records.append(record)
        await self.flush()

    async def flush(self, force: bool = False) -> int:
        """
        Push buffered records once the threshold is met, or unconditionally with force.

        Records leave the buffer only after the sink accepted them; a failed
        push keeps them for the next flush.
        """
        async with self._lock:
            if not self._records:
                return 0
            if not force and len(self._records) < self.batch_size:
                return 0
            records = list(self._records)
            await self.sink.push(records)
            # Records added while the push was in flight stay buffered
            del self._records[:len(records)]
            self.flushed += len(records)
        logger.debug(f"[orchestrator] Flushed {len(records)} records (total {self.flushed})")
        return len(records)


@dataclass
class CrawlReport:
    saved: int
    discovered: int
    escalated: int
    dropped: int
    elapsed: float
    stop_reason: str

    @property
    def degraded(self) -> bool:
        """Zero saved: no matching postings, or everything was blocked."""
        return self.saved == 0

    @property
    def items_per_sec(self) -> float:
        return self.saved / self.elapsed if self.elapsed > 0 else 0.0


class CrawlOrchestrator:
    """
    Runs one crawl:
    1. Discovery (listing paginators, one per start URL)
    2. Fast extraction (cheap tier)
    3. Fallback extraction (render tier) for escalated URLs
    4. Flush
    """

    def __init__(
        self,
        settings: CrawlSettings,
        sink: OutputSink,
        listing_client: Optional[HTTPClient] = None,
        detail_client: Optional[HTTPClient] = None,
        renderer: Optional[Renderer] = None,
        cascade: Optional[ExtractionCascade] = None,
        clock: Optional[Callable[[], float]] = None
    ):
        self.settings = settings
        self.sink = sink
        self.clock = clock or time.monotonic

        proxy_rotator = ProxyRotator(settings.proxy_urls)
        self.listing_client = listing_client or HTTPClient(settings.listing_tier, proxy_rotator, name="listing")
        self.detail_client = detail_client or HTTPClient(settings.detail_tier, proxy_rotator, name="cheap_tier")
        if renderer is None and settings.collect_details:
            renderer = PlaywrightRenderer(settings.browser, proxy_rotator)
        self.renderer = renderer
        self.cascade = cascade or ExtractionCascade()

        self.batch = OutputBatch(sink, settings.batch_size)
        self.state: Optional[CrawlState] = None
        self.tiers: Optional[FetchTierManager] = None
        self.paginators: List[ListingPaginator] = []

    async def _drive_paginator(self, paginator: ListingPaginator, semaphore: asyncio.Semaphore):
        """Pages of one query are fetched strictly in increasing order."""
        async with semaphore:
            while True:
                if self.state.budget.is_expired():
                    logger.info("[orchestrator] Deadline reached during discovery")
                    return
                request = paginator.next_request()
                if request is None:
                    return
                try:
                    html = await self.tiers.fetch_listing(request.url)
                except FetchError as e:
                    paginator.on_failure(request, e)
                    return
                await paginator.on_page(request, html)

    async def _discover(self):
        semaphore = asyncio.Semaphore(self.settings.listing_tier.concurrency)
        self.paginators = [
            ListingPaginator(
                url, self.state, self.settings.max_pages,
                probe_empty_first_page=self.settings.probe_empty_first_page
            )
            for url in self.settings.start_urls
        ]
        await asyncio.gather(*(self._drive_paginator(p, semaphore) for p in self.paginators))

        statuses = ', '.join(p.status for p in self.paginators)
        logger.info(f"[orchestrator] Discovery done: {len(self.state.detail_urls)} detail URLs ({statuses})")

    async def _emit(self, record: Dict[str, Any]):
        await self.batch.add(record)

    async def _emit_stubs(self, urls: List[str]):
        for url in urls:
            if self.state.stop_reason():
                break
            if await self.state.try_reserve_slot():
                await self._emit(url_stub(url))

    async def run(self) -> CrawlReport:
        """
        Execute the crawl.

        Returns:
            CrawlReport; a zero-saved report is a degraded result, not a failure

        Raises:
            CrawlConfigError: the render transport cannot be initialized
        """
        budget = CrawlBudget(
            self.settings.results_wanted,
            self.settings.max_pages,
            self.settings.time_limit_secs,
            clock=self.clock
        )
        self.state = CrawlState(budget)
        self.tiers = FetchTierManager(
            self.state, self.cascade,
            self.listing_client, self.detail_client,
            self.renderer, self.settings.render_tier
        )
        escalations = []

        logger.info(f"[orchestrator] Starting crawl: {budget}, start_urls={len(self.settings.start_urls)}")

        try:
            await self._discover()
            detail_urls = self.state.detail_urls

            if not self.settings.collect_details:
                logger.info("[orchestrator] collectDetails disabled, emitting URL-only records")
                await self._emit_stubs(detail_urls)
            else:
                escalations = await self.tiers.run_cheap_pass(detail_urls, self._emit)
                await self.batch.flush(force=True)

                stop = self.state.stop_reason()
                if escalations and not stop:
                    await self.renderer.start()
                    await self.tiers.run_render_pass(escalations, self._emit)
                elif escalations:
                    logger.info(f"[orchestrator] Skipping render pass ({stop}), {len(escalations)} escalations left")
        finally:
            await self.batch.flush(force=True)
            if self.renderer is not None:
                await self.renderer.close()

        stats = self.tiers.stats
        report = CrawlReport(
            saved=self.state.saved,
            discovered=len(self.state.detail_urls),
            escalated=len(escalations),
            dropped=stats['render_failed'] + stats['render_no_title'],
            elapsed=budget.elapsed(),
            stop_reason=self.state.stop_reason() or STOP_COMPLETE,
        )

        logger.info(
            f"[orchestrator] Saved {report.saved} items in {report.elapsed:.1f}s "
            f"({report.items_per_sec:.2f} items/sec); discovered={report.discovered}, "
            f"escalated={report.escalated}, dropped={report.dropped}, stop={report.stop_reason}"
        )
        if report.degraded:
            logger.warning("[orchestrator] No results saved (degraded result). Check the query or whether the site blocked the run")

        return report
