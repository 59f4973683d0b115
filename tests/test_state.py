"""
Unit tests for the shared crawl state.
"""
import asyncio

import pytest

from hellowork_scraper.core.state import STOP_DEADLINE, STOP_QUOTA, CrawlBudget, CrawlState


def detail(i):
    return f"https://www.hellowork.com/fr-fr/emplois/{i}.html"


class TestCrawlState:

    @pytest.mark.asyncio
    async def test_add_rejects_canonical_duplicates(self):
        state = CrawlState(CrawlBudget(10, 5, 60))
        assert await state.try_add_detail_url(detail(1))
        assert not await state.try_add_detail_url(detail(1) + "?utm_source=mail")
        assert not await state.try_add_detail_url("https://hellowork.com/fr-fr/emplois/1.html")
        assert state.detail_urls == [detail(1)]

    @pytest.mark.asyncio
    async def test_concurrent_adds_never_exceed_quota(self):
        state = CrawlState(CrawlBudget(10, 5, 60))
        urls = [detail(i % 20) for i in range(60)]

        results = await asyncio.gather(*(state.try_add_detail_url(u) for u in urls))

        assert sum(results) == 10
        assert len(state.detail_urls) == 10
        assert len(set(state.detail_urls)) == 10
        assert state.discovery_full()

    @pytest.mark.asyncio
    async def test_reserve_slot_never_overshoots(self):
        state = CrawlState(CrawlBudget(5, 5, 60))
        results = await asyncio.gather(*(state.try_reserve_slot() for _ in range(20)))

        assert sum(results) == 5
        assert state.saved == 5
        assert state.stop_reason() == STOP_QUOTA

    @pytest.mark.asyncio
    async def test_attempted_once_per_tier(self):
        state = CrawlState(CrawlBudget(5, 5, 60))
        assert await state.try_mark_attempted('cheap', detail(1))
        assert not await state.try_mark_attempted('cheap', detail(1))
        assert await state.try_mark_attempted('render', detail(1))
        assert state.attempted_count('cheap') == 1
        assert state.attempted_count('render') == 1

    def test_soft_deadline(self):
        now = [100.0]
        state = CrawlState(CrawlBudget(5, 5, 30, clock=lambda: now[0]))

        assert state.stop_reason() is None
        now[0] = 129.9
        assert not state.budget.is_expired()
        now[0] = 130.0
        assert state.stop_reason() == STOP_DEADLINE
        assert state.budget.elapsed() == pytest.approx(30.0)
