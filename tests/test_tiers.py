"""
Tests for the fetch tier manager: escalation, render retries, quota.
"""
import json
import re
import asyncio
from collections import Counter

import httpx
import pytest

from hellowork_scraper.config import TierSettings
from hellowork_scraper.core.errors import CrawlConfigError, FetchError, RenderError
from hellowork_scraper.core.net import HTTPClient
from hellowork_scraper.core.state import CrawlBudget, CrawlState
from hellowork_scraper.crawler.browser_crawler import Renderer
from hellowork_scraper.crawler.tiers import (
    REASON_FETCH_FAILED, REASON_NO_TITLE, EscalationItem, FetchTierManager,
)
from hellowork_scraper.pipeline.extractor import ExtractionCascade


def detail(i):
    return f"https://www.hellowork.com/fr-fr/emplois/{i}.html"


def jsonld_page(title):
    block = json.dumps({"@type": "JobPosting", "title": title})
    return f'<html><head><script type="application/ld+json">{block}</script></head><body></body></html>'


def fast(concurrency=4, max_retries=0):
    return TierSettings(concurrency=concurrency, max_retries=max_retries, timeout_secs=5,
                        backoff_min_secs=0, backoff_max_secs=0)


class FakeRenderer(Renderer):
    """Serves canned rendered pages; fails a URL a given number of times first."""

    def __init__(self, pages=None, failures=None):
        self.pages = pages or {}
        self.failures = dict(failures or {})
        self.calls = []
        self.started = False
        self.closed = False

    async def start(self):
        self.started = True

    async def render(self, url):
        self.calls.append(url)
        if self.failures.get(url, 0) > 0:
            self.failures[url] -= 1
            raise RenderError(url, "navigation failed")
        if url not in self.pages:
            raise FetchError(url, "HTTP 404", status_code=404)
        return self.pages[url]

    async def close(self):
        self.closed = True


def site(routes):
    """MockTransport serving {posting id: (status, body)}; records calls per id."""
    calls = Counter()

    def handler(request):
        match = re.search(r'/emplois/(\d+)\.html', request.url.path)
        posting = int(match.group(1)) if match else None
        calls[posting] += 1
        status, body = routes.get(posting, (404, ""))
        return httpx.Response(status, text=body)

    return httpx.MockTransport(handler), calls


def make_manager(transport, renderer, results_wanted=100, concurrency=4, render_retries=0):
    state = CrawlState(CrawlBudget(results_wanted, 10, 60))
    client = HTTPClient(fast(concurrency), transport=transport)
    manager = FetchTierManager(
        state, ExtractionCascade(), client, client, renderer, fast(2, render_retries)
    )
    return manager, state


class Collector:
    def __init__(self):
        self.records = []

    async def __call__(self, record):
        self.records.append(record)


class TestCheapPass:

    @pytest.mark.asyncio
    async def test_saves_and_escalates(self):
        transport, calls = site({
            1: (200, jsonld_page("Comptable")),
            2: (403, "blocked"),
            3: (200, "<html><body><p>Chargement...</p></body></html>"),
        })
        manager, state = make_manager(transport, FakeRenderer())
        emit = Collector()

        escalations = await manager.run_cheap_pass([detail(1), detail(2), detail(3)], emit)

        assert [r['title'] for r in emit.records] == ["Comptable"]
        assert escalations == [
            EscalationItem(detail(2), REASON_FETCH_FAILED),
            EscalationItem(detail(3), REASON_NO_TITLE),
        ]
        assert state.saved == 1
        assert calls == Counter({1: 1, 2: 1, 3: 1})

    @pytest.mark.asyncio
    async def test_stops_dispatching_at_quota(self):
        transport, calls = site({i: (200, jsonld_page(f"Offre {i}")) for i in range(1, 6)})
        manager, state = make_manager(transport, FakeRenderer(), results_wanted=2, concurrency=1)
        emit = Collector()

        await manager.run_cheap_pass([detail(i) for i in range(1, 6)], emit)

        assert len(emit.records) == 2
        assert state.saved == 2
        assert sum(calls.values()) == 2
        assert manager.stats['skipped'] == 3

    @pytest.mark.asyncio
    async def test_url_attempted_once(self):
        transport, calls = site({})
        manager, _ = make_manager(transport, FakeRenderer())

        first = await manager.run_cheap_pass([detail(7), detail(7)], Collector())
        second = await manager.run_cheap_pass([detail(7)], Collector())

        assert len(first) == 1
        assert second == []
        assert calls[7] == 1


class TestRenderPass:

    @pytest.mark.asyncio
    async def test_each_escalation_rendered_once(self):
        renderer = FakeRenderer({
            detail(2): "<html><body><h1>Chauffeur [Transports X]</h1></body></html>",
            detail(3): jsonld_page("Infirmier"),
        })
        manager, state = make_manager(site({})[0], renderer)
        emit = Collector()
        items = [EscalationItem(detail(2), REASON_FETCH_FAILED), EscalationItem(detail(3), REASON_NO_TITLE)]

        await manager.run_render_pass(items, emit)
        await manager.run_render_pass(items, emit)

        assert sorted(renderer.calls) == [detail(2), detail(3)]
        sources = {r['url']: r['_source'] for r in emit.records}
        assert sources == {detail(2): "playwright-html", detail(3): "playwright-jsonld"}
        assert state.saved == 2

    @pytest.mark.asyncio
    async def test_transient_render_errors_retried(self):
        renderer = FakeRenderer({detail(4): jsonld_page("Serveur")}, failures={detail(4): 2})
        manager, _ = make_manager(site({})[0], renderer, render_retries=2)
        emit = Collector()

        await manager.run_render_pass([EscalationItem(detail(4), REASON_FETCH_FAILED)], emit)

        assert renderer.calls == [detail(4)] * 3
        assert [r['title'] for r in emit.records] == ["Serveur"]

    @pytest.mark.asyncio
    async def test_failures_dropped(self):
        renderer = FakeRenderer(
            {detail(6): "<html><body><p>Toujours vide</p></body></html>"},
            failures={detail(5): 5},
        )
        manager, state = make_manager(site({})[0], renderer, render_retries=1)
        emit = Collector()

        await manager.run_render_pass([
            EscalationItem(detail(5), REASON_FETCH_FAILED),
            EscalationItem(detail(6), REASON_NO_TITLE),
            EscalationItem(detail(8), REASON_NO_TITLE),
        ], emit)

        assert emit.records == []
        assert state.saved == 0
        assert manager.stats['render_failed'] == 2
        assert manager.stats['render_no_title'] == 1
        assert renderer.calls.count(detail(5)) == 2

    @pytest.mark.asyncio
    async def test_config_error_raised_after_workers_settle(self):
        class BrokenTransport(FakeRenderer):
            async def render(self, url):
                self.calls.append(url)
                if url == detail(10):
                    raise CrawlConfigError("browser went away")
                await asyncio.sleep(0.01)
                return self.pages[url]

        renderer = BrokenTransport({detail(11): jsonld_page("Magasinier")})
        manager, state = make_manager(site({})[0], renderer)
        emit = Collector()

        with pytest.raises(CrawlConfigError):
            await manager.run_render_pass([
                EscalationItem(detail(10), REASON_FETCH_FAILED),
                EscalationItem(detail(11), REASON_NO_TITLE),
            ], emit)

        assert [r['title'] for r in emit.records] == ["Magasinier"]
        assert state.saved == 1
