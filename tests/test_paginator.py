"""
Unit tests for listing link extraction and the paginator state machine.
"""
import pytest

from hellowork_scraper.core.state import CrawlBudget, CrawlState
from hellowork_scraper.core.urls import build_start_url, page_number
from hellowork_scraper.crawler.paginator import (
    EXHAUSTED, FAILED, PAGE_CAP, QUOTA_REACHED, SEEKING,
    ListingPaginator, extract_detail_links,
)
from hellowork_scraper.core.errors import FetchError

START_URL = build_start_url("developer", "Paris")


def listing_html(ids, extra=""):
    cards = "".join(
        f'<li><a href="/fr-fr/emplois/{i}.html">Offre {i}</a>'
        f'<a href="/fr-fr/emplois/{i}.html?utm_source=card">Voir</a></li>'
        for i in ids
    )
    return f"<html><body><ul>{cards}</ul>{extra}</body></html>"


def make_state(results_wanted=100, max_pages=999):
    return CrawlState(CrawlBudget(results_wanted, max_pages, 260.0))


class TestExtractDetailLinks:

    def test_links_absolute_unique_in_order(self):
        extra = """
          <a href="/fr-fr/emploi/recherche.html?k=dev&p=2">Suivant</a>
          <a href="/fr-fr/emplois/metier-developpeur.html">Fiche métier</a>
          <a href="https://other.example/fr-fr/emplois/99.html">Ailleurs</a>
        """
        links = extract_detail_links(listing_html([3, 1, 2], extra), START_URL)
        assert links == [
            "https://www.hellowork.com/fr-fr/emplois/3.html",
            "https://www.hellowork.com/fr-fr/emplois/1.html",
            "https://www.hellowork.com/fr-fr/emplois/2.html",
        ]

    def test_idempotent(self):
        html = listing_html([10, 11, 12])
        assert extract_detail_links(html, START_URL) == extract_detail_links(html, START_URL)

    def test_empty(self):
        assert extract_detail_links("", START_URL) == []
        assert extract_detail_links("<html><body>Aucune offre</body></html>", START_URL) == []


class TestListingPaginator:

    @pytest.mark.asyncio
    async def test_advances_then_exhausts(self):
        state = make_state()
        paginator = ListingPaginator(START_URL, state, max_pages=10)

        first = paginator.next_request()
        assert first.page_number == 1
        assert await paginator.on_page(first, listing_html([1, 2])) == 2
        assert paginator.status == SEEKING

        second = paginator.next_request()
        assert second.page_number == 2
        assert page_number(second.url) == 2

        await paginator.on_page(second, listing_html([]))
        assert paginator.status == EXHAUSTED
        assert paginator.next_request() is None
        assert len(state.detail_urls) == 2

    @pytest.mark.asyncio
    async def test_duplicate_only_page_keeps_seeking(self):
        state = make_state()
        paginator = ListingPaginator(START_URL, state, max_pages=10)

        await paginator.on_page(paginator.next_request(), listing_html([1, 2]))
        added = await paginator.on_page(paginator.next_request(), listing_html([1, 2]))

        assert added == 0
        assert paginator.status == SEEKING
        assert paginator.next_request().page_number == 3
        assert len(state.detail_urls) == 2

    @pytest.mark.asyncio
    async def test_empty_first_page_probes_second(self):
        paginator = ListingPaginator(START_URL, make_state(), max_pages=10)

        await paginator.on_page(paginator.next_request(), listing_html([]))
        assert paginator.status == SEEKING
        probe = paginator.next_request()
        assert probe.page_number == 2

        await paginator.on_page(probe, listing_html([]))
        assert paginator.status == EXHAUSTED

    @pytest.mark.asyncio
    async def test_empty_first_page_without_probe(self):
        paginator = ListingPaginator(START_URL, make_state(), max_pages=10, probe_empty_first_page=False)
        await paginator.on_page(paginator.next_request(), listing_html([]))
        assert paginator.status == EXHAUSTED

    @pytest.mark.asyncio
    async def test_quota_reached(self):
        state = make_state(results_wanted=3)
        paginator = ListingPaginator(START_URL, state, max_pages=10)

        added = await paginator.on_page(paginator.next_request(), listing_html([1, 2, 3, 4, 5]))

        assert added == 3
        assert paginator.status == QUOTA_REACHED
        assert len(state.detail_urls) == 3

    @pytest.mark.asyncio
    async def test_page_cap(self):
        paginator = ListingPaginator(START_URL, make_state(), max_pages=1)
        await paginator.on_page(paginator.next_request(), listing_html([1]))
        assert paginator.status == PAGE_CAP
        assert paginator.next_request() is None

    @pytest.mark.asyncio
    async def test_shared_set_full_before_start(self):
        state = make_state(results_wanted=1)
        await state.try_add_detail_url("https://www.hellowork.com/fr-fr/emplois/1.html")
        paginator = ListingPaginator(START_URL, state, max_pages=10)

        assert paginator.next_request() is None
        assert paginator.status == QUOTA_REACHED

    def test_failure_is_terminal(self):
        paginator = ListingPaginator(START_URL, make_state(), max_pages=10)
        request = paginator.next_request()
        paginator.on_failure(request, FetchError(request.url, "HTTP 403", 403))
        assert paginator.status == FAILED
        assert paginator.done
