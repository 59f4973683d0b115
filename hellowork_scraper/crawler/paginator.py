"""
Listing paginator: walks one search's listing pages in increasing order and
feeds the discovered detail URLs into the shared crawl state.
"""
import logging
from typing import List, NamedTuple, Optional

from bs4 import BeautifulSoup

from ..core.state import CrawlState
from ..core.urls import BASE_URL, build_next_page_url, dedup_key, is_detail_url, normalize

logger = logging.getLogger(__name__)

# States
SEEKING = 'seeking'
EXHAUSTED = 'exhausted'
QUOTA_REACHED = 'quota_reached'
PAGE_CAP = 'page_cap'
FAILED = 'failed'

TERMINAL_STATES = {EXHAUSTED, QUOTA_REACHED, PAGE_CAP, FAILED}

DETAIL_LINK_SELECTOR = 'a[href*="/emplois/"]'


class ListingPageRequest(NamedTuple):
    url: str
    page_number: int


def extract_detail_links(html: str, base_url: str = BASE_URL) -> List[str]:
    """
    Detail links of a listing page, absolute, unique, in page order.

    Pure function of its input: the same content always yields the same list.
    """
    if not html:
        return []

    soup = BeautifulSoup(html, 'lxml')
    links = []
    seen = set()

    for anchor in soup.select(DETAIL_LINK_SELECTOR):
        href = anchor.get('href')
        if not is_detail_url(href):
            continue
        absolute = normalize(href, base_url)
        if not absolute:
            continue
        key = dedup_key(absolute)
        if key in seen:
            continue
        seen.add(key)
        links.append(absolute)

    return links


class ListingPaginator:
    """
    State machine for one listing query.

    Seeking(n) -> Seeking(n+1) | Exhausted | QuotaReached | PageCap | Failed.
    A page whose links are all already known still counts as a page with
    links. An empty first page gets one probe of page 2 before the query is
    considered exhausted.
    """

    def __init__(
        self,
        start_url: str,
        state: CrawlState,
        max_pages: int,
        probe_empty_first_page: bool = True
    ):
        self.state = state
        self.max_pages = max_pages
        self.probe_empty_first_page = probe_empty_first_page
        self.status = SEEKING
        self._request = ListingPageRequest(start_url, 1)
        self.pages_fetched = 0
        self.links_found = 0
        self.links_added = 0

    @property
    def done(self) -> bool:
        return self.status in TERMINAL_STATES

    def next_request(self) -> Optional[ListingPageRequest]:
        """Request for the current page cursor, None once terminal."""
        if self.done:
            return None
        if self.state.discovery_full():
            self._transition(QUOTA_REACHED)
            return None
        return self._request

    async def on_page(self, request: ListingPageRequest, html: str) -> int:
        """
        Consume a fetched listing page and advance the state machine.

        Returns:
            Number of new detail URLs added to the shared set
        """
        self.pages_fetched += 1
        links = extract_detail_links(html, request.url)
        self.links_found += len(links)

        added = 0
        for link in links:
            if self.state.discovery_full():
                break
            if await self.state.try_add_detail_url(link):
                added += 1
        self.links_added += added

        logger.info(f"[paginator] Page {request.page_number}: {len(links)} links, {added} new ({request.url})")

        if not links:
            if request.page_number > 1 or not self.probe_empty_first_page:
                self._transition(EXHAUSTED)
                return added
            logger.info("[paginator] First page returned no links, probing page 2")
        elif self.state.discovery_full():
            self._transition(QUOTA_REACHED)
            return added

        if request.page_number >= self.max_pages:
            self._transition(PAGE_CAP)
            return added

        self._request = ListingPageRequest(build_next_page_url(request.url), request.page_number + 1)
        return added

    def on_failure(self, request: ListingPageRequest, error: Exception):
        """A listing page that failed terminally ends this query."""
        logger.warning(f"[paginator] LIST page failed {request.url}: {error}")
        self._transition(FAILED)

    def _transition(self, status: str):
        if self.status != status:
            logger.debug(f"[paginator] {self.status} -> {status}")
        self.status = status
