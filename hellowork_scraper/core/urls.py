"""
URL normalization for the HelloWork target domain.

- Resolve relative links against the site origin
- Reject links outside the target domain
- Compute dedup keys (tracking parameters stripped, literal URL preserved)
- Recognize job detail links and build listing/pagination URLs
"""
import re
import logging
from typing import NamedTuple, Optional
from urllib.parse import urljoin, urlparse, urlunparse, parse_qsl, urlencode

logger = logging.getLogger(__name__)

BASE_URL = "https://www.hellowork.com"
TARGET_DOMAIN = "hellowork.com"
SEARCH_PATH = "/fr-fr/emploi/recherche.html"

# Listing query parameters
KEYWORD_PARAM = "k"
LOCATION_PARAM = "l"
CATEGORY_PARAM = "k_autocomplete"
PAGE_PARAM = "p"

# Detail pages carry a numeric posting identifier: /emplois/12345678.html
DETAIL_PATH_RE = re.compile(r'/emplois/\d+(?:-[a-z0-9-]+)?(?:\.html)?', re.IGNORECASE)

# Tracking parameters to strip from dedup keys
TRACKING_PARAMS = {
    'utm_source', 'utm_medium', 'utm_campaign', 'utm_term', 'utm_content',
    'fbclid', 'gclid', '_ga', 'ref', 'source', 'from', 'xtor',
}


class SearchQuery(NamedTuple):
    """Listing search input. Empty values are left out of the start URL."""
    keyword: str = ""
    location: str = ""
    category: str = ""

    def to_start_url(self) -> str:
        return build_start_url(self.keyword, self.location, self.category)


def build_start_url(keyword: str = "", location: str = "", category: str = "") -> str:
    """Build the first listing page URL for a search."""
    params = []
    for name, value in ((KEYWORD_PARAM, keyword), (LOCATION_PARAM, location), (CATEGORY_PARAM, category)):
        value = str(value or "").strip()
        if value:
            params.append((name, value))

    query = urlencode(params)
    return urlunparse(('https', 'www.' + TARGET_DOMAIN, SEARCH_PATH, '', query, ''))


def is_on_domain(url: str) -> bool:
    """Check that an absolute URL belongs to the target domain."""
    try:
        host = (urlparse(url).hostname or "").lower()
    except ValueError:
        return False
    return host == TARGET_DOMAIN or host.endswith('.' + TARGET_DOMAIN)


def normalize(href: Optional[str], base_url: str = BASE_URL) -> Optional[str]:
    """
    Resolve an href to an absolute URL on the target domain.

    Args:
        href: Raw link (relative or absolute)
        base_url: URL the link was found on

    Returns:
        Absolute URL without fragment, or None when the link is malformed,
        not http(s), or outside the target domain.
    """
    if not href or not isinstance(href, str):
        return None

    href = href.strip()
    if not href or href.lower().startswith(('mailto:', 'javascript:', 'tel:', 'data:')):
        return None

    try:
        absolute = urljoin(base_url or BASE_URL, href)
        parsed = urlparse(absolute)
        # Accessing .port validates the netloc
        parsed.port
    except ValueError as e:
        logger.debug(f"[urls] Malformed href {href!r}: {e}")
        return None

    if parsed.scheme not in ('http', 'https') or not parsed.netloc:
        return None
    if not is_on_domain(absolute):
        return None

    return urlunparse((parsed.scheme, parsed.netloc, parsed.path, parsed.params, parsed.query, ''))


def dedup_key(url: str) -> str:
    """
    Canonical key for deduplication.

    Lowercases scheme and host, drops a leading "www.", removes tracking
    parameters and the fragment, sorts remaining parameters and trims a
    trailing slash. The literal URL is still the one that gets fetched.
    """
    try:
        parsed = urlparse(url)
    except ValueError:
        return url

    netloc = parsed.netloc.lower()
    if netloc.startswith('www.'):
        netloc = netloc[4:]

    params = [
        (k, v) for k, v in parse_qsl(parsed.query, keep_blank_values=True)
        if k.lower() not in TRACKING_PARAMS
    ]
    query = urlencode(sorted(params))
    path = parsed.path.rstrip('/') or '/'

    return urlunparse((parsed.scheme.lower() or 'https', netloc, path, '', query, ''))


def is_detail_url(href: Optional[str]) -> bool:
    """Structural check: a job posting link carries a numeric identifier segment."""
    if not href:
        return False
    return bool(DETAIL_PATH_RE.search(href))


def page_number(url: str) -> int:
    """Current page cursor of a listing URL (1 when absent or invalid)."""
    for key, value in parse_qsl(urlparse(url).query):
        if key == PAGE_PARAM:
            try:
                return max(1, int(value))
            except ValueError:
                return 1
    return 1


def build_next_page_url(current_url: str) -> str:
    """Advance the page cursor of a listing URL by one."""
    parsed = urlparse(current_url)
    next_page = page_number(current_url) + 1

    params = [(k, v) for k, v in parse_qsl(parsed.query, keep_blank_values=True) if k != PAGE_PARAM]
    params.append((PAGE_PARAM, str(next_page)))

    return urlunparse((parsed.scheme, parsed.netloc, parsed.path, parsed.params, urlencode(params), ''))
