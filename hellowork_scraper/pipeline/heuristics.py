"""
Heuristic extractor.

Uses the DOM layout of a detail page and locale regex scans over the page
text to build a job record when no structured data is available.
"""

import re
import logging
from typing import Any, Dict, Optional
from bs4 import BeautifulSoup

from .locale_patterns import LocaleMatcher, get_matcher
from .records import SOURCE_HTML, clean_text, empty_record

logger = logging.getLogger(__name__)

# Tried in order, first non-empty match wins
LOCATION_SELECTORS = [
    '[data-cy="job-location"]',
    '[class*="location"]',
    '[itemprop="jobLocation"]',
    'a[href*="/locations/"]',
]

DESCRIPTION_SELECTOR = 'div[data-truncate-text-target="content"]'
FALLBACK_CONTENT_SELECTOR = 'article'
MAX_FALLBACK_DESCRIPTION_CHARS = 2000

# "Développeur Python [Acme]" -> title, company
TITLE_RE = re.compile(r'^(.+?)(?:\s*\[|$)')
BRACKET_COMPANY_RE = re.compile(r'\[(.+?)\]')


class HeuristicExtractor:
    """Extracts job fields using DOM heuristics and pattern matching."""

    def __init__(self, matcher: Optional[LocaleMatcher] = None):
        self.matcher = matcher or get_matcher('fr')

    def extract(self, soup: BeautifulSoup, url: str) -> Dict[str, Any]:
        """Extract a record; fields that cannot be found stay None."""
        record = empty_record(url, SOURCE_HTML)

        title, company = self._extract_title_company(soup)
        record['title'] = title
        record['company'] = company
        record['location'] = self._extract_location(soup)

        description_html, description_text = self._extract_description(soup)
        record['description_html'] = description_html
        record['description_text'] = description_text

        body = soup.body or soup
        text = body.get_text(' ')
        record['date_posted'] = self.matcher.match_date(text)
        record['salary'] = self.matcher.match_salary(text)
        record['contract_type'] = self.matcher.match_contract_type(text)

        return record

    def _extract_title_company(self, soup: BeautifulSoup):
        h1 = soup.find('h1')
        if not h1:
            return None, None

        full_text = clean_text(h1.get_text(' ')) or ''
        company = None

        anchor = h1.find('a')
        if anchor:
            company = clean_text(anchor.get_text(' '))
            # Title from the heading text outside the company link
            remainder = clean_text(' '.join(
                text for text in h1.find_all(string=True)
                if not any(parent is anchor for parent in text.parents)
            ))
            if remainder:
                full_text = remainder
        else:
            match = BRACKET_COMPANY_RE.search(full_text)
            if match:
                company = clean_text(match.group(1))

        match = TITLE_RE.match(full_text)
        title = clean_text(match.group(1)) if match else clean_text(full_text)
        return title, company

    def _extract_location(self, soup: BeautifulSoup) -> Optional[str]:
        for selector in LOCATION_SELECTORS:
            element = soup.select_one(selector)
            if element is None:
                continue
            location = clean_text(element.get_text(' '))
            if location:
                return location
        return None

    def _extract_description(self, soup: BeautifulSoup):
        container = soup.select_one(DESCRIPTION_SELECTOR)
        if container is not None:
            return container.decode_contents(), clean_text(container.get_text(' '))

        article = soup.select_one(FALLBACK_CONTENT_SELECTOR)
        if article is not None:
            text = clean_text(article.get_text(' '))
            if text:
                return None, text[:MAX_FALLBACK_DESCRIPTION_CHARS]

        return None, None
