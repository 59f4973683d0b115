"""
Extraction cascade.

Pure and synchronous, no I/O:
1. Structured data (JSON-LD JobPosting)
2. DOM heuristics, only when structured data gave no title; it fills only
   the fields structured data left empty
The rendered tier runs the same cascade over browser-rendered content and
tags the result accordingly.
"""

import logging
from typing import Any, Dict, Optional

from bs4 import BeautifulSoup

from .heuristics import HeuristicExtractor
from .jsonld import JSONLDExtractor
from .locale_patterns import LocaleMatcher
from .records import (
    SOURCE_HTML, SOURCE_JSONLD, SOURCE_PLAYWRIGHT_HTML, SOURCE_PLAYWRIGHT_JSONLD,
)

logger = logging.getLogger(__name__)

TIER_STRUCTURED = 'structured'
TIER_HEURISTIC = 'heuristic'
TIER_RENDERED = 'rendered'

# (rendered?, method) -> provenance tag
SOURCE_TAGS = {
    (False, TIER_STRUCTURED): SOURCE_JSONLD,
    (False, TIER_HEURISTIC): SOURCE_HTML,
    (True, TIER_STRUCTURED): SOURCE_PLAYWRIGHT_JSONLD,
    (True, TIER_HEURISTIC): SOURCE_PLAYWRIGHT_HTML,
}


class ExtractionResult:
    """Outcome of one cascade run for a detail URL."""

    def __init__(self, url: str, fields: Optional[Dict[str, Any]], tier: str, method: Optional[str] = None):
        self.url = url
        self.fields = fields
        self.tier = tier
        # Sub-tier that supplied the title (structured/heuristic)
        self.method = method

    @property
    def title(self) -> Optional[str]:
        if not self.fields:
            return None
        return self.fields.get('title')

    @property
    def success(self) -> bool:
        return bool(self.title)

    def __repr__(self):
        return f"ExtractionResult(tier={self.tier}, method={self.method}, success={self.success}, url={self.url})"


def merge_missing(primary: Dict[str, Any], secondary: Dict[str, Any]) -> Dict[str, Any]:
    """Fill fields that primary left None from secondary. Populated fields are never overwritten."""
    merged = dict(primary)
    for name, value in secondary.items():
        if merged.get(name) is None and value is not None:
            merged[name] = value
    return merged


class ExtractionCascade:
    """Structured -> heuristic extraction over one page's content."""

    def __init__(self, matcher: Optional[LocaleMatcher] = None):
        self.jsonld_extractor = JSONLDExtractor()
        self.heuristic_extractor = HeuristicExtractor(matcher)

    def extract(self, html: str, url: str, rendered: bool = False) -> ExtractionResult:
        """
        Run the cascade over a page.

        Args:
            html: Page content (raw HTTP body or rendered DOM)
            url: Detail URL the content belongs to
            rendered: True when the content came from the browser tier

        Returns:
            ExtractionResult; success is True only when a title was found
        """
        tier = TIER_RENDERED if rendered else None

        if not html or not html.strip():
            return ExtractionResult(url, None, tier or TIER_STRUCTURED)

        soup = BeautifulSoup(html, 'lxml')

        # Stage 1: structured data
        structured = self.jsonld_extractor.extract(soup, url)
        if structured and structured.get('title'):
            structured['_source'] = SOURCE_TAGS[(rendered, TIER_STRUCTURED)]
            return ExtractionResult(url, structured, tier or TIER_STRUCTURED, TIER_STRUCTURED)

        # Stage 2: DOM heuristics, structured fields win where both exist
        heuristic = self.heuristic_extractor.extract(soup, url)
        fields = merge_missing(structured, heuristic) if structured else heuristic
        fields['_source'] = SOURCE_TAGS[(rendered, TIER_HEURISTIC)]

        result = ExtractionResult(url, fields, tier or TIER_HEURISTIC, TIER_HEURISTIC)
        if not result.success:
            logger.debug(f"No title found by any stage for {url}")
        return result
