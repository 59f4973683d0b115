"""
Job record layout and text helpers shared by the extraction tiers.
"""
import re
from typing import Any, Dict, Optional

from bs4 import BeautifulSoup

# Stable output field set; every emitted detail record carries all of them
JOB_RECORD_FIELDS = (
    # Core fields
    'title', 'company', 'location', 'salary', 'contract_type', 'date_posted',
    # Extended location
    'city', 'postal_code', 'region', 'country',
    # Extended salary
    'salary_min', 'salary_max', 'salary_currency', 'salary_period',
    # Company
    'company_url', 'company_logo',
    # Description
    'description_html', 'description_text',
    # Requirements
    'skills', 'qualifications', 'education', 'experience',
    # Additional details
    'benefits', 'industry', 'work_setting', 'employment_type_raw', 'valid_through', 'job_id',
    # Metadata
    'url', '_source',
)

# Provenance tags
SOURCE_JSONLD = 'json-ld'
SOURCE_HTML = 'html'
SOURCE_PLAYWRIGHT_JSONLD = 'playwright-jsonld'
SOURCE_PLAYWRIGHT_HTML = 'playwright-html'
SOURCE_LIST_ONLY = 'list-only'

_WHITESPACE_RE = re.compile(r'\s+')


def clean_text(value: Any) -> Optional[str]:
    """Collapse whitespace; empty results become None."""
    if value is None:
        return None
    text = _WHITESPACE_RE.sub(' ', str(value)).strip()
    return text or None


def join_list(value: Any) -> Optional[str]:
    """Lists become a comma-joined string, scalars pass through."""
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return clean_text(', '.join(str(v) for v in value if v is not None and str(v).strip()))
    return clean_text(value)


def html_to_text(markup: Optional[str]) -> Optional[str]:
    """Strip markup to plain text, keeping word boundaries between elements."""
    if not markup:
        return None
    return clean_text(BeautifulSoup(markup, 'lxml').get_text(' '))


def empty_record(url: str, source: Optional[str] = None) -> Dict[str, Any]:
    record = {name: None for name in JOB_RECORD_FIELDS}
    record['url'] = url
    record['_source'] = source
    return record


def url_stub(url: str) -> Dict[str, Any]:
    """Minimal record emitted when details are not collected."""
    return {'url': url, '_source': SOURCE_LIST_ONLY}
