"""
Locale-specific field recovery from free page text.

Pure, table-driven matchers for the posting date, salary and contract type.
One LocaleMatcher per locale; the heuristic tier picks it by name.
"""
import re
import logging
from typing import Dict, Optional, Pattern, Sequence

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)


class LocaleMatcher:
    """Regex table for one locale."""

    def __init__(
        self,
        name: str,
        date_pattern: str,
        salary_pattern: str,
        contract_tokens: Sequence[str],
        dayfirst: bool = True
    ):
        self.name = name
        self.dayfirst = dayfirst
        self.contract_tokens = tuple(contract_tokens)
        self._date_re: Pattern = re.compile(date_pattern, re.IGNORECASE)
        self._salary_re: Pattern = re.compile(salary_pattern, re.IGNORECASE)
        alternatives = '|'.join(re.escape(token) for token in self.contract_tokens)
        self._contract_re: Pattern = re.compile(rf'\b({alternatives})\b', re.IGNORECASE)

    def match_date(self, text: str) -> Optional[str]:
        """First marked date that is a real calendar date, as written on the page."""
        if not text:
            return None
        for match in self._date_re.finditer(text):
            raw = match.group(1)
            try:
                date_parser.parse(raw, dayfirst=self.dayfirst)
            except (ValueError, OverflowError):
                logger.debug(f"[locale:{self.name}] Skipping invalid date {raw!r}")
                continue
            return raw
        return None

    def match_salary(self, text: str) -> Optional[str]:
        if not text:
            return None
        match = self._salary_re.search(text)
        if not match:
            return None
        return re.sub(r'\s+', ' ', match.group(1)).strip()

    def match_contract_type(self, text: str) -> Optional[str]:
        """Contract token as spelled in the vocabulary table."""
        if not text:
            return None
        match = self._contract_re.search(text)
        if not match:
            return None
        found = match.group(1).lower()
        for token in self.contract_tokens:
            if token.lower() == found:
                return token
        return match.group(1)


FR_MATCHER = LocaleMatcher(
    name='fr',
    # "Publiée le 12/03/2024" / "Publié le 12/03/2024"
    date_pattern=r'Publi[ée]e?\s+le\s+(\d{2}/\d{2}/\d{4})',
    # "2 500 € / mois", "35000€/an", "1 800,50 € / mois"
    # Amount is thousands-grouped or plain; a preceding year is not part of it
    salary_pattern=r'(?<!\d)((?:\d{1,3}(?:[ \u00a0\u202f]\d{3})+|\d+)(?:,\d+)?\s?€\s?/\s?(?:mois|an))',
    contract_tokens=('CDI', 'CDD', 'Stage', 'Intérim', 'Temps plein', 'Temps partiel', 'Alternance'),
)

LOCALES: Dict[str, LocaleMatcher] = {
    'fr': FR_MATCHER,
}


def get_matcher(locale: str = 'fr') -> LocaleMatcher:
    """Matcher for a locale name ('fr', 'fr-FR' and 'fr_FR' are equivalent)."""
    key = (locale or 'fr').lower().replace('_', '-').split('-')[0]
    try:
        return LOCALES[key]
    except KeyError:
        raise ValueError(f"No locale patterns registered for {locale!r}")
