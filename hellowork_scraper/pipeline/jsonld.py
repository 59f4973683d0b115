"""
JSON-LD extractor.

Extracts a job record from structured JSON-LD data (Schema.org JobPosting).
The first JobPosting found in document order wins; later blocks are ignored.
"""

import json
import logging
from typing import Any, Dict, List, Optional
from bs4 import BeautifulSoup

from .records import SOURCE_JSONLD, clean_text, empty_record, html_to_text, join_list

logger = logging.getLogger(__name__)

DEFAULT_CURRENCY = '€'

# Schema.org employmentType -> French contract label
EMPLOYMENT_TYPE_LABELS = {
    'FULL_TIME': 'CDI',
    'PART_TIME': 'Temps partiel',
    'CONTRACTOR': 'Freelance',
    'TEMPORARY': 'CDD',
    'INTERN': 'Stage',
    'APPRENTICESHIP': 'Alternance',
}


def _first(value: Any) -> Any:
    if isinstance(value, list):
        return value[0] if value else None
    return value


def _as_list(value: Any) -> List:
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


class JSONLDExtractor:
    """Extracts job data from JSON-LD structured data."""

    def extract(self, soup: BeautifulSoup, url: str) -> Optional[Dict[str, Any]]:
        """
        Extract a job record from the first JobPosting block.

        Returns:
            Record dict (all JOB_RECORD_FIELDS present), or None when the page
            has no parseable JobPosting block
        """
        scripts = soup.find_all('script', type='application/ld+json')

        for index, script in enumerate(scripts):
            content = script.string or script.get_text()
            if not content or not content.strip():
                continue
            try:
                data = json.loads(content)
                for item in self._flatten_jsonld(data):
                    if self._is_job_posting(item):
                        return self._extract_job_posting(item, url)
            except (json.JSONDecodeError, TypeError, AttributeError, ValueError) as e:
                # Malformed block: move on to the next one
                logger.debug(f"Failed to parse JSON-LD block {index} on {url}: {e}")
                continue

        return None

    def _flatten_jsonld(self, data: Any) -> List[Dict]:
        """Flatten JSON-LD structure to list of items."""
        items = []

        if isinstance(data, dict):
            if self._is_job_posting(data):
                items.append(data)
            elif '@graph' in data and isinstance(data['@graph'], list):
                items.extend([item for item in data['@graph'] if isinstance(item, dict)])
        elif isinstance(data, list):
            for item in data:
                if isinstance(item, dict):
                    items.extend(self._flatten_jsonld(item) or [item])

        return items

    def _is_job_posting(self, item: Dict) -> bool:
        """Check if JSON-LD item is a JobPosting."""
        item_type = item.get('@type', '')
        if isinstance(item_type, str):
            return item_type == 'JobPosting'
        elif isinstance(item_type, list):
            return 'JobPosting' in item_type
        return False

    def _extract_location(self, job_data: Dict) -> Dict[str, Optional[str]]:
        loc = _first(job_data.get('jobLocation'))
        address = loc.get('address') if isinstance(loc, dict) else None
        if not isinstance(address, dict):
            address = {}

        city = clean_text(address.get('addressLocality'))
        postal_code = clean_text(address.get('postalCode'))
        region = clean_text(address.get('addressRegion'))
        country = address.get('addressCountry')
        if isinstance(country, dict):
            country = country.get('name')
        country = clean_text(country)

        parts = [p for p in (city, postal_code, region, country) if p]
        return {
            'location': ', '.join(parts) if parts else None,
            'city': city,
            'postal_code': postal_code,
            'region': region,
            'country': country,
        }

    def _extract_salary(self, job_data: Dict) -> Dict[str, Any]:
        fields = {
            'salary': None,
            'salary_min': None,
            'salary_max': None,
            'salary_currency': None,
            'salary_period': None,
        }
        base_salary = job_data.get('baseSalary')
        if base_salary is None:
            return fields

        if not isinstance(base_salary, dict):
            # Bare amount
            fields['salary_currency'] = DEFAULT_CURRENCY
            fields['salary'] = clean_text(f"{base_salary} {DEFAULT_CURRENCY}")
            return fields

        currency = base_salary.get('currency') or DEFAULT_CURRENCY
        fields['salary_currency'] = currency
        value = base_salary.get('value')
        salary = None

        if isinstance(value, dict):
            salary_min = value.get('minValue')
            salary_max = value.get('maxValue')
            if salary_min is None and salary_max is None and value.get('value') is not None:
                salary_min = value.get('value')
            fields['salary_min'] = salary_min
            fields['salary_max'] = salary_max
            fields['salary_period'] = clean_text(value.get('unitText') or base_salary.get('unitText'))
            if salary_min is not None and salary_max is not None:
                salary = f"{salary_min} - {salary_max} {currency}"
            elif salary_min is not None or salary_max is not None:
                salary = f"{salary_min if salary_min is not None else salary_max} {currency}"
        elif value is not None:
            fields['salary_period'] = clean_text(base_salary.get('unitText'))
            salary = f"{value} {currency}"

        if fields['salary_period']:
            # A period without an amount carries no salary string
            salary = f"{salary} / {fields['salary_period']}" if salary else None

        fields['salary'] = clean_text(salary)
        return fields

    def _extract_company(self, job_data: Dict) -> Dict[str, Optional[str]]:
        org = job_data.get('hiringOrganization')
        company = company_url = company_logo = None

        if isinstance(org, str):
            company = org
        elif isinstance(org, dict):
            company = org.get('name') or org.get('legalName')
            company_url = org.get('sameAs') or org.get('url')
            logo = org.get('logo')
            if isinstance(logo, dict):
                company_logo = logo.get('url')
            elif isinstance(logo, str):
                company_logo = logo

        return {
            'company': clean_text(company),
            'company_url': clean_text(_first(company_url)),
            'company_logo': clean_text(company_logo),
        }

    def _extract_employment_type(self, job_data: Dict) -> Dict[str, Optional[str]]:
        types = [str(t).strip() for t in _as_list(job_data.get('employmentType')) if t]
        if not types:
            return {'contract_type': None, 'employment_type_raw': None}
        return {
            'contract_type': clean_text(', '.join(EMPLOYMENT_TYPE_LABELS.get(t.upper(), t) for t in types)),
            'employment_type_raw': ', '.join(types),
        }

    def _extract_requirements(self, job_data: Dict) -> Dict[str, Optional[str]]:
        education = job_data.get('educationRequirements')
        if isinstance(education, dict):
            education = education.get('credentialCategory')
        elif isinstance(education, list):
            education = join_list([e.get('credentialCategory') if isinstance(e, dict) else e for e in education])

        experience = job_data.get('experienceRequirements')
        if isinstance(experience, dict):
            months = experience.get('monthsOfExperience')
            experience = f"{months} months" if months else None

        return {
            'skills': join_list(job_data.get('skills')),
            'qualifications': join_list(job_data.get('qualifications')),
            'education': clean_text(education),
            'experience': clean_text(experience),
        }

    def _extract_work_setting(self, job_data: Dict) -> Optional[str]:
        work_setting = join_list(job_data.get('jobLocationType'))
        if job_data.get('applicantLocationRequirements'):
            work_setting = f"{work_setting} (remote eligible)" if work_setting else 'Remote eligible'
        return work_setting

    def _extract_job_posting(self, job_data: Dict, url: str) -> Dict[str, Any]:
        """Map one JobPosting block onto the record layout."""
        record = empty_record(url, SOURCE_JSONLD)

        record['title'] = clean_text(job_data.get('title'))
        record['date_posted'] = job_data.get('datePosted') or None
        record['valid_through'] = job_data.get('validThrough') or None

        record.update(self._extract_location(job_data))
        record.update(self._extract_salary(job_data))
        record.update(self._extract_company(job_data))
        record.update(self._extract_employment_type(job_data))
        record.update(self._extract_requirements(job_data))

        # Description: keep markup, derive plain text
        description = job_data.get('description')
        if description:
            record['description_html'] = str(description)
            record['description_text'] = html_to_text(str(description))

        record['benefits'] = join_list(job_data.get('jobBenefits'))
        record['industry'] = join_list(job_data.get('industry'))
        record['work_setting'] = self._extract_work_setting(job_data)

        identifier = job_data.get('identifier')
        if isinstance(identifier, dict):
            identifier = identifier.get('value')
        record['job_id'] = clean_text(identifier)

        return record
