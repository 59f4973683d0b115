"""
Command line entry point.

    hellowork-scraper --keyword developer --location Paris --results-wanted 20
    hellowork-scraper --input input.json --output storage/dataset.jsonl
"""
import sys
import json
import asyncio
import logging
import argparse
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from pydantic import ValidationError

from .config import CrawlInput, CrawlSettings
from .core.errors import CrawlConfigError
from .core.output import JsonlDatasetSink
from .orchestrator import CrawlOrchestrator

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CONFIG_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Scrape job postings from HelloWork listings')
    parser.add_argument('--input', type=str, help='JSON input file (actor input schema)')
    parser.add_argument('--keyword', type=str, help='Search keyword')
    parser.add_argument('--location', type=str, help='Search location')
    parser.add_argument('--category', type=str, help='Search category')
    parser.add_argument('--results-wanted', type=str, help='Maximum number of records (non-numeric = unlimited)')
    parser.add_argument('--max-pages', type=str, help='Maximum listing pages per query')
    parser.add_argument('--no-details', action='store_true', help='Emit URL-only records, skip detail pages')
    parser.add_argument('--start-url', action='append', dest='start_urls', help='Listing URL (repeatable)')
    parser.add_argument('--output', type=str, help='JSONL dataset path')
    parser.add_argument('--verbose', action='store_true', help='Debug logging')
    return parser


def build_input(args: argparse.Namespace) -> Dict[str, Any]:
    """Merge the JSON input file with CLI flags; flags win."""
    raw: Dict[str, Any] = {}
    if args.input:
        try:
            with open(args.input, 'r', encoding='utf-8') as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise CrawlConfigError(f"Cannot read input file {args.input}: {e}") from e
        if not isinstance(raw, dict):
            raise CrawlConfigError(f"Input file must contain a JSON object: {args.input}")

    overrides = {
        'keyword': args.keyword,
        'location': args.location,
        'category': args.category,
        'results_wanted': args.results_wanted,
        'max_pages': args.max_pages,
        'startUrls': args.start_urls,
    }
    for key, value in overrides.items():
        if value is not None:
            raw[key] = value
    if args.no_details:
        raw['collectDetails'] = False
    return raw


async def run(raw_input: Dict[str, Any], output: Optional[str] = None) -> int:
    try:
        crawl_input = CrawlInput.model_validate(raw_input)
    except ValidationError as e:
        raise CrawlConfigError(f"Invalid input: {e}") from e

    settings = CrawlSettings.from_input(crawl_input)
    sink = JsonlDatasetSink(output)
    try:
        report = await CrawlOrchestrator(settings, sink).run()
    finally:
        await sink.close()
    return report.saved


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        saved = asyncio.run(run(build_input(args), args.output))
    except CrawlConfigError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG_ERROR

    # Zero saved is a degraded result, not a failure
    logger.info(f"Done: {saved} records")
    return EXIT_OK


if __name__ == '__main__':
    sys.exit(main())
