"""
HelloWork job scraper.

Tiered crawl-and-extract pipeline: listing discovery, cheap HTTP detail
extraction, browser-rendered fallback and batched output.
"""

__version__ = "1.0.0"
