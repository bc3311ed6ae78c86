"""
Ingestion package for the birdsong scraper.

The ingestion step walks the paginated catalog and returns raw entries:

1. Link discovery (discovery.py):
   - Extracts download links and species names from one listing page
   - Resolves the next page (explicit link, then numeric page fallback)

2. Crawl (crawl.py):
   - Sequences page fetches with a delay between pages
   - Stops at the first empty page

Modules:
    discovery: Pure page parsing
    crawl: Page sequencing
    http: Browser-like requests session and page fetch
"""

from .discovery import (
    PageResult,
    discover_page,
    extract_entry_id,
    find_next_page_url,
    increment_page_number,
    parse_title,
)
from .crawl import crawl_catalog
from .http import create_session, fetch_page

__all__ = [
    "PageResult",
    "discover_page",
    "extract_entry_id",
    "find_next_page_url",
    "increment_page_number",
    "parse_title",
    "crawl_catalog",
    "create_session",
    "fetch_page",
]
