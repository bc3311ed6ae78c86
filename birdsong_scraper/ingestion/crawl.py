"""
Catalog crawl driver.

Walks the listing pages from a start URL, accumulating every discovered
entry before they are handed to the ledger in one merge.
"""

import logging
import time
from typing import Callable, Optional

import requests

from birdsong_scraper.config import ScraperConfig
from birdsong_scraper.ledger.models import DiscoveredEntry
from birdsong_scraper.logger import log_function
from .discovery import discover_page
from .http import fetch_page


logger = logging.getLogger("crawl")


@log_function(logger_name="crawl", log_execution_time=True)
def crawl_catalog(
    start_url: str,
    session: requests.Session,
    config: Optional[ScraperConfig] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> list[DiscoveredEntry]:
    """
    Crawl listing pages until the catalog ends.

    The crawl stops on the first of:
    - a page with no download links (end of catalog, even if it links onward)
    - no next page
    - a page that cannot be fetched (entries found so far are kept)
    - a next URL already visited, or config.max_pages reached

    Args:
        start_url: First listing page
        session: HTTP session used for page requests
        config: Scraper configuration (page delay, page limit, page parameter)
        sleep: Sleep function, replaced in tests

    Returns:
        All discovered entries in page order
    """
    config = config or ScraperConfig()
    discovered: list[DiscoveredEntry] = []
    visited: set[str] = set()
    current_url: Optional[str] = start_url
    page_num = 1

    while current_url:
        visited.add(current_url)
        print(f"Processing page {page_num}: {current_url}")
        logger.info(f"Processing page {page_num}: {current_url}")

        html = fetch_page(session, current_url, timeout=config.request_timeout)
        if html is None:
            logger.error(f"Stopping crawl, page {page_num} could not be fetched")
            break

        result = discover_page(html, current_url, config.page_param)
        print(f"Found {len(result.entries)} download links")
        if not result.entries:
            logger.info(f"No download links on page {page_num}, end of catalog")
            break
        discovered.extend(result.entries)

        if result.next_url is None:
            logger.info("No next page link found")
            break
        if result.next_url in visited:
            logger.warning(f"Next page {result.next_url} already visited, stopping")
            break
        if config.max_pages is not None and page_num >= config.max_pages:
            logger.info(f"Reached page limit ({config.max_pages})")
            break

        current_url = result.next_url
        page_num += 1
        if config.page_delay > 0:
            sleep(config.page_delay)

    logger.info(f"Crawl finished after {page_num} pages: {len(discovered)} entries")
    return discovered
