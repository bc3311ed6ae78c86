"""HTTP helpers shared by the crawler and the download workers."""

import logging
from typing import Optional

import requests

from birdsong_scraper.config import DEFAULT_USER_AGENT


logger = logging.getLogger("crawl")


def create_session(user_agent: str = DEFAULT_USER_AGENT) -> requests.Session:
    """
    Create a requests session that presents itself like a browser.

    Some recording hosts reject the default python-requests agent, so every
    request carries browser headers.
    """
    session = requests.Session()
    session.headers.update(
        {
            "User-Agent": user_agent,
            "Accept": "text/html,application/xhtml+xml,audio/mpeg,audio/*,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.9",
        }
    )
    return session


def fetch_page(
    session: requests.Session, url: str, timeout: float = 30
) -> Optional[str]:
    """
    Fetch a listing page.

    Args:
        session: HTTP session
        url: Page URL
        timeout: Request timeout in seconds

    Returns:
        Page HTML, or None if the request failed or returned a non-2xx status
    """
    try:
        response = session.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as e:
        logger.error(f"Error fetching page {url}: {e}")
        return None
    return response.text
