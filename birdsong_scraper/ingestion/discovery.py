"""
Link discovery for listing pages.

Extracts download links and their species metadata from one page of the
catalog, and works out the URL of the following page.

A download link looks like:

    <a href="/652207/download">
        <img class="icon" title="Download file 'XC652207 - Arctic Tern - Sterna paradisaea.mp3'">
    </a>

which yields id "652207", common name "Arctic Tern" and scientific name
"Sterna paradisaea".
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from birdsong_scraper.ledger.models import DiscoveredEntry, UNKNOWN


logger = logging.getLogger("discovery")

DOWNLOAD_LINK_SELECTOR = "a[href$='/download']"
ICON_SELECTOR = "img.icon"
NEXT_PAGE_SELECTOR = "a.pagination-next"
TITLE_SEPARATOR = " - "

_MEDIA_EXTENSION = re.compile(r"\.(mp3|wav|ogg|flac|m4a|aac|opus)$", re.IGNORECASE)


@dataclass
class PageResult:
    """Entries found on a page and the next page URL, if any."""

    entries: list[DiscoveredEntry] = field(default_factory=list)
    next_url: Optional[str] = None


def parse_title(title: Optional[str]) -> tuple[str, str]:
    """
    Parse "<tag> - <common name> - <scientific name>.<ext>".

    Args:
        title: Title attribute of the download icon

    Returns:
        (common_name, scientific_name), "unknown" for any missing segment
    """
    common_name = UNKNOWN
    scientific_name = UNKNOWN
    if not title or TITLE_SEPARATOR not in title:
        return common_name, scientific_name

    parts = title.split(TITLE_SEPARATOR)
    if len(parts) >= 2 and parts[1].strip():
        common_name = parts[1].strip()
    if len(parts) >= 3:
        # Titles are often quoted: "Download file '... - Sterna paradisaea.mp3'"
        sci_name = parts[2].strip().rstrip("'\"").strip()
        sci_name = _MEDIA_EXTENSION.sub("", sci_name).strip()
        if sci_name:
            scientific_name = sci_name
    return common_name, scientific_name


def extract_entry_id(url: str) -> str:
    """Return the second-to-last path segment of url, or "unknown"."""
    segments = [s for s in urlparse(url).path.split("/") if s]
    if len(segments) < 2:
        return UNKNOWN
    return segments[-2]


def increment_page_number(url: str, page_param: str = "pg") -> Optional[str]:
    """
    Build the next page URL by incrementing the numeric page parameter.

    "...?pg=3&sort=date" -> "...?pg=4&sort=date". The rest of the query
    string is kept as is.

    Returns:
        The next URL, or None if url has no numeric page parameter
    """
    pattern = re.compile(rf"([?&]{re.escape(page_param)}=)(\d+)(?=&|#|$)")
    match = pattern.search(url)
    if not match:
        return None
    next_page = int(match.group(2)) + 1
    return f"{url[: match.start(2)]}{next_page}{url[match.end(2):]}"


def find_next_page_url(
    soup: BeautifulSoup, current_url: str, page_param: str = "pg"
) -> Optional[str]:
    """
    Determine the next page, in priority order:

    1. the href of an explicit "next page" link, resolved against current_url
    2. the numeric page parameter of current_url, incremented
    3. None

    A next link that is present but has no usable href ends the crawl.
    """
    next_link = soup.select_one(NEXT_PAGE_SELECTOR)
    if next_link is not None:
        href = next_link.get("href")
        if not href:
            logger.info("Next page link found but no href attribute, stopping")
            return None
        try:
            return urljoin(current_url, href)
        except ValueError as e:
            logger.warning(f"Could not resolve next page link '{href}': {e}")
            return None
    return increment_page_number(current_url, page_param)


def extract_entries(soup: BeautifulSoup, current_url: str) -> list[DiscoveredEntry]:
    """Collect every download link on the page with its parsed title."""
    entries = []
    for link in soup.select(DOWNLOAD_LINK_SELECTOR):
        href = link.get("href")
        if not href:
            continue
        try:
            download_url = urljoin(current_url, href)
        except ValueError as e:
            logger.warning(f"Failed to resolve link '{href}' on {current_url}: {e}")
            continue

        icon = link.select_one(ICON_SELECTOR)
        title = icon.get("title") if icon is not None else None
        common_name, scientific_name = parse_title(title)

        entries.append(
            DiscoveredEntry(
                url=download_url,
                entry_id=extract_entry_id(download_url),
                common_name=common_name,
                scientific_name=scientific_name,
            )
        )
    return entries


def discover_page(html: str, current_url: str, page_param: str = "pg") -> PageResult:
    """
    Parse one listing page.

    Args:
        html: Page content
        current_url: URL the page was fetched from, used to resolve links
        page_param: Query parameter holding the page number

    Returns:
        PageResult with the page's entries in document order and the next URL
    """
    soup = BeautifulSoup(html, "html.parser")
    entries = extract_entries(soup, current_url)
    next_url = find_next_page_url(soup, current_url, page_param)
    logger.debug(f"{current_url}: {len(entries)} entries, next={next_url}")
    return PageResult(entries=entries, next_url=next_url)
