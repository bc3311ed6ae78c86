from pathlib import Path
from unittest.mock import MagicMock

import pytest
import requests

from birdsong_scraper.config import ScraperConfig
from birdsong_scraper.ledger import DiscoveredEntry


BASE_URL = "https://xeno-canto.org"


def listing_page(items, next_href=None):
    """
    Build a listing page.

    items: (href, title) pairs; a title of None renders the link without icon.
    """
    links = []
    for href, title in items:
        icon = f'<img class="icon" title="{title}" src="/img/dl.png">' if title else ""
        links.append(f'<tr><td><a href="{href}">{icon}</a></td></tr>')
    pagination = ""
    if next_href is not None:
        pagination = f'<nav><a class="pagination-next" href="{next_href}">Next</a></nav>'
    return f"<html><body><table>{''.join(links)}</table>{pagination}</body></html>"


def title_for(xc_id, common, scientific):
    return f"Download file 'XC{xc_id} - {common} - {scientific}.mp3'"


def make_response(status=200, text="", payload=b"ID3 fake mp3 payload"):
    response = MagicMock()
    response.status_code = status
    response.text = text
    response.iter_content.return_value = [payload]
    response.__enter__.return_value = response
    if status >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status} Error")
    else:
        response.raise_for_status.return_value = None
    return response


class FakeConverter:
    """Writes a small WAV stub; fails the first `failures` calls."""

    def __init__(self, failures=0):
        self.failures = failures
        self.calls = []

    def convert(self, input_path, output_path):
        self.calls.append((Path(input_path), Path(output_path)))
        if len(self.calls) <= self.failures:
            return False
        Path(output_path).write_bytes(b"RIFF....WAVEfmt ")
        return True


class SleepRecorder:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.fixture
def output_dir(tmp_path):
    path = tmp_path / "downloads"
    path.mkdir()
    return path


@pytest.fixture
def sleep():
    return SleepRecorder()


@pytest.fixture
def fake_converter():
    return FakeConverter()


@pytest.fixture
def config():
    return ScraperConfig(
        workers=2,
        request_interval=0.0,
        page_delay=0.5,
        max_retries=3,
        backoff_base=1.0,
        max_pages=None,
        log_file="logs/test.log",
    )


@pytest.fixture
def discovered():
    return [
        DiscoveredEntry(f"{BASE_URL}/652207/download", "652207", "Arctic Tern", "Sterna paradisaea"),
        DiscoveredEntry(f"{BASE_URL}/652208/download", "652208", "Arctic Tern", "Sterna paradisaea"),
        DiscoveredEntry(f"{BASE_URL}/700001/download", "700001", "European Robin", "Erithacus rubecula"),
    ]
