"""
Configuration settings for the birdsong scraper.

This module defines the ScraperConfig dataclass. Defaults are read from the
environment (a local .env file is loaded first), and the CLI overrides
individual fields with its flags.
"""

import os
from dotenv import load_dotenv
from dataclasses import dataclass
from typing import Optional


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return int(value)


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return float(value)


@dataclass
class ScraperConfig:
    """Configuration for crawling, downloading and converting recordings"""

    load_dotenv()

    # Download pool
    workers: int = _env_int("SCRAPER_WORKERS", 5)
    request_interval: float = _env_float("SCRAPER_REQUEST_INTERVAL", 1.0)  # seconds, global
    request_timeout: float = _env_float("SCRAPER_REQUEST_TIMEOUT", 60.0)

    # Retry policy: max_retries retries after the first attempt
    max_retries: int = _env_int("SCRAPER_MAX_RETRIES", 3)
    backoff_base: float = _env_float("SCRAPER_BACKOFF_BASE", 1.0)  # 1s, 2s, 4s, ...

    # Crawl
    page_delay: float = _env_float("SCRAPER_PAGE_DELAY", 2.0)
    max_pages: Optional[int] = _env_int("SCRAPER_MAX_PAGES", None)
    page_param: str = "pg"
    user_agent: str = os.getenv("SCRAPER_USER_AGENT", DEFAULT_USER_AGENT)

    # Files
    ffmpeg_path: str = os.getenv("FFMPEG_PATH", "ffmpeg")
    ledger_filename: str = "metadata.csv"
    source_extension: str = ".mp3"
    canonical_extension: str = ".wav"
    remove_source: bool = False
    log_file: str = "logs/scraper.log"

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1
