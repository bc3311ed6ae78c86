"""
Scraping pipeline module.

This module sequences one batch run:
    1. Catalog crawl and merge (birdsong_scraper.ingestion)
    2. Disk reconciliation (birdsong_scraper.ledger)
    3. Download and conversion (birdsong_scraper.download)

Usage:
    # CLI interface
    uv run -m birdsong_scraper.pipeline URL downloads
    uv run -m birdsong_scraper.pipeline --download-only downloads

    # Programmatic interface
    from birdsong_scraper.pipeline import run_pipeline
    stats = run_pipeline("downloads", start_url=URL)
"""

from .orchestrator import run_pipeline, build_scheduler
from .stages import run_discovery_stage, run_reconcile_stage, run_download_stage

__all__ = [
    "run_pipeline",
    "build_scheduler",
    "run_discovery_stage",
    "run_reconcile_stage",
    "run_download_stage",
]
