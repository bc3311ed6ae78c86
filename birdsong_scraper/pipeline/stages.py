"""
Pipeline stage wrapper functions.

Each function runs one phase against the ledger and persists it afterwards,
so an interrupted run loses at most the phase in progress.
"""

import logging
import time
from pathlib import Path
from typing import Any, Callable

import requests

from birdsong_scraper.config import ScraperConfig
from birdsong_scraper.download import DownloadReport, DownloadScheduler
from birdsong_scraper.ingestion import crawl_catalog
from birdsong_scraper.ledger import MetadataLedger
from birdsong_scraper.logger import log_function


@log_function(logger_name="pipeline", log_execution_time=True)
def run_discovery_stage(
    start_url: str,
    ledger: MetadataLedger,
    ledger_path: Path,
    session: requests.Session,
    config: ScraperConfig,
    sleep: Callable[[float], None] = time.sleep,
) -> dict[str, Any]:
    """
    Crawl the catalog and merge discovered entries into the ledger.

    Args:
        start_url: First listing page
        ledger: Ledger to merge into
        ledger_path: File the ledger is persisted to
        session: HTTP session
        config: Scraper configuration
        sleep: Sleep function for the inter-page delay

    Returns:
        dict: discovered and added counts
    """
    logger = logging.getLogger("pipeline")
    logger.info(f"Starting discovery from {start_url}")

    discovered = crawl_catalog(start_url, session, config, sleep=sleep)
    added = ledger.merge_discovered(discovered)
    ledger.persist(ledger_path)

    logger.info(f"Discovery stage: {len(discovered)} discovered, {len(added)} new")
    return {"discovered": len(discovered), "added": len(added)}


@log_function(logger_name="pipeline", log_execution_time=True)
def run_reconcile_stage(
    ledger: MetadataLedger, output_dir: Path, ledger_path: Path
) -> dict[str, int]:
    """Reconcile the ledger with the output directory and persist it."""
    stats = ledger.reconcile_with_disk(output_dir)
    ledger.persist(ledger_path)
    return stats


@log_function(logger_name="pipeline", log_execution_time=True)
def run_download_stage(
    ledger: MetadataLedger, ledger_path: Path, scheduler: DownloadScheduler
) -> DownloadReport:
    """
    Download every pending entry, then apply the results and persist once.

    Returns:
        DownloadReport from the scheduler
    """
    logger = logging.getLogger("pipeline")
    pending = ledger.pending()
    if not pending:
        logger.info("All entries already downloaded")
        print("All entries already downloaded!")
        return DownloadReport()

    print(f"\nDownloading {len(pending)} pending entries...")
    report = scheduler.run(pending)
    ledger.apply_download_results(report.succeeded)
    ledger.persist(ledger_path)

    for entry_id, reason in sorted(report.failed.items()):
        logger.error(f"Entry {entry_id} not downloaded: {reason}")
    return report
