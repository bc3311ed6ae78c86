import logging
import time
from pathlib import Path
from typing import Any, Callable, Optional

import requests

from birdsong_scraper.config import ScraperConfig
from birdsong_scraper.download import (
    Converter,
    FfmpegConverter,
    DownloadScheduler,
    RateLimiter,
    RetryPolicy,
)
from birdsong_scraper.ingestion import create_session
from birdsong_scraper.ledger import MetadataLedger
from birdsong_scraper.logger import log_function
from birdsong_scraper.storage import LocalStorage
from .stages import run_discovery_stage, run_reconcile_stage, run_download_stage


def build_scheduler(
    session: requests.Session,
    converter: Converter,
    output_dir: Path,
    config: ScraperConfig,
    sleep: Callable[[float], None] = time.sleep,
) -> DownloadScheduler:
    """Create a DownloadScheduler from the configuration."""
    return DownloadScheduler(
        session=session,
        converter=converter,
        output_dir=output_dir,
        workers=config.workers,
        rate_limiter=RateLimiter(config.request_interval, sleep=sleep),
        policy=RetryPolicy(config.max_retries, config.backoff_base),
        request_timeout=config.request_timeout,
        source_extension=config.source_extension,
        remove_source=config.remove_source,
        sleep=sleep,
    )


@log_function(logger_name="pipeline", log_execution_time=True)
def run_pipeline(
    output_dir: str | Path,
    start_url: Optional[str] = None,
    download_only: bool = False,
    dry_run: bool = False,
    config: Optional[ScraperConfig] = None,
    session: Optional[requests.Session] = None,
    converter: Optional[Converter] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> dict[str, Any]:
    """
    Run one batch: discovery, merge, disk reconciliation and download.

    In download-only mode discovery is skipped and the persisted ledger must
    already exist. With dry_run nothing is downloaded; the ledger still
    records discovery and reconciliation.

    Args:
        output_dir: Directory holding recordings and the ledger file
        start_url: First listing page (required unless download_only)
        download_only: Skip discovery and work from the persisted ledger
        dry_run: Stop before the download stage
        config: Scraper configuration
        session: HTTP session (default: browser-like session)
        converter: Converter (default: ffmpeg)
        sleep: Sleep function for delays and backoff

    Returns:
        dict: Statistics of every stage and the final ledger summary

    Raises:
        ValueError: If start_url is missing outside download-only mode
        FileNotFoundError: If download_only and no ledger exists
        RuntimeError: If the output directory cannot be created
    """
    logger = logging.getLogger("pipeline")
    config = config or ScraperConfig()
    output_dir = Path(output_dir)
    ledger_path = output_dir / config.ledger_filename

    if not download_only and not start_url:
        raise ValueError("A start URL is required unless running download-only")

    if download_only and not ledger_path.is_file():
        raise FileNotFoundError(
            f"No ledger at {ledger_path}; run a normal crawl first"
        )

    storage = LocalStorage()
    storage.create_workspace(output_dir)
    session = session or create_session(config.user_agent)
    stats: dict[str, Any] = {"mode": "download-only" if download_only else "normal"}

    logger.info("=== PIPELINE STARTED ===")
    ledger = MetadataLedger.load(
        ledger_path, canonical_extension=config.canonical_extension, storage=storage
    )
    stats["loaded"] = len(ledger)

    if not download_only:
        stats["discovery"] = run_discovery_stage(
            start_url, ledger, ledger_path, session, config, sleep=sleep
        )

    stats["reconcile"] = run_reconcile_stage(ledger, output_dir, ledger_path)

    if dry_run:
        pending = ledger.pending()
        logger.info(f"Dry run: {len(pending)} entries would be downloaded")
        print("DRY RUN - Entries that would be downloaded:")
        for entry in pending:
            print(f"  ✓ Would download: {entry.filename} <- {entry.source_url}")
    else:
        scheduler = build_scheduler(
            session,
            converter or FfmpegConverter(config.ffmpeg_path),
            output_dir,
            config,
            sleep=sleep,
        )
        report = run_download_stage(ledger, ledger_path, scheduler)
        stats["download"] = {
            "attempted": report.total,
            "succeeded": len(report.succeeded),
            "failed": len(report.failed),
            "failed_ids": sorted(report.failed),
        }

    stats["ledger"] = ledger.summary()
    logger.info(f"=== PIPELINE COMPLETED === {stats}")
    return stats
