#!/usr/bin/env python3
"""
CLI interface for the birdsong scraper.

Three run modes:
    1. Normal: crawl the catalog, merge into the ledger, reconcile with disk,
       download and convert every pending recording
    2. Download-only: skip the crawl and work from the persisted ledger
    3. Convert: convert every .mp3 in a directory lacking a .wav counterpart

Usage:
    uv run -m birdsong_scraper.pipeline "https://xeno-canto.org/explore?query=tern&pg=1" downloads
    uv run -m birdsong_scraper.pipeline --download-only downloads
    uv run -m birdsong_scraper.pipeline --convert downloads
"""

import argparse
import sys
from dataclasses import replace
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from birdsong_scraper.config import ScraperConfig
from birdsong_scraper.download import FfmpegConverter, convert_directory
from birdsong_scraper.logger import setup_logging
from .orchestrator import run_pipeline


console = Console()


def parse_arguments(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Crawl a recording catalog, download and convert recordings to WAV",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  uv run -m birdsong_scraper.pipeline URL downloads           # Crawl and download
  uv run -m birdsong_scraper.pipeline URL downloads --dry-run # Crawl, show pending
  uv run -m birdsong_scraper.pipeline --download-only downloads
  uv run -m birdsong_scraper.pipeline --convert downloads     # Batch convert mp3 -> wav
  uv run -m birdsong_scraper.pipeline URL downloads --workers 3 --request-interval 2
        """,
    )

    parser.add_argument("url", nargs="?", help="First listing page to crawl")
    parser.add_argument(
        "output_dir",
        nargs="?",
        default="downloads",
        help="Directory for recordings and metadata.csv (default: downloads)",
    )

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--download-only",
        metavar="OUTPUT_DIR",
        help="Skip the crawl; download pending entries of an existing ledger",
    )
    mode.add_argument(
        "--convert",
        metavar="DIRECTORY",
        help="Convert every .mp3 in DIRECTORY that has no .wav counterpart",
    )

    parser.add_argument("--workers", type=int, help="Concurrent download workers")
    parser.add_argument(
        "--request-interval",
        type=float,
        help="Minimum seconds between any two downloads",
    )
    parser.add_argument(
        "--page-delay", type=float, help="Seconds to wait between listing pages"
    )
    parser.add_argument("--max-pages", type=int, help="Maximum listing pages to crawl")
    parser.add_argument(
        "--remove-source",
        action="store_true",
        help="Delete the downloaded .mp3 once converted",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Crawl and reconcile, but only show what would be downloaded",
    )
    parser.add_argument(
        "--verbose", action="store_true", help="Detailed console output"
    )

    args = parser.parse_args(argv)

    if not args.download_only and not args.convert and not args.url:
        parser.error("a start URL is required (or use --download-only / --convert)")
    if args.workers is not None and args.workers < 1:
        parser.error("--workers must be at least 1")

    return args


def build_config(args: argparse.Namespace) -> ScraperConfig:
    """Apply CLI overrides to the environment-based configuration."""
    overrides = {
        "workers": args.workers,
        "request_interval": args.request_interval,
        "page_delay": args.page_delay,
        "max_pages": args.max_pages,
    }
    config = replace(
        ScraperConfig(), **{k: v for k, v in overrides.items() if v is not None}
    )
    if args.remove_source:
        config = replace(config, remove_source=True)
    return config


def print_summary(stats: dict) -> None:
    """Print the run statistics as a rich panel."""
    table = Table(show_header=False, box=None)
    table.add_column(style="bold")
    table.add_column()

    table.add_row("Mode", stats["mode"])
    table.add_row("Entries loaded", str(stats["loaded"]))
    if "discovery" in stats:
        table.add_row("Discovered", str(stats["discovery"]["discovered"]))
        table.add_row("New entries", str(stats["discovery"]["added"]))
    reconcile = stats["reconcile"]
    table.add_row("Files on disk", str(reconcile["files"]))
    table.add_row("Disk-only entries added", str(reconcile["added"]))
    if "download" in stats:
        download = stats["download"]
        table.add_row("Downloaded", f"[green]{download['succeeded']}[/green]")
        table.add_row("Failed", f"[red]{download['failed']}[/red]")
    ledger = stats["ledger"]
    table.add_row("Ledger", f"{ledger['downloaded']}/{ledger['total']} downloaded")

    console.print(Panel(table, title="Run summary", border_style="cyan"))

    failed_ids = stats.get("download", {}).get("failed_ids", [])
    if failed_ids:
        console.print(
            f"[yellow]⚠️  Not downloaded: {', '.join(failed_ids)}. "
            "Check logs/scraper.log for details[/yellow]"
        )


def main(argv: Optional[list[str]] = None):
    """Main entry point for the scraper CLI."""
    args = parse_arguments(argv)
    config = build_config(args)

    logger = setup_logging(
        logger_name="pipeline",
        log_file=config.log_file,
        verbose=args.verbose,
        include_components=True,
    )

    try:
        if args.convert:
            logger.info(f"Batch conversion of {args.convert}")
            stats = convert_directory(
                args.convert,
                FfmpegConverter(config.ffmpeg_path),
                config.source_extension,
                config.canonical_extension,
            )
            console.print(
                f"Converted {stats['converted']}, skipped {stats['skipped']}, "
                f"failed {stats['failed']} of {stats['found']} files"
            )
            sys.exit(0 if stats["failed"] == 0 else 1)

        if args.download_only:
            stats = run_pipeline(
                args.download_only,
                download_only=True,
                dry_run=args.dry_run,
                config=config,
            )
        else:
            stats = run_pipeline(
                args.output_dir,
                start_url=args.url,
                dry_run=args.dry_run,
                config=config,
            )

        print_summary(stats)
        sys.exit(0)

    except KeyboardInterrupt:
        print("\nRun interrupted by user")
        logger.info("Run interrupted by user")
        sys.exit(130)

    except Exception as e:
        logger.error(f"Run failed: {e}")
        print(f"✗ Run failed: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
