"""Crawl a recording catalog and keep a de-duplicated ledger of WAV downloads."""

__version__ = "0.1.0"
