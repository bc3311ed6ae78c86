"""
Ledger package for the birdsong scraper.

Structure:
- models.py: Entry and DiscoveredEntry dataclasses, filename helpers
- ledger.py: MetadataLedger (load, merge, disk reconciliation, persistence)
"""

from .models import (
    DiscoveredEntry,
    Entry,
    LEDGER_COLUMNS,
    UNKNOWN,
    format_species_name,
    split_filename,
)
from .ledger import MetadataLedger

__all__ = [
    "DiscoveredEntry",
    "Entry",
    "LEDGER_COLUMNS",
    "UNKNOWN",
    "MetadataLedger",
    "format_species_name",
    "split_filename",
]
