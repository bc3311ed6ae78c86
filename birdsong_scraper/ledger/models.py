"""
Data model for the recording ledger.

Models:
    DiscoveredEntry: A raw entry found on a listing page, before it has a filename
    Entry: A recording known to the ledger, with its canonical filename and status

Helpers:
    format_species_name: Normalizes a common name into the filename grouping key
    split_filename: Splits "<species>_<n>.<ext>" into species and numeric suffix
"""

import re
from dataclasses import dataclass
from typing import Optional


UNKNOWN = "unknown"
DISK_ONLY_URL_PREFIX = "local://"
SPECIES_SEPARATOR = "_"

# Column order of the persisted ledger; is_downloaded is optional on read
LEDGER_COLUMNS = [
    "filename",
    "species",
    "original_url",
    "id",
    "common_name",
    "scientific_name",
    "is_downloaded",
]
REQUIRED_COLUMN_COUNT = 6

_NUMBERED_STEM = re.compile(r"^(?P<species>.+)_(?P<number>\d+)$")


def format_species_name(common_name: str) -> str:
    """Convert a common name such as "Arctic Tern" to "arctic_tern"."""
    name = (common_name or "").strip()
    if not name:
        return UNKNOWN
    # Path separators would escape the output directory
    name = name.replace("/", "-").replace("\\", "-")
    return name.lower().replace(" ", SPECIES_SEPARATOR)


def split_filename(filename: str) -> tuple[str, Optional[int]]:
    """
    Split a canonical filename into its species key and numeric suffix.

    "arctic_tern_3.wav" -> ("arctic_tern", 3). A stem with no separator, or
    whose last segment is not a number, keeps the stem before the last
    separator as species (or the whole stem without one) and has no suffix.
    """
    stem = filename.rsplit(".", 1)[0] if "." in filename else filename
    match = _NUMBERED_STEM.match(stem)
    if match:
        return match.group("species"), int(match.group("number"))
    if SPECIES_SEPARATOR in stem:
        return stem.rsplit(SPECIES_SEPARATOR, 1)[0] or stem, None
    return stem, None


def disk_only_url(filename: str) -> str:
    return f"{DISK_ONLY_URL_PREFIX}{filename}"


@dataclass(frozen=True)
class DiscoveredEntry:
    """One download link found on a listing page."""

    url: str
    entry_id: str
    common_name: str = UNKNOWN
    scientific_name: str = UNKNOWN


@dataclass
class Entry:
    """
    A recording tracked by the ledger.

    The ledger is the only place that creates Entry objects, so id and
    filename are always assigned under its numbering rules.
    """

    id: str
    source_url: str
    common_name: str
    scientific_name: str
    species: str
    filename: str
    downloaded: bool = False

    @property
    def is_disk_only(self) -> bool:
        return self.source_url.startswith(DISK_ONLY_URL_PREFIX)

    @property
    def suffix(self) -> Optional[int]:
        return split_filename(self.filename)[1]

    def to_row(self) -> list[str]:
        return [
            self.filename,
            self.species,
            self.source_url,
            self.id,
            self.common_name,
            self.scientific_name,
            "true" if self.downloaded else "false",
        ]

    @classmethod
    def from_row(cls, row: dict[str, Optional[str]]) -> "Entry":
        """
        Build an Entry from a persisted row keyed by LEDGER_COLUMNS.

        Raises:
            ValueError: If a required column is missing or the id/filename is empty
        """
        missing = [
            column
            for column in LEDGER_COLUMNS[:REQUIRED_COLUMN_COUNT]
            if row.get(column) is None
        ]
        if missing:
            raise ValueError(f"missing columns: {', '.join(missing)}")

        entry_id = row["id"].strip()
        filename = row["filename"].strip()
        if not entry_id or not filename:
            raise ValueError("empty id or filename")

        return cls(
            id=entry_id,
            source_url=row["original_url"].strip(),
            common_name=row["common_name"].strip() or UNKNOWN,
            scientific_name=row["scientific_name"].strip() or UNKNOWN,
            species=row["species"].strip() or split_filename(filename)[0],
            filename=filename,
            downloaded=parse_bool(row.get("is_downloaded")),
        )


def parse_bool(value: Optional[str]) -> bool:
    if value is None:
        return False
    return value.strip().lower() in ("true", "1", "yes", "y")
