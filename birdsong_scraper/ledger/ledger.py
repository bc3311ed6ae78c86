"""
Metadata ledger reconciling recorded, discovered and on-disk recordings.

The ledger is the single owner of entry identity and filename assignment.
It is loaded once per run, mutated in three phases and persisted after each:

1. merge_discovered: entries found by the crawler get a species-numbered filename
2. reconcile_with_disk: files in the output directory flip or add entries
3. apply_download_results: ids reported by the download scheduler are marked done

Invariants kept after every phase:
- ids are unique
- filenames are unique, and new filenames for a species continue from the
  highest suffix already used for that species
- no phase removes an entry or turns downloaded back to False
"""

import csv
import io
import logging
import threading
from pathlib import Path
from typing import Iterable, Iterator, Optional

from birdsong_scraper.logger import log_function
from birdsong_scraper.storage import BaseStorage, LocalStorage
from .models import (
    DiscoveredEntry,
    Entry,
    LEDGER_COLUMNS,
    REQUIRED_COLUMN_COUNT,
    SPECIES_SEPARATOR,
    UNKNOWN,
    disk_only_url,
    format_species_name,
    split_filename,
)


logger = logging.getLogger("ledger")


class MetadataLedger:
    """Ordered, de-duplicated collection of Entry objects for one output directory."""

    def __init__(
        self,
        entries: Optional[Iterable[Entry]] = None,
        canonical_extension: str = ".wav",
        storage: Optional[BaseStorage] = None,
    ):
        self.canonical_extension = canonical_extension
        self.storage = storage or LocalStorage()
        self._entries: list[Entry] = []
        self._by_id: dict[str, Entry] = {}
        self._filenames: set[str] = set()
        self._lock = threading.Lock()

        for entry in entries or []:
            self._add(entry)

    # ============ COLLECTION ACCESS ============
    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Entry]:
        return iter(list(self._entries))

    def __contains__(self, entry_id: object) -> bool:
        return entry_id in self._by_id

    @property
    def entries(self) -> list[Entry]:
        return list(self._entries)

    def get(self, entry_id: str) -> Optional[Entry]:
        return self._by_id.get(entry_id)

    def pending(self) -> list[Entry]:
        """Entries still to download; disk-only entries have nothing to fetch."""
        return [e for e in self._entries if not e.downloaded and not e.is_disk_only]

    def summary(self) -> dict[str, int]:
        downloaded = sum(1 for e in self._entries if e.downloaded)
        return {
            "total": len(self._entries),
            "downloaded": downloaded,
            "pending": len(self.pending()),
            "disk_only": sum(1 for e in self._entries if e.is_disk_only),
        }

    def _add(self, entry: Entry) -> bool:
        if entry.id in self._by_id:
            logger.warning(f"Duplicate id '{entry.id}' ignored ({entry.filename})")
            return False
        if entry.filename in self._filenames:
            logger.warning(
                f"Duplicate filename '{entry.filename}' ignored (id {entry.id})"
            )
            return False
        self._entries.append(entry)
        self._by_id[entry.id] = entry
        self._filenames.add(entry.filename)
        return True

    # ============ LOAD / PERSIST ============
    @classmethod
    @log_function(logger_name="ledger", log_execution_time=True)
    def load(
        cls,
        path: str | Path,
        canonical_extension: str = ".wav",
        storage: Optional[BaseStorage] = None,
    ) -> "MetadataLedger":
        """
        Load a persisted ledger, returning an empty one when the file is absent.

        The first row is used as header when it names the six required
        columns, in any order; otherwise rows are read in the standard column
        order. Rows with fewer than the six required fields, or with an empty
        id/filename, are skipped.

        Args:
            path: CSV file written by persist()
            canonical_extension: Extension used for new filenames
            storage: Storage backend (default: LocalStorage)

        Returns:
            MetadataLedger with every readable row
        """
        ledger = cls(canonical_extension=canonical_extension, storage=storage)
        path = Path(path)
        if not path.is_file():
            logger.info(f"No ledger at {path}, starting empty")
            return ledger

        skipped = 0
        with open(path, "r", newline="", encoding="utf-8") as f:
            reader = csv.reader(f)
            columns = LEDGER_COLUMNS
            first_row = True
            for line_number, row in enumerate(reader, 1):
                if not row or not any(cell.strip() for cell in row):
                    continue
                if first_row:
                    first_row = False
                    names = [cell.strip().lower() for cell in row]
                    if set(LEDGER_COLUMNS[:REQUIRED_COLUMN_COUNT]) <= set(names):
                        columns = names
                        continue
                if len(row) < REQUIRED_COLUMN_COUNT:
                    logger.warning(
                        f"Skipping malformed ledger row {line_number}: "
                        f"{len(row)} fields"
                    )
                    skipped += 1
                    continue
                try:
                    entry = Entry.from_row(dict(zip(columns, row)))
                except ValueError as e:
                    logger.warning(f"Skipping malformed ledger row {line_number}: {e}")
                    skipped += 1
                    continue
                if not ledger._add(entry):
                    skipped += 1

        logger.info(
            f"Loaded {len(ledger)} entries from {path} ({skipped} rows skipped)"
        )
        return ledger

    def to_csv(self) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(LEDGER_COLUMNS)
        writer.writerows(entry.to_row() for entry in self._entries)
        return buffer.getvalue()

    def persist(self, path: str | Path) -> Path:
        """Overwrite the ledger file with every entry, atomically."""
        with self._lock:
            content = self.to_csv()
        saved = self.storage.save_file(path, content)
        logger.info(f"Persisted {len(self._entries)} entries to {saved}")
        return saved

    # ============ MERGE PHASES ============
    def _max_suffixes(self) -> dict[str, int]:
        counters: dict[str, int] = {}
        for entry in self._entries:
            suffix = entry.suffix
            if suffix is not None and suffix > counters.get(entry.species, 0):
                counters[entry.species] = suffix
        return counters

    def _next_filename(self, species: str, counters: dict[str, int]) -> str:
        number = counters.get(species, 0)
        while True:
            number += 1
            filename = f"{species}{SPECIES_SEPARATOR}{number}{self.canonical_extension}"
            if filename not in self._filenames:
                counters[species] = number
                return filename

    def _unique_id(self, base: str) -> str:
        if base not in self._by_id:
            return base
        n = 2
        while f"{base}{SPECIES_SEPARATOR}{n}" in self._by_id:
            n += 1
        return f"{base}{SPECIES_SEPARATOR}{n}"

    def _is_unknown_id(self, entry_id: str) -> bool:
        if entry_id == UNKNOWN:
            return True
        prefix = f"{UNKNOWN}{SPECIES_SEPARATOR}"
        return entry_id.startswith(prefix) and entry_id[len(prefix):].isdigit()

    def _resolve_discovered_id(self, discovered: DiscoveredEntry) -> Optional[str]:
        """
        Return the id a discovered entry should get, or None if already known.

        Entries whose URL yielded no id all share the fallback "unknown"; they
        are told apart by source URL and numbered unknown, unknown_2, ...
        """
        if discovered.entry_id != UNKNOWN:
            if discovered.entry_id in self._by_id:
                return None
            return discovered.entry_id

        for entry in self._entries:
            if self._is_unknown_id(entry.id) and entry.source_url == discovered.url:
                return None
        return self._unique_id(UNKNOWN)

    @log_function(logger_name="ledger", log_execution_time=True)
    def merge_discovered(self, discovered: Iterable[DiscoveredEntry]) -> list[Entry]:
        """
        Add discovered entries whose id is not yet in the ledger.

        Suffix counters are seeded once from the current ledger, so entries
        added in the same call never collide. Re-discovered ids are left
        untouched.

        Args:
            discovered: Raw entries from the crawler, in discovery order

        Returns:
            The newly added entries
        """
        added = []
        with self._lock:
            counters = self._max_suffixes()
            for item in discovered:
                entry_id = self._resolve_discovered_id(item)
                if entry_id is None:
                    continue
                species = format_species_name(item.common_name)
                entry = Entry(
                    id=entry_id,
                    source_url=item.url,
                    common_name=item.common_name or UNKNOWN,
                    scientific_name=item.scientific_name or UNKNOWN,
                    species=species,
                    filename=self._next_filename(species, counters),
                    downloaded=False,
                )
                self._add(entry)
                added.append(entry)

        logger.info(f"Merged {len(added)} new entries, ledger size {len(self._entries)}")
        return added

    @log_function(logger_name="ledger", log_execution_time=True)
    def reconcile_with_disk(self, directory: str | Path) -> dict[str, int]:
        """
        Cross-check the ledger against canonical files present in directory.

        A file matching an entry's filename marks it downloaded. A file with no
        entry becomes a disk-only entry: species from the filename, scientific
        name unknown, id "local_<stem>" (suffixed on collision). Nothing is
        removed and downloaded is never reset.

        Args:
            directory: Output directory to scan

        Returns:
            Statistics dict with files, marked and added counts
        """
        files = self.storage.list_files(directory, self.canonical_extension)
        stats = {"files": len(files), "marked": 0, "already_marked": 0, "added": 0}

        with self._lock:
            by_filename = {entry.filename: entry for entry in self._entries}
            for name in files:
                entry = by_filename.get(name)
                if entry is not None:
                    if entry.downloaded:
                        stats["already_marked"] += 1
                    else:
                        entry.downloaded = True
                        stats["marked"] += 1
                    continue

                stem = name[: -len(self.canonical_extension)]
                species, _ = split_filename(name)
                new_entry = Entry(
                    id=self._unique_id(f"local{SPECIES_SEPARATOR}{stem}"),
                    source_url=disk_only_url(name),
                    common_name=species.replace(SPECIES_SEPARATOR, " "),
                    scientific_name=UNKNOWN,
                    species=species,
                    filename=name,
                    downloaded=True,
                )
                self._add(new_entry)
                logger.info(f"Added disk-only entry {new_entry.id} for {name}")
                stats["added"] += 1

        logger.info(f"Disk reconciliation of {directory}: {stats}")
        return stats

    def apply_download_results(self, succeeded_ids: Iterable[str]) -> int:
        """Mark downloaded every known id in succeeded_ids; unknown ids are ignored."""
        updated = 0
        with self._lock:
            for entry_id in succeeded_ids:
                entry = self._by_id.get(entry_id)
                if entry is None:
                    logger.warning(f"Download result for unknown id '{entry_id}' ignored")
                    continue
                if not entry.downloaded:
                    entry.downloaded = True
                    updated += 1
        logger.info(f"Applied download results: {updated} entries marked downloaded")
        return updated
