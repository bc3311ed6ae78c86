"""
Bounded-concurrency download and conversion of pending ledger entries.

Every pending entry is dispatched once to a pool of worker threads. A worker
waits for the global rate limiter, fetches the recording, stores the raw
payload next to its target and converts it to the canonical file. Failed
attempts are retried per RetryPolicy; an entry whose retries are exhausted
is abandoned for this run without affecting the others.

Workers share a single SchedulerState holding the rate limiter and the set
of succeeded ids. The scheduler returns once every entry is terminal, and
the caller applies the report to the ledger in one step.
"""

import logging
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Optional

import requests

from birdsong_scraper.ledger.models import Entry
from birdsong_scraper.logger import log_function
from birdsong_scraper.storage import BaseStorage, LocalStorage
from .converter import Converter
from .rate_limit import RateLimiter
from .retry import (
    Abandoned,
    Outcome,
    Pending,
    RetryPolicy,
    Succeeded,
    is_terminal,
    transition,
)


logger = logging.getLogger("downloader")

CHUNK_SIZE = 8192


class DownloadError(Exception):
    """A single download attempt failed (fetch, write or conversion)."""


@dataclass(frozen=True)
class DownloadResult:
    """Terminal outcome of one entry."""

    entry_id: str
    succeeded: bool
    attempts: int
    reason: Optional[str] = None


@dataclass
class DownloadReport:
    succeeded: set[str] = field(default_factory=set)
    failed: dict[str, str] = field(default_factory=dict)
    results: list[DownloadResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)


class SchedulerState:
    """State shared by all workers of one run, each part under its own lock."""

    def __init__(self, rate_limiter: RateLimiter):
        self.rate_limiter = rate_limiter
        self._lock = threading.Lock()
        self._succeeded: set[str] = set()

    def record_success(self, entry_id: str) -> None:
        with self._lock:
            self._succeeded.add(entry_id)

    def succeeded(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._succeeded)


class DownloadScheduler:
    """
    Downloads and converts ledger entries with W workers.

    Args:
        session: HTTP session shared by the workers
        converter: Converter producing the canonical file
        output_dir: Directory receiving the files
        workers: Number of worker threads
        rate_limiter: Global request throttle (default: 1 request per second)
        policy: Retry policy
        storage: Storage backend for payload writes
        request_timeout: Per-request timeout in seconds
        source_extension: Extension of the intermediate raw payload
        remove_source: Delete the intermediate file after conversion
        sleep: Sleep function used for backoff, replaced in tests
    """

    def __init__(
        self,
        session: requests.Session,
        converter: Converter,
        output_dir: str | Path,
        workers: int = 5,
        rate_limiter: Optional[RateLimiter] = None,
        policy: RetryPolicy = RetryPolicy(),
        storage: Optional[BaseStorage] = None,
        request_timeout: float = 60,
        source_extension: str = ".mp3",
        remove_source: bool = False,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self.session = session
        self.converter = converter
        self.output_dir = Path(output_dir)
        self.workers = workers
        self.rate_limiter = rate_limiter or RateLimiter(1.0)
        self.policy = policy
        self.storage = storage or LocalStorage()
        self.request_timeout = request_timeout
        self.source_extension = source_extension
        self.remove_source = remove_source
        self._sleep = sleep

    # ============ SINGLE ATTEMPT ============
    def _intermediate_path(self, entry: Entry) -> Path:
        stem = Path(entry.filename).stem
        return self.output_dir / f"{stem}{self.source_extension}"

    def _fetch(self, entry: Entry, state: SchedulerState, target: Path) -> int:
        state.rate_limiter.acquire()
        try:
            with self.session.get(
                entry.source_url, stream=True, timeout=self.request_timeout
            ) as response:
                response.raise_for_status()
                written = self.storage.save_stream(
                    target, response.iter_content(chunk_size=CHUNK_SIZE)
                )
        except requests.RequestException as e:
            raise DownloadError(f"fetch failed: {e}") from e
        except OSError as e:
            raise DownloadError(f"write failed: {e}") from e
        if written == 0:
            target.unlink(missing_ok=True)
            raise DownloadError("empty payload")
        return written

    def _convert(self, source: Path, final_path: Path) -> None:
        # Hidden temporary output, renamed once complete, so an interrupted
        # conversion never leaves a canonical file behind
        partial = final_path.with_name(f".{final_path.name}")
        try:
            if not self.converter.convert(source, partial):
                raise DownloadError("conversion failed")
            os.replace(partial, final_path)
        except OSError as e:
            raise DownloadError(f"conversion output error: {e}") from e
        finally:
            if partial.exists():
                partial.unlink()

    def attempt(self, entry: Entry, state: SchedulerState) -> None:
        """
        Run one download-and-convert attempt.

        Raises:
            DownloadError: On any fetch, write or conversion failure
        """
        final_path = self.output_dir / entry.filename
        if self.storage.file_exist(self.output_dir, entry.filename):
            logger.info(f"{entry.filename} already exists, skipping fetch")
            return

        source = self._intermediate_path(entry)
        size = self._fetch(entry, state, source)
        logger.info(f"Fetched {entry.source_url} -> {source.name} ({size:,} bytes)")

        self._convert(source, final_path)
        if self.remove_source:
            source.unlink(missing_ok=True)

    # ============ RETRY LOOP ============
    def process_entry(self, entry: Entry, state: SchedulerState) -> DownloadResult:
        """Drive one entry through the retry state machine to a terminal state."""
        retry_state, _ = transition(Pending(), Outcome.START, self.policy)
        last_error: Optional[str] = None

        while not is_terminal(retry_state):
            attempt_number = retry_state.attempt
            logger.info(
                f"Downloading {entry.filename} "
                f"(attempt {attempt_number}/{self.policy.max_attempts})"
            )
            try:
                self.attempt(entry, state)
                outcome = Outcome.SUCCESS
            except DownloadError as e:
                last_error = str(e)
                outcome = Outcome.FAILURE
                logger.warning(
                    f"Attempt {attempt_number} failed for {entry.id} "
                    f"({entry.filename}): {e}"
                )

            retry_state, delay = transition(retry_state, outcome, self.policy)
            if delay > 0:
                logger.info(f"Waiting {delay:g}s before retrying {entry.id}")
                self._sleep(delay)

        if isinstance(retry_state, Succeeded):
            state.record_success(entry.id)
            print(f"  ✓ Downloaded {entry.filename}")
            return DownloadResult(entry.id, True, retry_state.attempts)

        assert isinstance(retry_state, Abandoned)
        logger.error(
            f"Abandoned {entry.id} ({entry.source_url}) after "
            f"{retry_state.attempts} attempts: {last_error}"
        )
        print(f"  ✗ Failed {entry.filename} after {retry_state.attempts} attempts")
        return DownloadResult(entry.id, False, retry_state.attempts, last_error)

    # ============ DISPATCH ============
    @log_function(logger_name="downloader", log_execution_time=True)
    def run(self, entries: Iterable[Entry]) -> DownloadReport:
        """
        Download every entry, each dispatched to exactly one worker.

        Args:
            entries: Pending entries; duplicates by id are dispatched once

        Returns:
            DownloadReport with the succeeded ids and failure reasons
        """
        pending: dict[str, Entry] = {}
        for entry in entries:
            if entry.is_disk_only:
                logger.warning(f"Skipping disk-only entry {entry.id}, nothing to fetch")
                continue
            pending.setdefault(entry.id, entry)

        report = DownloadReport()
        if not pending:
            logger.info("No pending entries to download")
            return report

        self.storage.create_workspace(self.output_dir)
        state = SchedulerState(self.rate_limiter)
        logger.info(
            f"Starting download of {len(pending)} entries with {self.workers} workers"
        )

        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            futures = {
                pool.submit(self.process_entry, entry, state): entry
                for entry in pending.values()
            }
            for future in as_completed(futures):
                entry = futures[future]
                try:
                    result = future.result()
                except Exception as e:
                    logger.error(
                        f"Worker crashed on {entry.id}: {type(e).__name__}: {e}",
                        exc_info=True,
                    )
                    result = DownloadResult(entry.id, False, 0, f"worker error: {e}")
                report.results.append(result)
                if not result.succeeded:
                    report.failed[result.entry_id] = result.reason or "unknown error"

        report.succeeded = set(state.succeeded())
        logger.info(
            f"Download finished: {len(report.succeeded)} succeeded, "
            f"{len(report.failed)} abandoned"
        )
        return report
