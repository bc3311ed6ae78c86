import threading
import time
from unittest.mock import MagicMock

import requests

from birdsong_scraper.download import (
    DownloadScheduler,
    RateLimiter,
    RetryPolicy,
)
from birdsong_scraper.ledger import DiscoveredEntry, Entry, MetadataLedger

from conftest import BASE_URL, FakeConverter, make_response


def pending_entries(count=1, common_name="Arctic Tern"):
    ledger = MetadataLedger()
    ledger.merge_discovered(
        DiscoveredEntry(f"{BASE_URL}/{n}/download", str(n), common_name, "Sterna paradisaea")
        for n in range(1, count + 1)
    )
    return ledger.pending()


def make_scheduler(session, converter, output_dir, sleep, workers=1, **kwargs):
    return DownloadScheduler(
        session=session,
        converter=converter,
        output_dir=output_dir,
        workers=workers,
        rate_limiter=kwargs.pop("rate_limiter", RateLimiter(0.0)),
        policy=RetryPolicy(max_retries=3, backoff_base=1.0),
        sleep=sleep,
        **kwargs,
    )


def test_successful_download_and_conversion(output_dir, sleep, fake_converter):
    session = MagicMock()
    session.get.return_value = make_response(payload=b"ID3 payload")
    entry = pending_entries()[0]

    report = make_scheduler(session, fake_converter, output_dir, sleep).run([entry])

    assert report.succeeded == {entry.id}
    assert report.failed == {}
    assert (output_dir / "arctic_tern_1.wav").is_file()
    assert (output_dir / "arctic_tern_1.mp3").read_bytes() == b"ID3 payload"
    assert not (output_dir / ".arctic_tern_1.wav").exists()
    session.get.assert_called_once_with(entry.source_url, stream=True, timeout=60)
    assert sleep.calls == []


def test_fetch_fails_twice_then_succeeds(output_dir, sleep, fake_converter):
    session = MagicMock()
    session.get.side_effect = [
        requests.ConnectionError("connection reset"),
        requests.Timeout("read timed out"),
        make_response(),
    ]
    entry = pending_entries()[0]

    report = make_scheduler(session, fake_converter, output_dir, sleep).run([entry])

    assert report.succeeded == {entry.id}
    assert report.results[0].attempts == 3
    assert sleep.calls == [1.0, 2.0]
    assert sum(sleep.calls) == 3.0


def test_converter_failure_is_retried(output_dir, sleep):
    session = MagicMock()
    session.get.return_value = make_response()
    converter = FakeConverter(failures=1)
    entry = pending_entries()[0]

    report = make_scheduler(session, converter, output_dir, sleep).run([entry])

    assert report.succeeded == {entry.id}
    assert session.get.call_count == 2
    assert len(converter.calls) == 2
    assert sleep.calls == [1.0]


def test_entry_abandoned_after_four_attempts(output_dir, sleep, fake_converter):
    session = MagicMock()
    session.get.return_value = make_response(status=503)
    entry = pending_entries()[0]

    report = make_scheduler(session, fake_converter, output_dir, sleep).run([entry])

    assert report.succeeded == set()
    assert entry.id in report.failed
    assert "503" in report.failed[entry.id]
    assert session.get.call_count == 4
    assert sleep.calls == [1.0, 2.0, 4.0]
    assert not (output_dir / entry.filename).exists()


def test_failed_response_is_closed(output_dir, sleep, fake_converter):
    response = make_response(status=503)
    session = MagicMock()
    session.get.return_value = response
    entry = pending_entries()[0]

    make_scheduler(session, fake_converter, output_dir, sleep).run([entry])

    assert response.__exit__.call_count == 4


def test_empty_payload_is_a_failure(output_dir, sleep, fake_converter):
    session = MagicMock()
    session.get.side_effect = [make_response(payload=b""), make_response()]
    entry = pending_entries()[0]

    report = make_scheduler(session, fake_converter, output_dir, sleep).run([entry])

    assert report.succeeded == {entry.id}
    assert report.results[0].attempts == 2


def test_one_abandoned_entry_does_not_stop_the_others(output_dir, sleep, fake_converter):
    entries = pending_entries(count=3)
    failing_url = entries[1].source_url
    session = MagicMock()
    session.get.side_effect = lambda url, **kwargs: (
        make_response(status=404) if url == failing_url else make_response()
    )

    report = make_scheduler(session, fake_converter, output_dir, sleep, workers=2).run(entries)

    assert report.succeeded == {entries[0].id, entries[2].id}
    assert list(report.failed) == [entries[1].id]
    assert report.total == 3


def test_many_entries_with_worker_pool(output_dir, sleep, fake_converter):
    entries = pending_entries(count=12)
    session = MagicMock()
    session.get.side_effect = lambda url, **kwargs: make_response()
    limiter = MagicMock(spec=RateLimiter)

    report = make_scheduler(
        session, fake_converter, output_dir, sleep, workers=4, rate_limiter=limiter
    ).run(entries + entries[:3])

    assert report.succeeded == {e.id for e in entries}
    assert session.get.call_count == 12
    assert limiter.acquire.call_count == 12
    assert len({call[1] for call in fake_converter.calls}) == 12


def test_rate_limit_holds_across_concurrent_workers(output_dir, sleep, fake_converter):
    interval = 0.05
    entries = pending_entries(count=12)
    issued = []
    issued_lock = threading.Lock()

    def get(url, **kwargs):
        with issued_lock:
            issued.append(time.monotonic())
        return make_response()

    session = MagicMock()
    session.get.side_effect = get

    report = make_scheduler(
        session,
        fake_converter,
        output_dir,
        sleep,
        workers=6,
        rate_limiter=RateLimiter(interval),
    ).run(entries)

    assert report.succeeded == {e.id for e in entries}
    issued.sort()
    gaps = [later - earlier for earlier, later in zip(issued, issued[1:])]
    assert len(gaps) == 11
    # small slack for the gap between the limiter grant and the request call
    assert min(gaps) >= interval - 0.005


def test_existing_canonical_file_skips_fetch(output_dir, sleep, fake_converter):
    entry = pending_entries()[0]
    (output_dir / entry.filename).write_bytes(b"RIFF")
    session = MagicMock()

    report = make_scheduler(session, fake_converter, output_dir, sleep).run([entry])

    assert report.succeeded == {entry.id}
    session.get.assert_not_called()


def test_disk_only_entries_are_never_fetched(output_dir, sleep, fake_converter):
    entry = Entry(
        id="local_robin_2",
        source_url="local://robin_2.wav",
        common_name="robin",
        scientific_name="unknown",
        species="robin",
        filename="robin_2.wav",
    )
    session = MagicMock()

    report = make_scheduler(session, fake_converter, output_dir, sleep).run([entry])

    assert report.total == 0
    session.get.assert_not_called()


def test_remove_source_deletes_intermediate(output_dir, sleep, fake_converter):
    session = MagicMock()
    session.get.return_value = make_response()
    entry = pending_entries()[0]

    make_scheduler(
        session, fake_converter, output_dir, sleep, remove_source=True
    ).run([entry])

    assert (output_dir / "arctic_tern_1.wav").is_file()
    assert not (output_dir / "arctic_tern_1.mp3").exists()
