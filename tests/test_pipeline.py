from unittest.mock import MagicMock, patch

import pytest

from birdsong_scraper.ledger import MetadataLedger
from birdsong_scraper.pipeline import run_pipeline
from birdsong_scraper.pipeline.__main__ import build_config, main, parse_arguments

from conftest import BASE_URL, FakeConverter, listing_page, make_response, title_for


START_URL = f"{BASE_URL}/explore?query=tern&pg=1"


def catalog_session(failing_urls=()):
    pages = {
        START_URL: listing_page(
            [
                ("/1/download", title_for(1, "Arctic Tern", "Sterna paradisaea")),
                ("/2/download", title_for(2, "Arctic Tern", "Sterna paradisaea")),
            ]
        ),
        f"{BASE_URL}/explore?query=tern&pg=2": listing_page(
            [("/3/download", title_for(3, "Common Loon", "Gavia immer"))]
        ),
        f"{BASE_URL}/explore?query=tern&pg=3": listing_page([]),
    }
    session = MagicMock()

    def get(url, **kwargs):
        if url in pages:
            return make_response(text=pages[url])
        if url.endswith("/download") and url not in failing_urls:
            return make_response()
        return make_response(status=500)

    session.get.side_effect = get
    return session


def test_normal_run_downloads_and_persists(output_dir, config, sleep):
    stats = run_pipeline(
        output_dir,
        start_url=START_URL,
        config=config,
        session=catalog_session(),
        converter=FakeConverter(),
        sleep=sleep,
    )

    assert stats["discovery"] == {"discovered": 3, "added": 3}
    assert stats["download"]["succeeded"] == 3
    ledger = MetadataLedger.load(output_dir / "metadata.csv")
    assert sorted(e.filename for e in ledger) == [
        "arctic_tern_1.wav",
        "arctic_tern_2.wav",
        "common_loon_1.wav",
    ]
    assert all(e.downloaded for e in ledger)


def test_second_run_is_idempotent(output_dir, config, sleep):
    for _ in range(2):
        stats = run_pipeline(
            output_dir,
            start_url=START_URL,
            config=config,
            session=catalog_session(),
            converter=FakeConverter(),
            sleep=sleep,
        )

    assert stats["discovery"]["added"] == 0
    assert "download" in stats and stats["download"]["attempted"] == 0
    assert stats["ledger"] == {"total": 3, "downloaded": 3, "pending": 0, "disk_only": 0}


def test_partial_failure_leaves_entry_pending(output_dir, config, sleep):
    stats = run_pipeline(
        output_dir,
        start_url=START_URL,
        config=config,
        session=catalog_session(failing_urls={f"{BASE_URL}/2/download"}),
        converter=FakeConverter(),
        sleep=sleep,
    )

    assert stats["download"]["failed_ids"] == ["2"]
    ledger = MetadataLedger.load(output_dir / "metadata.csv")
    assert ledger.get("2").downloaded is False
    assert ledger.get("1").downloaded is True


def test_download_only_uses_persisted_ledger(output_dir, config, sleep):
    run_pipeline(
        output_dir,
        start_url=START_URL,
        dry_run=True,
        config=config,
        session=catalog_session(),
        sleep=sleep,
    )
    session = catalog_session()

    stats = run_pipeline(
        output_dir,
        download_only=True,
        config=config,
        session=session,
        converter=FakeConverter(),
        sleep=sleep,
    )

    assert "discovery" not in stats
    assert stats["download"]["succeeded"] == 3
    requested = [c.args[0] for c in session.get.call_args_list]
    assert all(url.endswith("/download") for url in requested)


def test_download_only_without_ledger_is_fatal(output_dir, config):
    with pytest.raises(FileNotFoundError):
        run_pipeline(output_dir, download_only=True, config=config, session=MagicMock())


def test_unwritable_output_dir_is_fatal(tmp_path, config):
    blocker = tmp_path / "file"
    blocker.write_text("not a directory")

    with pytest.raises(RuntimeError):
        run_pipeline(blocker / "out", start_url=START_URL, config=config, session=MagicMock())


def test_dry_run_does_not_download(output_dir, config, sleep):
    converter = FakeConverter()

    stats = run_pipeline(
        output_dir,
        start_url=START_URL,
        dry_run=True,
        config=config,
        session=catalog_session(),
        converter=converter,
        sleep=sleep,
    )

    assert "download" not in stats
    assert stats["ledger"]["pending"] == 3
    assert converter.calls == []


def test_parse_arguments_modes():
    args = parse_arguments([START_URL, "out", "--workers", "3"])
    assert (args.url, args.output_dir, args.workers) == (START_URL, "out", 3)

    args = parse_arguments(["--download-only", "out"])
    assert args.download_only == "out"

    args = parse_arguments(["--convert", "out"])
    assert args.convert == "out"


def test_parse_arguments_requires_url():
    with pytest.raises(SystemExit):
        parse_arguments([])


def test_build_config_applies_overrides():
    config = build_config(
        parse_arguments([START_URL, "--request-interval", "2.5", "--remove-source"])
    )

    assert config.request_interval == 2.5
    assert config.remove_source is True


def test_main_exits_non_zero_on_structural_error(tmp_path):
    with patch(
        "birdsong_scraper.pipeline.__main__.setup_logging", return_value=MagicMock()
    ):
        with pytest.raises(SystemExit) as exc_info:
            main(["--download-only", str(tmp_path / "empty")])

    assert exc_info.value.code == 1
