"""Integration tests for the reader-cache CLI."""

from __future__ import annotations

import json

import pytest

from core.connectivity import ManualConnectivityMonitor
from core.errors import NetworkError
from reader_cache.cli import main as cli_main
from storage.sqlite import SQLiteArticleStore


class ReachableProbe(ManualConnectivityMonitor):
    """Probe stand-in that always reports a working connection."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(connected=False)

    def refresh(self) -> bool:
        self.set_connected(True)
        return True


def _json_lines(stdout: str) -> list[dict]:
    """Parse JSON log lines emitted by CLI commands."""
    lines = [line.strip() for line in stdout.splitlines() if line.strip()]
    return [json.loads(line) for line in lines]


def _of_type(events: list[dict], event_type: str) -> list[dict]:
    return [event for event in events if event["event_type"] == event_type]


@pytest.fixture
def storage_args(tmp_path) -> list[str]:
    return ["--db", str(tmp_path / "cli.db"), "--cache-dir", str(tmp_path / "cache")]


@pytest.fixture
def seeded(tmp_path, article_factory):
    """Two cached articles in the CLI database."""
    store = SQLiteArticleStore(tmp_path / "cli.db")
    articles = [
        article_factory("rust", title="Rust 2.0 released"),
        article_factory("weather", title="Weather update"),
    ]
    store.upsert(articles)
    return articles


@pytest.fixture
def online(monkeypatch, fake_feed):
    monkeypatch.setattr("reader_cache.cli.SocketProbeMonitor", ReachableProbe)
    monkeypatch.setattr("reader_cache.cli.NewsApiFeedClient", lambda api_key: fake_feed)
    return fake_feed


@pytest.mark.integration
def test_offline_sync_serves_cache(storage_args, seeded, capsys):
    exit_code = cli_main(["sync", "--offline", *storage_args])

    assert exit_code == 0
    completed = _of_type(_json_lines(capsys.readouterr().out), "cli_sync_completed")
    assert completed[0]["phase"] == "LOADED"
    assert completed[0]["online"] is False
    assert completed[0]["articles"] == 2


@pytest.mark.integration
def test_online_sync_persists_feed(storage_args, online, article_factory, tmp_path, capsys):
    online.responses.append([article_factory("fresh")])

    exit_code = cli_main(["sync", "--api-key", "k", "--no-images", *storage_args])

    assert exit_code == 0
    assert online.calls == 1
    assert SQLiteArticleStore(tmp_path / "cli.db").count() == 1
    completed = _of_type(_json_lines(capsys.readouterr().out), "cli_sync_completed")
    assert completed[0]["online"] is True


@pytest.mark.integration
def test_sync_fetch_failure_exits_nonzero(storage_args, online, seeded, capsys):
    online.responses.append(NetworkError("feed down"))

    exit_code = cli_main(["sync", "--api-key", "k", "--no-images", *storage_args])

    assert exit_code == 1
    completed = _of_type(_json_lines(capsys.readouterr().out), "cli_sync_completed")
    assert completed[0]["error"] == "feed down"
    assert completed[0]["articles"] == 2


@pytest.mark.integration
def test_sync_without_api_key_reports_error(storage_args, monkeypatch, capsys):
    monkeypatch.delenv("NEWS_API_KEY", raising=False)

    exit_code = cli_main(["sync", *storage_args])

    assert exit_code == 1
    errors = _of_type(_json_lines(capsys.readouterr().out), "cli_error")
    assert errors[0]["level"] == "error"
    assert "NEWS_API_KEY" in errors[0]["error"]


@pytest.mark.integration
def test_list_and_search(storage_args, seeded, capsys):
    assert cli_main(["list", *storage_args]) == 0
    listed = _of_type(_json_lines(capsys.readouterr().out), "cli_article")
    assert {event["article"]["id"] for event in listed} == {a.id for a in seeded}

    assert cli_main(["search", "rust", *storage_args]) == 0
    events = _json_lines(capsys.readouterr().out)
    matches = _of_type(events, "cli_article")
    assert [event["article"]["title"] for event in matches] == ["Rust 2.0 released"]
    assert _of_type(events, "cli_search_completed")[0]["filtered"] is True


@pytest.mark.integration
def test_bookmark_toggle_and_list_bookmarked(storage_args, seeded, capsys):
    target = seeded[0]

    assert cli_main(["bookmark", target.id, *storage_args]) == 0
    toggled = _of_type(_json_lines(capsys.readouterr().out), "cli_bookmark_completed")
    assert toggled[0]["is_bookmarked"] is True

    assert cli_main(["list", "--bookmarked", *storage_args]) == 0
    listed = _of_type(_json_lines(capsys.readouterr().out), "cli_article")
    assert [event["article"]["id"] for event in listed] == [target.id]


@pytest.mark.integration
def test_bookmark_unknown_id_fails(storage_args, seeded, capsys):
    assert cli_main(["bookmark", "no-such-id", *storage_args]) == 1
    errors = _of_type(_json_lines(capsys.readouterr().out), "cli_error")
    assert errors[0]["error_type"] == "ValueError"


@pytest.mark.integration
def test_size_cleanup_and_clear(storage_args, seeded, capsys):
    assert cli_main(["size", *storage_args]) == 0
    size = _of_type(_json_lines(capsys.readouterr().out), "cli_size_completed")[0]
    assert size["cached_articles"] == 2
    assert size["bytes"] == 2 * 2048
    assert size["display"] == "4.1 KB"

    assert cli_main(["cleanup", "--days", "30", *storage_args]) == 0
    cleanup = _of_type(_json_lines(capsys.readouterr().out), "cli_cleanup_completed")[0]
    assert cleanup["removed"] == 0

    assert cli_main(["clear", *storage_args]) == 0
    cleared = _of_type(_json_lines(capsys.readouterr().out), "cli_clear_completed")[0]
    assert cleared["removed"] == 2


@pytest.mark.integration
def test_no_command_prints_help(capsys):
    assert cli_main([]) == 0
    assert "reader-cache" in capsys.readouterr().out
