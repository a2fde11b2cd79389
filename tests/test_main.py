"""Tests for settings and the command-line entry point."""

import json

import pytest

from feedsync.__main__ import main, parse_args
from feedsync.config import DEFAULT_DB_PATH, Settings
from feedsync.database import Database
from feedsync.models import Feed


def test_settings_defaults(monkeypatch):
    for name in (
        "FEEDSYNC_DB_PATH",
        "FEEDSYNC_POLL_INTERVAL_MINUTES",
        "FEEDSYNC_WARMUP_SECONDS",
        "FEEDSYNC_MAX_CONCURRENCY",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = Settings.from_env()

    assert settings.db_path == DEFAULT_DB_PATH
    assert settings.poll_interval_minutes == 15
    assert settings.warmup_seconds == 5
    assert settings.max_concurrency == 4


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("FEEDSYNC_DB_PATH", "/tmp/feeds.db")
    monkeypatch.setenv("FEEDSYNC_POLL_INTERVAL_MINUTES", "30")
    monkeypatch.setenv("FEEDSYNC_MAX_CONCURRENCY", "not-a-number")

    settings = Settings.from_env()

    assert settings.db_path == "/tmp/feeds.db"
    assert settings.poll_interval_minutes == 30
    assert settings.max_concurrency == 4


def test_parse_args_run_interval():
    args = parse_args(["--db", "x.db", "run", "--interval", "5"])
    assert args.command == "run"
    assert args.interval == 5
    assert args.db == "x.db"


def test_parse_args_rejects_non_positive_interval():
    for value in ("0", "-3"):
        with pytest.raises(SystemExit):
            parse_args(["run", "--interval", value])


def test_list_command_prints_feeds(tmp_db_path, capsys):
    db = Database(tmp_db_path)
    db.connect()
    db.get_or_create_feed(
        Feed(feed_url="https://example.com/rss", title="Test Feed", url="https://example.com")
    )
    db.close()

    assert main(["--db", tmp_db_path, "list"]) == 0

    output = json.loads(capsys.readouterr().out)
    assert output["total"] == 1
    assert output["feeds"][0]["title"] == "Test Feed"


def test_refresh_unknown_feed_exits_with_error(tmp_db_path, capsys):
    assert main(["--db", tmp_db_path, "refresh", "7"]) == 1
    assert "Feed 7 not found" in capsys.readouterr().err
