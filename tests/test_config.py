"""Tests for unmatch/config.py and unmatch/workspace.py."""

import logging
from datetime import datetime
from zoneinfo import ZoneInfo

import yaml

from unmatch.config import Settings, configure_logging, load_settings, save_settings
from unmatch.workspace import Clock, db_path, default_clock, to_utc_iso, workspace_root


def test_workspace_root_from_env(workspace):
    assert workspace_root() == workspace.resolve()
    assert db_path() == workspace.resolve() / "unmatch.db"


def test_load_settings(workspace):
    (workspace / "settings.yaml").write_text(
        yaml.dump({"timezone": "Asia/Tokyo", "log_level": "debug"}), encoding="utf-8"
    )
    settings = load_settings(workspace)
    assert settings.timezone == "Asia/Tokyo"
    assert settings.log_level == "DEBUG"
    assert default_clock(workspace).tz == ZoneInfo("Asia/Tokyo")


def test_bad_values_fall_back(workspace, monkeypatch):
    monkeypatch.delenv("TZ", raising=False)
    (workspace / "settings.yaml").write_text(
        yaml.dump({"timezone": "Mars/Olympus", "log_level": "LOUD"}), encoding="utf-8"
    )
    settings = load_settings(workspace)
    assert settings.timezone == "UTC"
    assert settings.log_level == "INFO"


def test_missing_settings_file(tmp_path, monkeypatch):
    monkeypatch.delenv("TZ", raising=False)
    monkeypatch.delenv("UNMATCH_LOG_LEVEL", raising=False)
    assert load_settings(tmp_path) == Settings()


def test_log_level_env_override(workspace, monkeypatch):
    monkeypatch.setenv("UNMATCH_LOG_LEVEL", "warning")
    assert load_settings(workspace).log_level == "WARNING"


def test_save_settings_round_trip(workspace):
    save_settings(Settings(timezone="Europe/Berlin", log_level="ERROR"), workspace)
    assert load_settings(workspace) == Settings(timezone="Europe/Berlin", log_level="ERROR")


def test_configure_logging_is_idempotent():
    logger = configure_logging("debug")
    configure_logging("debug")
    marked = [h for h in logger.handlers if getattr(h, "_unmatch_handler", False)]
    assert len(marked) == 1
    assert logger.level == logging.DEBUG


def test_clock_local_day_and_utc_format():
    tz = ZoneInfo("Asia/Tokyo")
    clock = Clock(tz, now_fn=lambda: datetime(2026, 2, 18, 23, 30, tzinfo=ZoneInfo("UTC")))
    assert clock.today_str() == "2026-02-19"
    assert clock.utc_now_iso() == "2026-02-18T23:30:00.000Z"
    assert clock.local_date_of("2026-02-18T15:00:00.000Z").isoformat() == "2026-02-19"
    assert to_utc_iso(datetime(2026, 2, 18, 9, 0, tzinfo=tz)) == "2026-02-18T00:00:00.000Z"


def test_utc_range_on_fall_back_day():
    clock = Clock(ZoneInfo("America/New_York"))
    assert clock.utc_range_for("2026-11-01") == (
        "2026-11-01T04:00:00.000Z",
        "2026-11-02T05:00:00.000Z",
    )
