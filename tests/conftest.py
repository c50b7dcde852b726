"""Shared test fixtures for Unmatch tests."""

from __future__ import annotations

import os
from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest
import yaml

from unmatch.models import ContentProgress, DailyCheckin, SubscriptionState, UrgeEvent, UserProfile
from unmatch.progress import refresh_progress
from unmatch.repositories import (
    create_checkin,
    create_urge_event,
    create_user_profile,
    upsert_subscription,
)
from unmatch.store import LocalStore
from unmatch.workspace import Clock

UTC = ZoneInfo("UTC")


def fixed_clock(year: int = 2026, month: int = 2, day: int = 18, hour: int = 12, tz: ZoneInfo = UTC) -> Clock:
    moment = datetime(year, month, day, hour, 0, tzinfo=tz)
    return Clock(tz, now_fn=lambda: moment)


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """Temporary data root with a settings file, exported as UNMATCH_ROOT."""
    root = tmp_path / "unmatch"
    root.mkdir()
    (root / "settings.yaml").write_text(
        yaml.dump({"timezone": "UTC", "log_level": "INFO"}, default_flow_style=False),
        encoding="utf-8",
    )
    os.environ["UNMATCH_ROOT"] = str(root)
    yield root
    if "UNMATCH_ROOT" in os.environ:
        del os.environ["UNMATCH_ROOT"]


@pytest.fixture
def clock() -> Clock:
    """Pinned to 2026-02-18 12:00 UTC."""
    return fixed_clock()


@pytest.fixture
def store(tmp_path: Path) -> LocalStore:
    s = LocalStore(tmp_path / "db" / "unmatch.db")
    yield s
    s.close()


def populate(store: LocalStore, clock: Clock) -> None:
    """A small but complete data set touching all six tables."""
    create_user_profile(store, UserProfile(
        created_at="2026-01-01T00:00:00.000Z",
        locale="en",
        notification_style="normal",
        goal_type="reduce_swipe",
        spending_budget_weekly=50.0,
    ))
    for day in (15, 16, 17, 18):
        create_urge_event(store, UrgeEvent(
            started_at=f"2026-02-{day}T10:00:00.000Z",
            from_screen="home",
            urge_level=4,
            urge_kind="swipe",
            protocol_completed=1,
            action_type="breathing",
            action_id="breath_60",
            outcome="success",
            trigger_tag="boredom",
        ))
    create_urge_event(store, UrgeEvent(
        started_at="2026-02-18T22:00:00.000Z",
        from_screen="panic",
        urge_level=5,
        urge_kind="check",
        outcome="fail",
    ))
    create_urge_event(store, UrgeEvent(
        started_at="2026-02-17T15:30:00.000Z",
        from_screen="panic",
        urge_level=3,
        urge_kind="spend",
        outcome="success",
        spend_category="gacha",
        spend_item_type="currency",
        spend_amount=25.0,
    ))
    create_checkin(store, DailyCheckin(
        date_local="2026-02-17", mood=2, fatigue=4, urge=3,
        note="rough evening", opened_at_night=True, spent_today=False,
    ))
    create_checkin(store, DailyCheckin(
        date_local="2026-02-18", mood=4, fatigue=2, urge=2,
        spent_today=True, spent_amount=12.5,
    ))
    store.insert(ContentProgress.TABLE, ContentProgress(
        content_id="starter_7d_day_1", completed_at="2026-02-10T09:00:00.000Z",
    ).to_row())
    upsert_subscription(store, SubscriptionState(
        status="active", product_id="unmatch_premium_monthly", period="monthly",
        started_at="2026-02-01T00:00:00.000Z", expires_at="2026-03-01T00:00:00.000Z",
    ))
    refresh_progress(store, clock)


@pytest.fixture
def populated_store(store: LocalStore, clock: Clock) -> LocalStore:
    populate(store, clock)
    return store


def snapshot_tables(store: LocalStore) -> dict[str, list[dict]]:
    """Full contents of every underlying table, for before/after comparisons."""
    from unmatch.store import TABLES

    return {t: store.read_all(t) for t in TABLES}
