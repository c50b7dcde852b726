"""Typed read/write operations over the six Unmatch tables.

Every function takes the store first. Inserts generate identifiers (uuid4,
or the fixed singleton id). Lookups that find nothing return None or an empty
list; counts return 0.
"""

from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import date
from typing import Any

from unmatch.models import (
    RECORD_TYPES,
    SINGLETON_ID,
    ContentProgress,
    DailyCheckin,
    ProgressRecord,
    SubscriptionState,
    UrgeEvent,
    UserProfile,
)
from unmatch.store import LocalStore
from unmatch.workspace import Clock, as_date, parse_iso, to_utc_iso

# Logical envelope key -> underlying table name.
TABLE_NAME_MAP: dict[str, str] = {key: cls.TABLE for key, cls in RECORD_TYPES.items()}


def _new_id() -> str:
    return str(uuid.uuid4())


def _check(record: Any) -> None:
    errors = record.validate()
    if errors:
        raise ValueError("; ".join(errors))


def dump_table(store: LocalStore, logical_key: str) -> list[dict[str, Any]]:
    """Every row of a logical table, every column verbatim."""
    if logical_key not in TABLE_NAME_MAP:
        raise KeyError(f"Unknown logical table: {logical_key}")
    return store.read_all(TABLE_NAME_MAP[logical_key])


# ── Profile ───────────────────────────────────────────────────


def get_user_profile(store: LocalStore) -> UserProfile | None:
    row = store.query_one("SELECT * FROM user_profile WHERE id = ? LIMIT 1", (SINGLETON_ID,))
    return UserProfile.from_row(row) if row is not None else None


def create_user_profile(store: LocalStore, profile: UserProfile) -> UserProfile:
    """Insert the singleton profile. Fails if one already exists."""
    profile = replace(profile, id=SINGLETON_ID)
    _check(profile)
    store.insert(UserProfile.TABLE, profile.to_row())
    return profile


def update_user_profile(store: LocalStore, updates: dict[str, Any]) -> UserProfile | None:
    """Apply field updates to the existing profile; None if there is no profile."""
    current = get_user_profile(store)
    if current is None:
        return None
    unknown = set(updates) - set(UserProfile.columns())
    if unknown:
        raise ValueError(f"Unknown profile fields: {', '.join(sorted(unknown))}")
    updated = replace(current, **{k: v for k, v in updates.items() if k != "id"})
    _check(updated)
    store.insert(UserProfile.TABLE, updated.to_row(), replace=True)
    return updated


# ── Urge events ───────────────────────────────────────────────


def create_urge_event(store: LocalStore, event: UrgeEvent) -> UrgeEvent:
    """Insert an urge event. ``started_at`` is stored as UTC with a Z suffix."""
    event = replace(event, id=_new_id())
    _check(event)
    event = replace(event, started_at=to_utc_iso(parse_iso(event.started_at)))
    store.insert(UrgeEvent.TABLE, event.to_row())
    return event


def get_urge_events_by_date(store: LocalStore, date_local: date | str, clock: Clock) -> list[UrgeEvent]:
    start, end = clock.utc_range_for(date_local)
    rows = store.query(
        """
        SELECT * FROM urge_event
        WHERE started_at >= ? AND started_at < ?
        ORDER BY started_at ASC
        """,
        (start, end),
    )
    return [UrgeEvent.from_row(r) for r in rows]


def count_successes_by_date(store: LocalStore, date_local: date | str, clock: Clock) -> int:
    """Successful urge events on a local date; decides whether it is a success day."""
    start, end = clock.utc_range_for(date_local)
    row = store.query_one(
        """
        SELECT COUNT(*) AS count FROM urge_event
        WHERE started_at >= ? AND started_at < ?
          AND outcome = 'success'
        """,
        (start, end),
    )
    return int(row["count"]) if row else 0


def count_spend_avoided_by_date(store: LocalStore, date_local: date | str, clock: Clock) -> int:
    start, end = clock.utc_range_for(date_local)
    row = store.query_one(
        """
        SELECT COUNT(*) AS count FROM urge_event
        WHERE started_at >= ? AND started_at < ?
          AND urge_kind = 'spend'
          AND outcome = 'success'
        """,
        (start, end),
    )
    return int(row["count"]) if row else 0


def get_urge_events_in_range(
    store: LocalStore, start_date: date | str, end_date: date | str, clock: Clock
) -> list[UrgeEvent]:
    """Events within an inclusive local date range, oldest first."""
    range_start, _ = clock.utc_range_for(start_date)
    _, range_end = clock.utc_range_for(end_date)
    rows = store.query(
        """
        SELECT * FROM urge_event
        WHERE started_at >= ? AND started_at < ?
        ORDER BY started_at ASC
        """,
        (range_start, range_end),
    )
    return [UrgeEvent.from_row(r) for r in rows]


def get_all_urge_events(store: LocalStore) -> list[UrgeEvent]:
    rows = store.query("SELECT * FROM urge_event ORDER BY started_at ASC")
    return [UrgeEvent.from_row(r) for r in rows]


# ── Check-ins ─────────────────────────────────────────────────


def create_checkin(store: LocalStore, checkin: DailyCheckin) -> DailyCheckin:
    """Insert a check-in. A second check-in for the same date raises StorageError."""
    checkin = replace(checkin, id=_new_id())
    _check(checkin)
    store.insert(DailyCheckin.TABLE, checkin.to_row())
    return checkin


def get_checkin_by_date(store: LocalStore, date_local: date | str) -> DailyCheckin | None:
    row = store.query_one(
        "SELECT * FROM daily_checkin WHERE date_local = ? LIMIT 1",
        (as_date(date_local).isoformat(),),
    )
    return DailyCheckin.from_row(row) if row is not None else None


def get_checkins_in_range(
    store: LocalStore, start_date: date | str, end_date: date | str
) -> list[DailyCheckin]:
    rows = store.query(
        """
        SELECT * FROM daily_checkin
        WHERE date_local >= ? AND date_local <= ?
        ORDER BY date_local ASC
        """,
        (as_date(start_date).isoformat(), as_date(end_date).isoformat()),
    )
    return [DailyCheckin.from_row(r) for r in rows]


# ── Progress ──────────────────────────────────────────────────


def get_progress(store: LocalStore, date_local: date | str) -> ProgressRecord | None:
    row = store.query_one(
        "SELECT * FROM progress WHERE date_local = ? LIMIT 1",
        (as_date(date_local).isoformat(),),
    )
    return ProgressRecord.from_row(row) if row is not None else None


def get_latest_progress(store: LocalStore) -> ProgressRecord | None:
    row = store.query_one("SELECT * FROM progress ORDER BY date_local DESC LIMIT 1")
    return ProgressRecord.from_row(row) if row is not None else None


def upsert_progress(store: LocalStore, record: ProgressRecord) -> ProgressRecord:
    if not record.date_local:
        raise ValueError("date_local is required")
    store.insert(ProgressRecord.TABLE, record.to_row(), replace=True)
    return record


def get_all_progress_dates(store: LocalStore) -> list[str]:
    rows = store.query("SELECT date_local FROM progress ORDER BY date_local ASC")
    return [r["date_local"] for r in rows]


# ── Content ───────────────────────────────────────────────────


def mark_content_completed(store: LocalStore, content_id: str, clock: Clock) -> ContentProgress:
    """Record completion once; later calls keep the first timestamp."""
    if not content_id:
        raise ValueError("content_id is required")
    existing = get_content_progress(store, content_id)
    if existing is not None:
        return existing
    record = ContentProgress(content_id=content_id, completed_at=clock.utc_now_iso())
    store.insert(ContentProgress.TABLE, record.to_row())
    return record


def get_content_progress(store: LocalStore, content_id: str) -> ContentProgress | None:
    row = store.query_one(
        "SELECT * FROM content_progress WHERE content_id = ? LIMIT 1", (content_id,)
    )
    return ContentProgress.from_row(row) if row is not None else None


def get_all_content_progress(store: LocalStore) -> list[ContentProgress]:
    rows = store.query("SELECT * FROM content_progress ORDER BY completed_at ASC")
    return [ContentProgress.from_row(r) for r in rows]


def is_content_completed(store: LocalStore, content_id: str) -> bool:
    return get_content_progress(store, content_id) is not None


# ── Subscription ──────────────────────────────────────────────


def get_subscription(store: LocalStore) -> SubscriptionState | None:
    row = store.query_one(
        "SELECT * FROM subscription_state WHERE id = ? LIMIT 1", (SINGLETON_ID,)
    )
    return SubscriptionState.from_row(row) if row is not None else None


def upsert_subscription(store: LocalStore, state: SubscriptionState) -> SubscriptionState:
    """Replace the singleton subscription row wholesale."""
    state = replace(state, id=SINGLETON_ID)
    _check(state)
    store.insert(SubscriptionState.TABLE, state.to_row(), replace=True)
    return state
