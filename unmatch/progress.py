"""Progress pipeline: record an event, then recompute today's progress row.

refresh_progress derives everything from the full tables through the rules
in unmatch.rules, so a restored snapshot yields the same numbers as the live
data it was exported from.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any

from unmatch.models import ContentProgress, DailyCheckin, ProgressRecord, UrgeEvent
from unmatch.repositories import (
    create_checkin,
    create_urge_event,
    get_all_content_progress,
    get_all_urge_events,
    get_checkin_by_date,
    get_latest_progress,
    mark_content_completed,
    upsert_progress,
)
from unmatch.rules import (
    RANK_CAP,
    calculate_rank,
    calculate_streak,
    should_increment_resist,
    should_increment_spend_avoided,
    success_dates_from,
)
from unmatch.store import LocalStore
from unmatch.workspace import Clock

logger = logging.getLogger(__name__)


def compute_progress(
    urge_events: list[Any],
    content_progress: list[Any],
    clock: Clock,
) -> ProgressRecord:
    """Today's progress from record lists (rows or record objects)."""
    resist_total = 0
    spend_avoided_total = 0
    for ev in urge_events:
        outcome = ev["outcome"] if isinstance(ev, dict) else ev.outcome
        kind = ev["urge_kind"] if isinstance(ev, dict) else ev.urge_kind
        if should_increment_resist(outcome):
            resist_total += 1
        if should_increment_spend_avoided(kind, outcome):
            spend_avoided_total += 1

    success_dates = success_dates_from(urge_events, content_progress, clock.tz)
    today = clock.today()
    past = [d for d in success_dates if d <= today]

    return ProgressRecord(
        date_local=today.isoformat(),
        streak_current=calculate_streak(success_dates, today),
        resist_count_total=resist_total,
        rank_level=calculate_rank(resist_total),
        last_success_date=max(past).isoformat() if past else None,
        spend_avoided_count_total=spend_avoided_total,
    )


def refresh_progress(store: LocalStore, clock: Clock) -> ProgressRecord:
    """Recompute and upsert today's progress row."""
    record = compute_progress(
        get_all_urge_events(store),
        get_all_content_progress(store),
        clock,
    )
    previous = get_latest_progress(store)
    if previous is not None and previous.rank_level > record.rank_level:
        # Rank never decreases.
        record = replace(record, rank_level=min(previous.rank_level, RANK_CAP))
    upsert_progress(store, record)
    return record


def log_urge_event(store: LocalStore, event: UrgeEvent, clock: Clock) -> tuple[UrgeEvent, ProgressRecord]:
    """Store a new urge event and refresh progress."""
    if not event.started_at:
        event = replace(event, started_at=clock.utc_now_iso())
    created = create_urge_event(store, event)
    progress = refresh_progress(store, clock)
    logger.debug("Logged %s urge with outcome %s", created.urge_kind, created.outcome)
    return created, progress


def complete_content(store: LocalStore, content_id: str, clock: Clock) -> tuple[ContentProgress, ProgressRecord]:
    """Mark today's content task done; the day becomes a success day."""
    record = mark_content_completed(store, content_id, clock)
    return record, refresh_progress(store, clock)


def submit_checkin(store: LocalStore, checkin: DailyCheckin, clock: Clock) -> tuple[DailyCheckin, bool]:
    """Create today's check-in. Returns (checkin, created); at most one per date."""
    today = clock.today_str()
    existing = get_checkin_by_date(store, today)
    if existing is not None:
        return existing, False
    return create_checkin(store, replace(checkin, date_local=today)), True


def progress_summary(store: LocalStore, clock: Clock) -> dict[str, Any]:
    """Figures shown on the status screens."""
    record = compute_progress(
        get_all_urge_events(store),
        get_all_content_progress(store),
        clock,
    )
    return {
        "today": clock.today_str(),
        "streak": record.streak_current,
        "rank": record.rank_level,
        "rank_cap": RANK_CAP,
        "resist_total": record.resist_count_total,
        "spend_avoided_total": record.spend_avoided_count_total,
        "last_success_date": record.last_success_date,
        "checked_in_today": get_checkin_by_date(store, clock.today()) is not None,
    }
