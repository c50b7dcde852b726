"""Progress rules: rank, day success, streak and counter guards.

Pure functions with no store or clock access. The same rules run over live
data and over a restored snapshot, so both must agree.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Any, Iterable
from zoneinfo import ZoneInfo

from unmatch.workspace import as_date, parse_iso

RANK_START = 1
RANK_CAP = 30
RESISTS_PER_LEVEL = 5

OUTCOME_SUCCESS = "success"
URGE_KIND_SPEND = "spend"


def calculate_rank(lifetime_resist_total: int) -> int:
    """Rank from the lifetime resist count.

    floor(total / RESISTS_PER_LEVEL) + RANK_START, capped at RANK_CAP.
    Negative totals return RANK_START.
    """
    if lifetime_resist_total < 0:
        return RANK_START
    computed = lifetime_resist_total // RESISTS_PER_LEVEL + RANK_START
    return min(computed, RANK_CAP)


def is_day_success(success_count: int, daily_task_completed: bool) -> bool:
    return success_count >= 1 or bool(daily_task_completed)


def calculate_streak(success_dates: Iterable[date | str], today: date | str) -> int:
    """Count consecutive success days ending on (and including) *today*.

    Steps back one calendar day at a time on date values, so DST changes
    cannot skip or repeat a day. Returns 0 when today is not a success day.
    """
    days = {as_date(d) for d in success_dates}
    current = as_date(today)
    streak = 0
    while current in days:
        streak += 1
        current -= timedelta(days=1)
    return streak


def should_increment_resist(outcome: str | None) -> bool:
    return outcome == OUTCOME_SUCCESS


def should_increment_spend_avoided(urge_kind: str | None, outcome: str | None) -> bool:
    return urge_kind == URGE_KIND_SPEND and outcome == OUTCOME_SUCCESS


def success_dates_from(
    urge_events: Iterable[Any],
    content_progress: Iterable[Any],
    tz: ZoneInfo,
) -> set[date]:
    """Local dates that count as success days.

    Accepts record objects or row dicts. A day qualifies through a successful
    urge event or a content completion; failures never remove a day.
    """
    successes: dict[date, int] = {}
    for ev in urge_events:
        outcome = _field(ev, "outcome")
        started_at = _field(ev, "started_at")
        if not started_at:
            continue
        day = parse_iso(started_at).astimezone(tz).date()
        if should_increment_resist(outcome):
            successes[day] = successes.get(day, 0) + 1

    task_days: set[date] = set()
    for cp in content_progress:
        completed_at = _field(cp, "completed_at")
        if completed_at:
            task_days.add(parse_iso(completed_at).astimezone(tz).date())

    candidates = set(successes) | task_days
    return {
        d for d in candidates
        if is_day_success(successes.get(d, 0), d in task_days)
    }


def _field(record: Any, name: str) -> Any:
    if isinstance(record, dict):
        return record.get(name)
    return getattr(record, name, None)
