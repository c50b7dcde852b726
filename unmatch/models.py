"""Typed records for the six Unmatch tables.

Each record class maps one logical table. Column names are the dataclass
field names and match the underlying SQLite columns exactly, so
``from_row``/``to_row`` are lossless. Optional columns stay ``None`` in both
directions.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, ClassVar

SINGLETON_ID = "singleton"

URGE_KINDS = ("swipe", "check", "spend")
URGE_OUTCOMES = ("success", "ongoing", "fail")
SUBSCRIPTION_STATUSES = ("free", "trial", "active", "expired", "cancelled")
SUBSCRIPTION_PERIODS = ("monthly", "annual")


def _in_scale(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 1 <= value <= 5


def _flag(value: Any) -> int | None:
    """Store booleans as 0/1; keep None as None."""
    if value is None:
        return None
    return 1 if bool(value) else 0


class Record:
    """Shared row mapping for the table records."""

    TABLE: ClassVar[str]
    LOGICAL_KEY: ClassVar[str]
    PRIMARY_KEY: ClassVar[str]

    @classmethod
    def columns(cls) -> tuple[str, ...]:
        return tuple(f.name for f in fields(cls))  # type: ignore[arg-type]

    @classmethod
    def from_row(cls, row: Any) -> Any:
        """Build from a mapping or sqlite3.Row. Missing columns become None."""
        keys = set(row.keys())
        return cls(**{c: (row[c] if c in keys else None) for c in cls.columns()})

    def to_row(self) -> dict[str, Any]:
        return {c: getattr(self, c) for c in self.columns()}

    def validate(self) -> list[str]:
        return []


# ── Profile ───────────────────────────────────────────────────


@dataclass
class UserProfile(Record):
    TABLE: ClassVar[str] = "user_profile"
    LOGICAL_KEY: ClassVar[str] = "user_profile"
    PRIMARY_KEY: ClassVar[str] = "id"

    id: str = SINGLETON_ID
    created_at: str = ""
    locale: str = "en"
    notification_style: str = "normal"
    plan_selected: str | None = None
    goal_type: str = "reduce_swipe"
    spending_budget_weekly: float | None = None
    spending_budget_daily: float | None = None
    spending_limit_mode: str | None = None

    def validate(self) -> list[str]:
        errors = []
        if not self.created_at:
            errors.append("created_at is required")
        if not self.locale:
            errors.append("locale is required")
        if not self.goal_type:
            errors.append("goal_type is required")
        return errors


# ── Urge events ───────────────────────────────────────────────


@dataclass
class UrgeEvent(Record):
    TABLE: ClassVar[str] = "urge_event"
    LOGICAL_KEY: ClassVar[str] = "urge_events"
    PRIMARY_KEY: ClassVar[str] = "id"

    id: str = ""
    started_at: str = ""
    from_screen: str = ""
    urge_level: int = 3
    protocol_completed: int = 0
    urge_kind: str = "swipe"
    action_type: str | None = None
    action_id: str | None = None
    outcome: str | None = "ongoing"
    trigger_tag: str | None = None
    spend_category: str | None = None
    spend_item_type: str | None = None
    spend_amount: float | None = None

    def validate(self) -> list[str]:
        errors = []
        if not self.started_at:
            errors.append("started_at is required")
        if not _in_scale(self.urge_level):
            errors.append("urge_level must be an integer 1-5")
        if self.urge_kind not in URGE_KINDS:
            errors.append(f"Invalid urge_kind: {self.urge_kind}")
        if self.outcome is not None and self.outcome not in URGE_OUTCOMES:
            errors.append(f"Invalid outcome: {self.outcome}")
        if self.urge_kind != "spend" and (self.spend_category or self.spend_item_type):
            errors.append("spend fields are only valid for spend urges")
        return errors


# ── Check-ins ─────────────────────────────────────────────────


@dataclass
class DailyCheckin(Record):
    TABLE: ClassVar[str] = "daily_checkin"
    LOGICAL_KEY: ClassVar[str] = "daily_checkins"
    PRIMARY_KEY: ClassVar[str] = "id"

    id: str = ""
    date_local: str = ""
    mood: int = 3
    fatigue: int = 3
    urge: int = 3
    note: str | None = None
    opened_at_night: int | None = None
    spent_today: int | None = None
    spent_amount: float | None = None

    def __post_init__(self) -> None:
        self.opened_at_night = _flag(self.opened_at_night)
        self.spent_today = _flag(self.spent_today)

    def validate(self) -> list[str]:
        errors = []
        if not self.date_local:
            errors.append("date_local is required")
        for name in ("mood", "fatigue", "urge"):
            if not _in_scale(getattr(self, name)):
                errors.append(f"{name} must be an integer 1-5")
        return errors


# ── Progress ──────────────────────────────────────────────────


@dataclass
class ProgressRecord(Record):
    TABLE: ClassVar[str] = "progress"
    LOGICAL_KEY: ClassVar[str] = "progress"
    PRIMARY_KEY: ClassVar[str] = "date_local"

    date_local: str = ""
    streak_current: int = 0
    resist_count_total: int = 0
    rank_level: int = 1
    last_success_date: str | None = None
    spend_avoided_count_total: int = 0


# ── Content ───────────────────────────────────────────────────


@dataclass
class ContentProgress(Record):
    TABLE: ClassVar[str] = "content_progress"
    LOGICAL_KEY: ClassVar[str] = "content_progress"
    PRIMARY_KEY: ClassVar[str] = "content_id"

    content_id: str = ""
    completed_at: str = ""


# ── Subscription ──────────────────────────────────────────────


@dataclass
class SubscriptionState(Record):
    TABLE: ClassVar[str] = "subscription_state"
    LOGICAL_KEY: ClassVar[str] = "subscription_state"
    PRIMARY_KEY: ClassVar[str] = "id"

    id: str = SINGLETON_ID
    status: str = "free"
    product_id: str | None = None
    period: str | None = None
    started_at: str | None = None
    expires_at: str | None = None

    def validate(self) -> list[str]:
        errors = []
        if self.status not in SUBSCRIPTION_STATUSES:
            errors.append(f"Invalid status: {self.status}")
        if self.period is not None and self.period not in SUBSCRIPTION_PERIODS:
            errors.append(f"Invalid period: {self.period}")
        return errors


# Logical table key -> record type, in the fixed delete/insert order.
RECORD_TYPES: dict[str, type[Record]] = {
    "user_profile": UserProfile,
    "urge_events": UrgeEvent,
    "daily_checkins": DailyCheckin,
    "progress": ProgressRecord,
    "content_progress": ContentProgress,
    "subscription_state": SubscriptionState,
}

TABLE_KEYS: tuple[str, ...] = tuple(RECORD_TYPES)


# ── Backup envelope ───────────────────────────────────────────


@dataclass
class TableCounts:
    """Rows per logical table, shown to the user before an import commits."""

    user_profile: int = 0
    urge_events: int = 0
    daily_checkins: int = 0
    progress: int = 0
    content_progress: int = 0
    subscription_state: int = 0

    def to_dict(self) -> dict[str, int]:
        return {k: getattr(self, k) for k in TABLE_KEYS}

    def total(self) -> int:
        return sum(self.to_dict().values())

    def describe(self) -> str:
        """Human summary, e.g. '3 urge events, 2 check-ins'."""
        labels = {
            "urge_events": "urge events",
            "daily_checkins": "check-ins",
            "progress": "progress days",
            "content_progress": "course completions",
            "user_profile": "profile",
            "subscription_state": "subscription",
        }
        parts = [f"{getattr(self, k)} {labels[k]}" for k in labels if getattr(self, k) > 0]
        return ", ".join(parts) if parts else "no data"


@dataclass
class ExportEnvelope:
    version: int = 1
    exported_at: str = ""
    app_version: str = ""
    tables: dict[str, list[dict[str, Any]]] = field(
        default_factory=lambda: {k: [] for k in TABLE_KEYS}
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "exported_at": self.exported_at,
            "app_version": self.app_version,
            "tables": {k: list(self.tables.get(k, [])) for k in TABLE_KEYS},
        }

    def counts(self) -> TableCounts:
        return TableCounts(**{k: len(self.tables.get(k, [])) for k in TABLE_KEYS})
