"""Data root, timezone, clock and path helpers for Unmatch."""

from __future__ import annotations

import os
from datetime import date, datetime, time, timedelta, timezone
from pathlib import Path
from typing import Callable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from unmatch.fileio import read_yaml

BACKUP_FILENAME = "unmatch-backup.json"


def workspace_root() -> Path:
    """Get the data root directory (holds the database and settings.yaml)."""
    return Path(
        os.environ.get("UNMATCH_ROOT", str(Path.home() / ".unmatch"))
    ).expanduser().resolve()


def resolve_timezone(name: str | None) -> ZoneInfo:
    """Resolve an IANA name, falling back to $TZ and then UTC."""
    for candidate in (name, os.environ.get("TZ")):
        if not candidate:
            continue
        try:
            return ZoneInfo(str(candidate).lstrip(":"))
        except (ZoneInfoNotFoundError, ValueError):
            continue
    return ZoneInfo("UTC")


def get_user_timezone(root: Path | None = None) -> ZoneInfo:
    """Get the user's timezone from settings.yaml."""
    if root is None:
        root = workspace_root()
    settings = read_yaml(settings_path(root))
    return resolve_timezone(settings.get("timezone"))


# ── Time helpers ──────────────────────────────────────────────


def to_utc_iso(dt: datetime) -> str:
    """Format as UTC ISO-8601 with milliseconds and a Z suffix."""
    if dt.tzinfo is None:
        raise ValueError("naive datetime cannot be converted to UTC")
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso(ts: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    s = str(ts).strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def as_date(value: date | str) -> date:
    """Accept a date or a YYYY-MM-DD string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


class Clock:
    """The single source of "now" and "today".

    Local dates always come from midnight in ``tz``. Pass ``now_fn`` to pin
    the time in tests.
    """

    def __init__(
        self,
        tz: ZoneInfo | None = None,
        now_fn: Callable[[], datetime] | None = None,
    ) -> None:
        self.tz = tz or ZoneInfo("UTC")
        self._now_fn = now_fn

    def now(self) -> datetime:
        if self._now_fn is None:
            return datetime.now(self.tz)
        value = self._now_fn()
        if value.tzinfo is None:
            value = value.replace(tzinfo=self.tz)
        return value.astimezone(self.tz)

    def today(self) -> date:
        return self.now().date()

    def today_str(self) -> str:
        return self.today().isoformat()

    def utc_now_iso(self) -> str:
        return to_utc_iso(self.now())

    def local_date_of(self, ts: str) -> date:
        """Local calendar date of a stored UTC timestamp."""
        return parse_iso(ts).astimezone(self.tz).date()

    def utc_range_for(self, day: date | str) -> tuple[str, str]:
        """UTC [start, end) bounds of a local calendar day.

        Both bounds are local midnights, so DST days span 23 or 25 hours.
        """
        d = as_date(day)
        start = datetime.combine(d, time.min, tzinfo=self.tz)
        end = datetime.combine(d + timedelta(days=1), time.min, tzinfo=self.tz)
        return to_utc_iso(start), to_utc_iso(end)


def default_clock(root: Path | None = None) -> Clock:
    return Clock(get_user_timezone(root))


# ── Path helpers ──────────────────────────────────────────────

def settings_path(root: Path | None = None) -> Path:
    if root is None:
        root = workspace_root()
    return root / "settings.yaml"


def db_path(root: Path | None = None) -> Path:
    if root is None:
        root = workspace_root()
    return root / "unmatch.db"


def cache_dir(root: Path | None = None) -> Path:
    """Transient location for export hand-off; may be cleared at any time."""
    override = os.environ.get("UNMATCH_CACHE_DIR")
    if override:
        return Path(override).expanduser().resolve()
    if root is None:
        root = workspace_root()
    return root / "cache"


def backup_path(root: Path | None = None) -> Path:
    return cache_dir(root) / BACKUP_FILENAME
