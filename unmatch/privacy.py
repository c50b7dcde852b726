"""Analytics privacy contract.

Free-text notes and money amounts stay on the device. Analytics payloads are
built from an allow-list and checked against the forbidden set before they
leave this module. Backup export is not subject to this contract.
"""

from __future__ import annotations

from typing import Any, Mapping

from unmatch.models import DailyCheckin, UrgeEvent

FORBIDDEN_ANALYTICS_FIELDS = frozenset({"note", "spend_amount", "spent_amount"})

CHECKIN_EVENT_FIELDS = ("mood", "fatigue", "urge", "opened_at_night", "spent_today")
URGE_EVENT_FIELDS = (
    "from_screen",
    "urge_level",
    "urge_kind",
    "outcome",
    "protocol_completed",
    "trigger_tag",
    "spend_category",
    "spend_item_type",
)


def assert_analytics_safe(props: Mapping[str, Any]) -> None:
    """Raise ValueError if *props* carries a field analytics may never receive."""
    leaked = sorted(FORBIDDEN_ANALYTICS_FIELDS & set(props))
    if leaked:
        raise ValueError(f"Analytics payload contains forbidden fields: {', '.join(leaked)}")


def checkin_event_props(checkin: DailyCheckin) -> dict[str, Any]:
    props = {name: getattr(checkin, name) for name in CHECKIN_EVENT_FIELDS}
    props["has_note"] = bool(checkin.note)
    assert_analytics_safe(props)
    return props


def urge_event_props(event: UrgeEvent) -> dict[str, Any]:
    props = {name: getattr(event, name) for name in URGE_EVENT_FIELDS}
    assert_analytics_safe(props)
    return props
