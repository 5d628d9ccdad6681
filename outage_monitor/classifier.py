from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from enum import Enum

from outage_monitor.raw_status import RawStatus


class OutageCategory(str, Enum):
    EMERGENCY = "emergency"
    URGENT = "urgent"
    STABILIZATION = "stabilization"
    SCHEDULED = "scheduled"
    UNSPECIFIED = "unspecified"


@dataclass(frozen=True)
class OutageSignal:
    is_outage: bool
    category: OutageCategory


@dataclass(frozen=True)
class ClassifierKeywords:
    # Matching is lowercase substring search; stems keep Ukrainian inflections matching.
    absent: list[str] = field(default_factory=lambda: ["відсутн", "немає", "нема", "none", "no outage"])
    emergency: list[str] = field(default_factory=lambda: ["авар", "emergency", "accident"])
    urgent: list[str] = field(default_factory=lambda: ["екстр", "терміно", "позапланов", "urgent"])
    stabilization: list[str] = field(default_factory=lambda: ["стабілізац", "графік", "stabiliz", "schedule grid"])
    scheduled: list[str] = field(default_factory=lambda: ["планов", "scheduled", "planned"])

    def category_rules(self) -> list[tuple[OutageCategory, list[str]]]:
        # Priority order: first match wins.
        return [
            (OutageCategory.EMERGENCY, self.emergency),
            (OutageCategory.URGENT, self.urgent),
            (OutageCategory.STABILIZATION, self.stabilization),
            (OutageCategory.SCHEDULED, self.scheduled),
        ]


DEFAULT_KEYWORDS = ClassifierKeywords()


_PROVIDER_DATETIME_FORMATS = (
    "%H:%M %d.%m.%Y",
    "%d.%m.%Y %H:%M",
    "%d.%m.%Y %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d %H:%M:%S",
)


def parse_provider_datetime(value: str | None, *, tz: tzinfo = timezone.utc) -> datetime | None:
    """
    Parse a provider-formatted timestamp. Naive values are taken as site-local (`tz`).
    Returns None for anything unparseable; never raises.
    """
    s = (value or "").strip()
    if not s:
        return None

    for fmt in _PROVIDER_DATETIME_FORMATS:
        try:
            return datetime.strptime(s, fmt).replace(tzinfo=tz)
        except ValueError:
            continue

    s_iso = s
    if s_iso.endswith("Z"):
        s_iso = s_iso[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s_iso)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=tz)
    return dt


def categorize(sub_type: str | None, *, keywords: ClassifierKeywords = DEFAULT_KEYWORDS) -> OutageCategory:
    sub = (sub_type or "").strip().lower()
    if not sub:
        return OutageCategory.UNSPECIFIED
    for category, terms in keywords.category_rules():
        if any(t and t in sub for t in terms):
            return category
    return OutageCategory.UNSPECIFIED


def _is_absent_label(sub: str, keywords: ClassifierKeywords) -> bool:
    if not sub or sub == "-":
        return True
    return any(t and t in sub for t in keywords.absent)


def classify(
    raw: RawStatus,
    *,
    now: datetime,
    keywords: ClassifierKeywords = DEFAULT_KEYWORDS,
    tz: tzinfo = timezone.utc,
) -> OutageSignal:
    """
    Map one scraped status to an outage signal.

    Outage requires: a house record, a sub_type that is not an "absent" label,
    at least one of start/end date, and an end date that has not elapsed.
    An end date that does not parse keeps the outage flagged.
    """
    house = raw.house
    if house is None:
        return OutageSignal(is_outage=False, category=OutageCategory.UNSPECIFIED)

    category = categorize(house.sub_type, keywords=keywords)
    sub = (house.sub_type or "").strip().lower()

    if _is_absent_label(sub, keywords):
        return OutageSignal(is_outage=False, category=category)

    if not house.start_date and not house.end_date:
        return OutageSignal(is_outage=False, category=category)

    if house.end_date:
        end = parse_provider_datetime(house.end_date, tz=tz)
        if end is not None and end < now:
            return OutageSignal(is_outage=False, category=category)

    return OutageSignal(is_outage=True, category=category)
