from __future__ import annotations

from datetime import datetime
from html import escape

from outage_monitor.classifier import OutageCategory
from outage_monitor.raw_status import RawStatus

UNKNOWN = "Невідомо"

CATEGORY_TITLES = {
    OutageCategory.EMERGENCY: "🔴🚨 <b>Аварійне відключення</b>",
    OutageCategory.URGENT: "🔥🚨 <b>Екстрене відключення</b>",
    OutageCategory.STABILIZATION: "🟡🗓️ <b>Стабілізаційне відключення</b>",
    OutageCategory.SCHEDULED: "🔵🗓️ <b>Планове відключення</b>",
    OutageCategory.UNSPECIFIED: "⚡️ <b>Зафіксовано відключення</b>",
}


def format_local_time(now: datetime) -> str:
    return now.strftime("%H:%M %d.%m.%Y")


def _value(s: str | None) -> str:
    return escape(s) if s else UNKNOWN


def _footer(raw: RawStatus, now: datetime) -> list[str]:
    return [
        f"🔄 <i>Дата оновлення інформації {_value(raw.update_timestamp)}</i>",
        f"💬 <i>Дата оновлення повідомлення {format_local_time(now)}</i>",
    ]


def build_outage_message(raw: RawStatus, category: OutageCategory, *, now: datetime) -> str:
    house = raw.house
    start = house.start_date if house else None
    end = house.end_date if house else None
    lines = [
        CATEGORY_TITLES.get(category, CATEGORY_TITLES[OutageCategory.UNSPECIFIED]),
        "",
        f"🪫 <b>Час початку:</b> <code>{_value(start)}</code>",
        f"🔌 <b>Орієнтовний час відновлення:</b> <code>{_value(end)}</code>",
        "",
    ]
    lines.extend(_footer(raw, now))
    return "\n".join(lines)


def build_recovery_message(raw: RawStatus, *, now: datetime) -> str:
    lines = [
        "🟢💡 <b>Світлопостачання відновлено</b>",
        "",
        "⚡️ <i>Електроенергія подається у штатному режимі</i>",
        "",
    ]
    lines.extend(_footer(raw, now))
    return "\n".join(lines)
