from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class HouseStatus:
    sub_type: str = ""
    start_date: str | None = None
    end_date: str | None = None
    # Provider "type" field; display-only.
    outage_type: str = ""


@dataclass(frozen=True)
class RawStatus:
    house: HouseStatus | None
    update_timestamp: str | None = None


def _coerce_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    return str(value).strip()


def _coerce_optional_text(value: Any) -> str | None:
    s = _coerce_text(value)
    return s or None


def raw_status_from_payload(payload: Any, *, house: str) -> RawStatus:
    """
    Best-effort decode of the provider's `getHomeNum` response.

    The provider answers with {"data": {"<house>": {...}}, "updateTimestamp": "..."}.
    Unknown or oddly-typed fields are coerced instead of rejected: the page is scraped,
    not a contract. A missing house record is a valid "no data" status.
    """
    if not isinstance(payload, dict):
        raise ValueError(f"Provider payload must be a JSON object, got {type(payload).__name__}")

    update_timestamp = _coerce_optional_text(payload.get("updateTimestamp"))

    data = payload.get("data")
    record = data.get(str(house)) if isinstance(data, dict) else None
    if not isinstance(record, dict):
        return RawStatus(house=None, update_timestamp=update_timestamp)

    return RawStatus(
        house=HouseStatus(
            sub_type=_coerce_text(record.get("sub_type")),
            start_date=_coerce_optional_text(record.get("start_date")),
            end_date=_coerce_optional_text(record.get("end_date")),
            outage_type=_coerce_text(record.get("type")),
        ),
        update_timestamp=update_timestamp,
    )
