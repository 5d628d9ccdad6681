from __future__ import annotations

import json
from dataclasses import dataclass, replace
from datetime import date
from pathlib import Path
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class NotificationState:
    address_key: str = ""
    message_id: str | None = None
    is_outage: bool = False
    published_at: date | None = None
    last_update_hash: str = ""

    def to_json(self) -> dict[str, Any]:
        return {
            "address_key": self.address_key,
            "message_id": self.message_id,
            "is_outage": self.is_outage,
            "published_at": self.published_at.isoformat() if self.published_at else None,
            "last_update_hash": self.last_update_hash,
        }


def _coerce_message_id(value: Any) -> str | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, str)):
        s = str(value).strip()
        return s or None
    return None


def _coerce_date(value: Any) -> date | None:
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        return None


def coerce_notification_state(raw: Any, *, address_key: str) -> NotificationState:
    """
    Best-effort decode for the record loaded from disk.
    Accepts the older camelCase layout ({"message_id", "isOutage", "publishedAt"}).
    """
    default_state = NotificationState(address_key=address_key)
    if not isinstance(raw, dict):
        return default_state

    stored_key = raw.get("address_key")
    if isinstance(stored_key, str) and stored_key and stored_key != address_key:
        logger.warning("State file belongs to another address; ignoring", stored=stored_key, configured=address_key)
        return default_state

    is_outage = raw.get("is_outage", raw.get("isOutage"))
    last_hash = raw.get("last_update_hash", raw.get("lastUpdateHash"))

    return NotificationState(
        address_key=address_key,
        message_id=_coerce_message_id(raw.get("message_id", raw.get("messageId"))),
        is_outage=is_outage if isinstance(is_outage, bool) else False,
        published_at=_coerce_date(raw.get("published_at", raw.get("publishedAt"))),
        last_update_hash=last_hash if isinstance(last_hash, str) else "",
    )


class NotificationStore:
    """Single JSON record at a fixed path; writes replace the file atomically."""

    def __init__(self, path: Path, *, address_key: str) -> None:
        self.path = Path(path)
        self.address_key = address_key

    def load(self) -> NotificationState:
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return NotificationState(address_key=self.address_key)
        except Exception as exc:
            logger.warning("Failed to read state file", path=str(self.path), error=str(exc))
            return NotificationState(address_key=self.address_key)
        return coerce_notification_state(raw, address_key=self.address_key)

    def save(self, state: NotificationState) -> None:
        if state.address_key != self.address_key:
            state = replace(state, address_key=self.address_key)
        write_state_atomic(self.path, state.to_json())

    def clear(self) -> bool:
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        return True


def write_state_atomic(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f"{path.name}.tmp")
    tmp.write_text(json.dumps(payload, ensure_ascii=False, sort_keys=True, indent=2), encoding="utf-8")
    tmp.replace(path)
