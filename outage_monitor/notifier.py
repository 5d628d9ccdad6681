from __future__ import annotations

from datetime import date

import structlog

from outage_monitor.classifier import OutageSignal
from outage_monitor.fingerprint import fingerprint
from outage_monitor.raw_status import RawStatus
from outage_monitor.state import NotificationState, NotificationStore
from outage_monitor.telegram import TelegramTransport

logger = structlog.get_logger(__name__)


def is_duplicate_outage(state: NotificationState, *, signal: OutageSignal, update_hash: str) -> bool:
    return bool(
        signal.is_outage
        and state.is_outage
        and state.message_id
        and state.last_update_hash == update_hash
    )


def choose_operation(state: NotificationState, *, today: date, new_message_each_day: bool = False) -> str:
    if not state.message_id:
        return "send"
    if new_message_each_day and state.published_at != today:
        return "send"
    return "edit"


async def notify(
    transport: TelegramTransport,
    store: NotificationStore,
    state: NotificationState,
    *,
    signal: OutageSignal,
    raw: RawStatus,
    text: str,
    today: date,
    new_message_each_day: bool = False,
) -> NotificationState:
    """
    Publish `text` as the live message and persist the acknowledged state.

    An outage whose fingerprint matches the live outage message is a no-op.
    Transport failures propagate as TransportError before anything is written.
    """
    update_hash = fingerprint(raw)
    if is_duplicate_outage(state, signal=signal, update_hash=update_hash):
        logger.info("Outage unchanged; notification suppressed", message_id=state.message_id)
        return state

    op = choose_operation(state, today=today, new_message_each_day=new_message_each_day)
    if op == "send":
        message_id = await transport.send_message(text)
    else:
        message_id = await transport.edit_message(str(state.message_id), text)

    new_state = NotificationState(
        address_key=store.address_key,
        message_id=message_id,
        is_outage=bool(signal.is_outage),
        published_at=today,
        last_update_hash=update_hash,
    )
    store.save(new_state)
    logger.info(
        "Notification published",
        op=op,
        message_id=message_id,
        is_outage=new_state.is_outage,
        category=signal.category.value,
    )
    return new_state
