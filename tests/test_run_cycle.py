from __future__ import annotations

import random
from datetime import date, datetime

import httpx
import pytest

from conftest import FakeFetcher, FakeTelegramApi, RecordingSleep, house
from outage_monitor.config import Settings
from outage_monitor.controller import Action, Phase
from outage_monitor.fetcher import FetchError
from outage_monitor.fingerprint import fingerprint
from outage_monitor.main import run_cycle
from outage_monitor.raw_status import RawStatus
from outage_monitor.state import NotificationState, NotificationStore
from outage_monitor.telegram import TelegramTransport, TransportError

OUTAGE_RAW = house("аварійне", start="2024-01-01 10:00", end="2024-01-01 14:00", ts="11:50 01.01.2024")
NO_DATA = house("", ts="12:01 01.01.2024")


async def _run(
    *,
    telegram_api: FakeTelegramApi,
    fetcher: FakeFetcher,
    store: NotificationStore,
    settings: Settings,
    now: datetime,
    sleep: RecordingSleep | None = None,
):
    async with telegram_api.client() as client:
        return await run_cycle(
            fetch_status=fetcher.fetch_status,
            transport=TelegramTransport(client, settings.telegram),
            store=store,
            settings=settings,
            clock=lambda: now,
            sleep=sleep or RecordingSleep(),
            rng=random.Random(42),
        )


def _live_outage(store: NotificationStore, raw: RawStatus) -> NotificationState:
    state = NotificationState(
        address_key=store.address_key,
        message_id="7",
        is_outage=True,
        published_at=date(2024, 1, 1),
        last_update_hash=fingerprint(raw),
    )
    store.save(state)
    return state


@pytest.mark.asyncio
async def test_no_outage_evidence_does_nothing(
    telegram_api: FakeTelegramApi, settings: Settings, store: NotificationStore, fixed_now: datetime
) -> None:
    fetcher = FakeFetcher(house("", start=None, end=None))
    outcome = await _run(telegram_api=telegram_api, fetcher=fetcher, store=store, settings=settings, now=fixed_now)

    assert outcome.action is Action.NONE
    assert outcome.phase is Phase.STABLE
    assert telegram_api.calls == []
    assert not store.path.exists()


@pytest.mark.asyncio
async def test_first_outage_sends_one_message(
    telegram_api: FakeTelegramApi, settings: Settings, store: NotificationStore, fixed_now: datetime
) -> None:
    fetcher = FakeFetcher(OUTAGE_RAW)
    outcome = await _run(telegram_api=telegram_api, fetcher=fetcher, store=store, settings=settings, now=fixed_now)

    assert outcome.action is Action.NOTIFY_OUTAGE
    assert telegram_api.methods == ["sendMessage"]
    text = telegram_api.calls[0][1]["text"]
    assert "Аварійне відключення" in text
    assert "2024-01-01 14:00" in text
    assert "11:50 01.01.2024" in text

    stored = store.load()
    assert stored.is_outage is True
    assert stored.message_id == "101"
    assert stored.published_at == date(2024, 1, 1)


@pytest.mark.asyncio
async def test_unchanged_outage_makes_no_transport_calls(
    telegram_api: FakeTelegramApi, settings: Settings, store: NotificationStore, fixed_now: datetime
) -> None:
    prior = _live_outage(store, OUTAGE_RAW)
    republished = house("Аварійне", start="2024-01-01 10:00", end="2024-01-01 14:00", ts="11:59 01.01.2024")
    outcome = await _run(
        telegram_api=telegram_api, fetcher=FakeFetcher(republished), store=store, settings=settings, now=fixed_now
    )

    assert outcome.action is Action.NONE
    assert outcome.phase is Phase.OUTAGE
    assert telegram_api.calls == []
    assert store.load() == prior


@pytest.mark.asyncio
async def test_changed_outage_edits_live_message(
    telegram_api: FakeTelegramApi, settings: Settings, store: NotificationStore, fixed_now: datetime
) -> None:
    _live_outage(store, OUTAGE_RAW)
    extended = house("Аварійне", start="2024-01-01 10:00", end="2024-01-01 18:00")
    outcome = await _run(
        telegram_api=telegram_api, fetcher=FakeFetcher(extended), store=store, settings=settings, now=fixed_now
    )

    assert outcome.action is Action.NOTIFY_OUTAGE
    assert telegram_api.methods == ["editMessageText"]
    assert telegram_api.calls[0][1]["message_id"] == 7
    assert store.load().last_update_hash == fingerprint(extended)


@pytest.mark.asyncio
async def test_recovery_is_confirmed_after_one_delayed_recheck(
    telegram_api: FakeTelegramApi, settings: Settings, store: NotificationStore, fixed_now: datetime
) -> None:
    _live_outage(store, OUTAGE_RAW)
    fetcher = FakeFetcher(RawStatus(house=None), NO_DATA)
    sleep = RecordingSleep()
    outcome = await _run(
        telegram_api=telegram_api, fetcher=fetcher, store=store, settings=settings, now=fixed_now, sleep=sleep
    )

    assert fetcher.calls == 2
    assert len(sleep.delays) == 1
    assert 300.0 <= sleep.delays[0] <= 600.0
    assert outcome.action is Action.NOTIFY_RECOVERY
    assert outcome.phase is Phase.STABLE
    assert outcome.rechecked is True
    assert telegram_api.methods == ["editMessageText"]
    assert "Світлопостачання відновлено" in telegram_api.calls[0][1]["text"]

    stored = store.load()
    assert stored.is_outage is False
    assert stored.message_id == "7"


@pytest.mark.asyncio
async def test_recheck_showing_outage_again_is_a_fresh_outage(
    telegram_api: FakeTelegramApi, settings: Settings, store: NotificationStore, fixed_now: datetime
) -> None:
    _live_outage(store, OUTAGE_RAW)
    relapse = house("Екстрене відключення", start="2024-01-01 12:00", end="2024-01-01 20:00")
    fetcher = FakeFetcher(NO_DATA, relapse)
    outcome = await _run(telegram_api=telegram_api, fetcher=fetcher, store=store, settings=settings, now=fixed_now)

    assert fetcher.calls == 2
    assert outcome.action is Action.NOTIFY_OUTAGE
    assert outcome.phase is Phase.OUTAGE
    assert telegram_api.methods == ["editMessageText"]
    assert "Екстрене відключення" in telegram_api.calls[0][1]["text"]
    stored = store.load()
    assert stored.is_outage is True
    assert stored.last_update_hash == fingerprint(relapse)


@pytest.mark.asyncio
async def test_recheck_with_same_outage_is_suppressed(
    telegram_api: FakeTelegramApi, settings: Settings, store: NotificationStore, fixed_now: datetime
) -> None:
    prior = _live_outage(store, OUTAGE_RAW)
    fetcher = FakeFetcher(NO_DATA, OUTAGE_RAW)
    outcome = await _run(telegram_api=telegram_api, fetcher=fetcher, store=store, settings=settings, now=fixed_now)

    assert outcome.rechecked is True
    assert telegram_api.calls == []
    assert store.load() == prior


@pytest.mark.asyncio
async def test_elapsed_window_counts_as_recovery(
    telegram_api: FakeTelegramApi, settings: Settings, store: NotificationStore
) -> None:
    _live_outage(store, OUTAGE_RAW)
    later = datetime(2024, 1, 1, 15, 0, tzinfo=settings.tz)
    fetcher = FakeFetcher(OUTAGE_RAW, OUTAGE_RAW)
    outcome = await _run(telegram_api=telegram_api, fetcher=fetcher, store=store, settings=settings, now=later)

    assert outcome.action is Action.NOTIFY_RECOVERY
    assert store.load().is_outage is False


@pytest.mark.asyncio
async def test_fetch_error_on_recheck_leaves_state_untouched(
    telegram_api: FakeTelegramApi, settings: Settings, store: NotificationStore, fixed_now: datetime
) -> None:
    prior = _live_outage(store, OUTAGE_RAW)
    fetcher = FakeFetcher(NO_DATA, FetchError("browser_error: TimeoutError"))
    with pytest.raises(FetchError):
        await _run(telegram_api=telegram_api, fetcher=fetcher, store=store, settings=settings, now=fixed_now)

    assert telegram_api.calls == []
    assert store.load() == prior


@pytest.mark.asyncio
async def test_fetch_error_aborts_before_classification(
    telegram_api: FakeTelegramApi, settings: Settings, store: NotificationStore, fixed_now: datetime
) -> None:
    fetcher = FakeFetcher(FetchError("CSRF token not found on shutdowns page"))
    with pytest.raises(FetchError):
        await _run(telegram_api=telegram_api, fetcher=fetcher, store=store, settings=settings, now=fixed_now)
    assert not store.path.exists()


@pytest.mark.asyncio
async def test_transport_error_propagates_without_state_change(
    telegram_api: FakeTelegramApi, settings: Settings, store: NotificationStore, fixed_now: datetime
) -> None:
    telegram_api.fail_with = httpx.Response(500, json={"ok": False, "description": "Internal Server Error"})
    with pytest.raises(TransportError):
        await _run(
            telegram_api=telegram_api, fetcher=FakeFetcher(OUTAGE_RAW), store=store, settings=settings, now=fixed_now
        )
    assert telegram_api.methods == ["sendMessage"]
    assert not store.path.exists()
