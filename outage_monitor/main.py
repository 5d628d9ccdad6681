from __future__ import annotations

import argparse
import asyncio
import logging
import os
import random
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Awaitable, Callable

import httpx
import structlog

from outage_monitor.classifier import OutageSignal, classify
from outage_monitor.config import DEFAULT_CONFIG_PATH, Settings, build_settings, load_config
from outage_monitor.controller import Action, Phase, decide, derive_phase, recovery_delay_seconds
from outage_monitor.fetcher import FetchError, PlaywrightStatusFetcher
from outage_monitor.fingerprint import fingerprint
from outage_monitor.messages import build_outage_message, build_recovery_message
from outage_monitor.notifier import notify
from outage_monitor.raw_status import RawStatus
from outage_monitor.state import NotificationState, NotificationStore
from outage_monitor.telegram import TelegramTransport, TransportError

logger = structlog.get_logger(__name__)

FetchStatus = Callable[[], Awaitable[RawStatus]]


@dataclass(frozen=True)
class CycleOutcome:
    action: Action
    phase: Phase
    state: NotificationState
    rechecked: bool = False


def _sample(raw: RawStatus, settings: Settings, now: datetime) -> tuple[OutageSignal, str]:
    signal = classify(raw, now=now, keywords=settings.keywords, tz=settings.tz)
    return signal, fingerprint(raw)


async def run_cycle(
    *,
    fetch_status: FetchStatus,
    transport: TelegramTransport,
    store: NotificationStore,
    settings: Settings,
    clock: Callable[[], datetime] | None = None,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    rng: random.Random | None = None,
) -> CycleOutcome:
    """
    One polling cycle: fetch, classify, compare with the live message, publish.

    Recovery is only announced after a randomized wait and one confirming re-fetch.
    FetchError and TransportError propagate; the stored record is untouched in that case.
    """
    now_fn = clock or (lambda: datetime.now(settings.tz))

    state = store.load()
    phase = derive_phase(state)

    raw = await fetch_status()
    now = now_fn()
    signal, update_hash = _sample(raw, settings, now)
    decision = decide(phase, signal, fingerprint=update_hash, state=state)
    logger.info(
        "Status sampled",
        phase=phase.value,
        is_outage=signal.is_outage,
        category=signal.category.value,
        action=decision.action.value,
    )

    if decision.action is Action.NONE:
        return CycleOutcome(action=Action.NONE, phase=decision.next_phase, state=state)

    if decision.action is Action.NOTIFY_OUTAGE:
        new_state = await notify(
            transport,
            store,
            state,
            signal=signal,
            raw=raw,
            text=build_outage_message(raw, signal.category, now=now),
            today=now.date(),
            new_message_each_day=settings.new_message_each_day,
        )
        return CycleOutcome(action=Action.NOTIFY_OUTAGE, phase=decision.next_phase, state=new_state)

    delay = recovery_delay_seconds(
        rng,
        min_seconds=settings.recovery_min_seconds,
        max_seconds=settings.recovery_max_seconds,
    )
    logger.info("Outage no longer reported; confirming recovery", delay_minutes=round(delay / 60.0, 1))
    await sleep(delay)

    raw = await fetch_status()
    now = now_fn()
    signal, update_hash = _sample(raw, settings, now)
    decision = decide(Phase.PENDING_RECOVERY, signal, fingerprint=update_hash, state=state)
    logger.info(
        "Recovery re-check",
        is_outage=signal.is_outage,
        category=signal.category.value,
        action=decision.action.value,
    )

    if decision.action is Action.NOTIFY_RECOVERY:
        text = build_recovery_message(raw, now=now)
    else:
        text = build_outage_message(raw, signal.category, now=now)

    new_state = await notify(
        transport,
        store,
        state,
        signal=signal,
        raw=raw,
        text=text,
        today=now.date(),
        new_message_each_day=settings.new_message_each_day,
    )
    return CycleOutcome(action=decision.action, phase=decision.next_phase, state=new_state, rechecked=True)


async def run_once(settings: Settings) -> CycleOutcome:
    fetcher = PlaywrightStatusFetcher(
        shutdowns_page=settings.shutdowns_page,
        address=settings.address,
        timeout_seconds=settings.browser_timeout_seconds,
        tz=settings.tz,
    )
    store = NotificationStore(settings.state_path, address_key=settings.address.key)
    async with httpx.AsyncClient() as http_client:
        transport = TelegramTransport(http_client, settings.telegram)
        return await run_cycle(
            fetch_status=fetcher.fetch_status,
            transport=transport,
            store=store,
            settings=settings,
        )


def configure_logging(level: str) -> None:
    level_int = getattr(logging, str(level).upper(), logging.INFO)
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level_int),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Telegram token is embedded in the Bot API URL.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Electricity outage monitor (one polling cycle)")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to YAML config (default: $OUTAGE_MONITOR_CONFIG or the bundled config.yaml)",
    )
    parser.add_argument(
        "--reset-state",
        action="store_true",
        help="Forget the live message and exit; the next run starts a new message",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (INFO, WARNING, ...); overrides the config value",
    )
    args = parser.parse_args(argv)

    config = load_config(args.config)
    configure_logging(args.log_level or config.log_level)

    config_path = Path(args.config or os.getenv("OUTAGE_MONITOR_CONFIG", str(DEFAULT_CONFIG_PATH)))
    settings = build_settings(config, base_dir=config_path.resolve().parent)

    if args.reset_state:
        store = NotificationStore(settings.state_path, address_key=settings.address.key)
        removed = store.clear()
        logger.info("State reset", path=str(settings.state_path), removed=removed)
        return 0

    try:
        outcome = asyncio.run(run_once(settings))
    except FetchError as exc:
        logger.error("Fetch failed; cycle aborted", error=str(exc))
        return 1
    except TransportError as exc:
        logger.error("Telegram call failed; state left unchanged", error=str(exc))
        return 1

    logger.info(
        "Cycle complete",
        action=outcome.action.value,
        phase=outcome.phase.value,
        message_id=outcome.state.message_id,
        rechecked=outcome.rechecked,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
