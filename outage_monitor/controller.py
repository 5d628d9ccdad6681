from __future__ import annotations

import random
from dataclasses import dataclass
from enum import Enum

from outage_monitor.classifier import OutageSignal
from outage_monitor.state import NotificationState


DEFAULT_RECOVERY_MIN_SECONDS = 5 * 60
DEFAULT_RECOVERY_MAX_SECONDS = 10 * 60


class Phase(str, Enum):
    STABLE = "stable"
    OUTAGE = "outage"
    PENDING_RECOVERY = "pending_recovery"


class Action(str, Enum):
    NONE = "none"
    NOTIFY_OUTAGE = "notify_outage"
    CONFIRM_RECOVERY = "confirm_recovery"
    NOTIFY_RECOVERY = "notify_recovery"


@dataclass(frozen=True)
class Decision:
    next_phase: Phase
    action: Action


def derive_phase(state: NotificationState) -> Phase:
    """
    The persisted record is the only source of truth. PENDING_RECOVERY lives only
    inside one run; a restart during the wait re-derives OUTAGE and re-checks later.
    """
    if state.is_outage and state.message_id:
        return Phase.OUTAGE
    return Phase.STABLE


def decide(phase: Phase, signal: OutageSignal, *, fingerprint: str, state: NotificationState) -> Decision:
    if phase is Phase.STABLE:
        if signal.is_outage:
            return Decision(Phase.OUTAGE, Action.NOTIFY_OUTAGE)
        return Decision(Phase.STABLE, Action.NONE)

    if phase is Phase.OUTAGE:
        if not signal.is_outage:
            return Decision(Phase.PENDING_RECOVERY, Action.CONFIRM_RECOVERY)
        if fingerprint == state.last_update_hash:
            return Decision(Phase.OUTAGE, Action.NONE)
        return Decision(Phase.OUTAGE, Action.NOTIFY_OUTAGE)

    if phase is Phase.PENDING_RECOVERY:
        # Outage on re-check: fresh outage signal; the notifier still suppresses an unchanged fingerprint.
        if signal.is_outage:
            return Decision(Phase.OUTAGE, Action.NOTIFY_OUTAGE)
        return Decision(Phase.STABLE, Action.NOTIFY_RECOVERY)

    raise ValueError(f"Unknown phase: {phase!r}")


def recovery_delay_seconds(
    rng: random.Random | None = None,
    *,
    min_seconds: float = DEFAULT_RECOVERY_MIN_SECONDS,
    max_seconds: float = DEFAULT_RECOVERY_MAX_SECONDS,
) -> float:
    lo = max(0.0, float(min_seconds))
    hi = max(lo, float(max_seconds))
    return (rng or random).uniform(lo, hi)
