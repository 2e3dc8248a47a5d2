from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

from ..models import ReservationStatus
from .errors import InvalidStateError
from .policies import check_cancel_window, check_started


class Actor(StrEnum):
    USER = "user"
    ADMIN = "admin"


@dataclass(frozen=True)
class TransitionRule:
    requires_started: bool = False
    cancel_window: bool = False


S = ReservationStatus

TRANSITIONS: dict[tuple[ReservationStatus, ReservationStatus, Actor], TransitionRule] = {
    (S.CONFIRMED, S.CANCELLED, Actor.USER): TransitionRule(cancel_window=True),
    (S.CONFIRMED, S.SEATED, Actor.ADMIN): TransitionRule(requires_started=True),
    (S.CONFIRMED, S.COMPLETED, Actor.ADMIN): TransitionRule(requires_started=True),
    (S.SEATED, S.COMPLETED, Actor.ADMIN): TransitionRule(requires_started=True),
    (S.CONFIRMED, S.NO_SHOW, Actor.ADMIN): TransitionRule(requires_started=True),
    (S.SEATED, S.NO_SHOW, Actor.ADMIN): TransitionRule(requires_started=True),
    (S.CONFIRMED, S.CANCELLED, Actor.ADMIN): TransitionRule(),
    (S.SEATED, S.CANCELLED, Actor.ADMIN): TransitionRule(),
}

LIVE_STATUSES = frozenset({S.CONFIRMED, S.SEATED})
RELEASING_STATUSES = frozenset({S.CANCELLED, S.COMPLETED, S.NO_SHOW})


def check_transition(
    current: ReservationStatus,
    target: ReservationStatus,
    actor: Actor,
    *,
    starts_at: datetime,
    now: datetime,
) -> TransitionRule:
    """Raise unless `actor` may move a reservation from `current` to `target` at `now`."""
    rule = TRANSITIONS.get((current, target, actor))
    if rule is None:
        raise InvalidStateError(f"cannot change reservation status from {current} to {target} as {actor}")
    if rule.requires_started:
        check_started(starts_at, now, str(target))
    if rule.cancel_window:
        check_cancel_window(starts_at, now)
    return rule


def releases_tables(current: ReservationStatus, target: ReservationStatus) -> bool:
    return current in LIVE_STATUSES and target in RELEASING_STATUSES
