from datetime import datetime, timedelta

from .errors import TimeWindowError

CANCEL_CUTOFF = timedelta(hours=2)
MODIFY_CUTOFF = timedelta(hours=1)
MIN_LEAD_TIME = timedelta(hours=1)


def hours_between(later: datetime, earlier: datetime) -> float:
    """Signed hours from `earlier` to `later`."""
    return (later - earlier).total_seconds() / 3600


def format_time_remaining(hours_until: float) -> str:
    if hours_until < 1:
        return f"{round(hours_until * 60)} minutes"
    return f"{hours_until:.1f} hours"


def _require_lead(starts_at: datetime, now: datetime, cutoff: timedelta, message: str) -> float:
    hours_until = hours_between(starts_at, now)
    if starts_at - now < cutoff:
        raise TimeWindowError(
            f"{message} ({format_time_remaining(max(hours_until, 0))} remaining)",
            hours_until=hours_until,
        )
    return hours_until


def check_cancel_window(starts_at: datetime, now: datetime) -> float:
    return _require_lead(
        starts_at, now, CANCEL_CUTOFF, "reservations can only be cancelled at least 2 hours in advance"
    )


def check_modify_window(starts_at: datetime, now: datetime) -> float:
    return _require_lead(
        starts_at, now, MODIFY_CUTOFF, "cannot modify a reservation less than 1 hour before its time"
    )


def check_new_booking_time(starts_at: datetime, now: datetime) -> float:
    return _require_lead(
        starts_at, now, MIN_LEAD_TIME, "new reservation time must be at least 1 hour from now"
    )


def check_started(starts_at: datetime, now: datetime, action: str) -> None:
    if now < starts_at:
        raise TimeWindowError(
            f"cannot mark reservation as {action} before the reservation time",
            hours_until=hours_between(starts_at, now),
        )
