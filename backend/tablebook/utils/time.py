from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from ..config import get_settings


def restaurant_tz() -> ZoneInfo:
    return ZoneInfo(get_settings().restaurant_timezone)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def local_today(now: datetime | None = None) -> date:
    return (now or utc_now()).astimezone(restaurant_tz()).date()


def utc_naive_to_local(dt: datetime) -> datetime:
    return dt.replace(tzinfo=timezone.utc).astimezone(restaurant_tz())
