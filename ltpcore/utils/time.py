from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Optional

from dateutil import tz

EXCHANGE_TZ = "America/New_York"

# minutes after midnight, exchange-local
PREMARKET_OPEN = 4 * 60
SESSION_OPEN = 9 * 60 + 30
ORB_END = 10 * 60


def now_tz(tz_str: str = EXCHANGE_TZ) -> datetime:
    tzinfo = tz.gettz(tz_str)
    return datetime.now(tzinfo)


def ms_to_exchange(ms: int, tz_str: str = EXCHANGE_TZ) -> datetime:
    return datetime.fromtimestamp(ms / 1000.0, tz=timezone.utc).astimezone(tz.gettz(tz_str))


def minute_of_day(dt: datetime) -> int:
    return dt.hour * 60 + dt.minute


def date_string(days_offset: int = 0, today: Optional[date] = None) -> str:
    d = today or datetime.now(timezone.utc).date()
    return (d + timedelta(days=days_offset)).isoformat()


def next_friday(today: Optional[date] = None) -> str:
    """Next Friday strictly after today (a Friday rolls to the following week)."""
    d = today or datetime.now(timezone.utc).date()
    days = (4 - d.weekday()) % 7 or 7
    return (d + timedelta(days=days)).isoformat()
