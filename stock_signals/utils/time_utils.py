"""
Time and date utilities for the Vietnamese equity market.

Key concepts:
  - Market time: HOSE/HNX trade in Asia/Ho_Chi_Minh (UTC+7, no DST). "Today"
    for the market is the local calendar date there, not the UTC date.
  - Trading dates: weekdays only; holidays are not modelled, the provider
    simply has no bar for them.
  - Storage: all persisted timestamps are UTC ISO-8601 strings.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

MARKET_TZ = ZoneInfo("Asia/Ho_Chi_Minh")


def utcnow() -> datetime:
    """Return the current UTC datetime with timezone info.

    Prefer this over ``datetime.utcnow()`` (which returns naive datetimes).
    """
    return datetime.now(tz=timezone.utc)


def market_today(now: Optional[datetime] = None) -> date:
    """Return the current calendar date in market local time.

    Args:
        now: Aware datetime to convert; defaults to ``utcnow()``.
    """
    now = now or utcnow()
    return now.astimezone(MARKET_TZ).date()


def is_valid_trading_date(check_date: date, today: Optional[date] = None) -> bool:
    """Return ``True`` if ``check_date`` is not in the market's future.

    Provider feeds occasionally carry placeholder rows dated ahead of the
    current session; those are rejected here.
    """
    today = today or market_today()
    return check_date <= today


def is_weekday(check_date: date) -> bool:
    return check_date.weekday() < 5


def previous_trading_days(end: date, count: int) -> list[date]:
    """Return ``count`` weekdays ending at (and including) ``end``, ascending.

    Raises:
        ValueError: If ``count < 1``.
    """
    if count < 1:
        raise ValueError(f"count must be >= 1, got {count}.")
    days: list[date] = []
    cursor = end
    while len(days) < count:
        if is_weekday(cursor):
            days.append(cursor)
        cursor -= timedelta(days=1)
    days.reverse()
    return days


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored ISO timestamp, assuming UTC when no offset is present."""
    if not value:
        return None
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt
