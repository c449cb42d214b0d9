"""Date helpers shared by policies, birthdays and dashboard statistics."""

from __future__ import annotations

import calendar
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from app.core.config import settings


def local_tz() -> ZoneInfo:
    """Timezone the agency operates in (automation day boundaries)."""
    return ZoneInfo(settings.AUTOMATION_TIMEZONE)


def local_today() -> date:
    return datetime.now(local_tz()).date()


def start_of_local_day(day: date) -> datetime:
    """UTC instant at which *day* starts in the agency timezone."""
    return datetime.combine(day, time.min, tzinfo=local_tz()).astimezone(timezone.utc)


def add_months(start: date, months: int) -> date:
    """Add calendar months, clamping to the last day of the target month.

    >>> add_months(date(2024, 1, 31), 1)
    datetime.date(2024, 2, 29)
    """
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def month_bounds(day: date) -> tuple[datetime, datetime]:
    """[start, end) of the calendar month containing *day*, as UTC datetimes."""
    start = datetime(day.year, day.month, 1, tzinfo=timezone.utc)
    next_month = add_months(start.date(), 1)
    end = datetime(next_month.year, next_month.month, 1, tzinfo=timezone.utc)
    return start, end


def calculate_age(birth: date, today: date | None = None) -> int:
    today = today or date.today()
    age = today.year - birth.year
    if (today.month, today.day) < (birth.month, birth.day):
        age -= 1
    return age


def turning_age(birth: date, birthday: date) -> int:
    """Age reached on *birthday*, including a Feb 29 birth observed on Feb 28."""
    return birthday.year - birth.year


def birthday_in_year(birth: date, year: int) -> date:
    """The birthday as observed in *year*; Feb 29 falls back to Feb 28."""
    if birth.month == 2 and birth.day == 29 and not calendar.isleap(year):
        return date(year, 2, 28)
    return date(year, birth.month, birth.day)


def is_birthday(birth: date, today: date) -> bool:
    return birthday_in_year(birth, today.year) == today


def next_birthday(birth: date, today: date) -> date:
    upcoming = birthday_in_year(birth, today.year)
    if upcoming < today:
        upcoming = birthday_in_year(birth, today.year + 1)
    return upcoming


def days_until(target: date, today: date) -> int:
    return (target - today).days


def percentage_change(current: float, previous: float) -> int:
    """Whole-number month-over-month change; 100 when growing from zero."""
    if previous == 0:
        return 100 if current > 0 else 0
    return round((current - previous) / previous * 100)


def utc_days_ago(days: int) -> datetime:
    return datetime.now(timezone.utc) - timedelta(days=days)
