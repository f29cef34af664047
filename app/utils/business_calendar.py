"""
Business day calendar for report date ranges.

Venezuelan national holidays plus the regional holidays observed in
San Cristóbal (Táchira). Carnival Monday and Tuesday, Holy Thursday and
Good Friday move with Easter. Day boundaries are taken in the business
timezone (``SNAPSHOT_TIMEZONE``).
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import NamedTuple
from zoneinfo import ZoneInfo

from dateutil.easter import easter

from app.config import settings


class Holiday(NamedTuple):
    date: date
    name: str


# (month, day, name)
FIXED_HOLIDAYS = [
    (1, 1, "Año Nuevo"),
    (3, 19, "Día de San José"),
    (4, 19, "Declaración de la Independencia"),
    (5, 1, "Día del Trabajador"),
    (6, 24, "Batalla de Carabobo"),
    (7, 5, "Día de la Independencia"),
    (7, 24, "Natalicio de Simón Bolívar"),
    (10, 12, "Día de la Resistencia Indígena"),
    (12, 24, "Nochebuena"),
    (12, 25, "Navidad"),
    (12, 31, "Fin de Año"),
]

# San Cristóbal / Táchira
REGIONAL_HOLIDAYS = [
    (6, 15, "Santo Patrón de San Cristóbal"),
]


def holidays_for_year(year: int) -> list[Holiday]:
    """All holidays of a year, sorted by date."""
    sunday = easter(year)
    holidays = [Holiday(date(year, m, d), name) for m, d, name in FIXED_HOLIDAYS + REGIONAL_HOLIDAYS]
    holidays += [
        Holiday(sunday - timedelta(days=48), "Lunes de Carnaval"),
        Holiday(sunday - timedelta(days=47), "Martes de Carnaval"),
        Holiday(sunday - timedelta(days=3), "Jueves Santo"),
        Holiday(sunday - timedelta(days=2), "Viernes Santo"),
    ]
    return sorted(holidays)


def _holiday_dates(year: int) -> set[date]:
    return {h.date for h in holidays_for_year(year)}


def is_holiday(day: date) -> bool:
    return day in _holiday_dates(day.year)


def is_business_day(day: date) -> bool:
    """Monday to Friday and not a holiday."""
    return day.weekday() < 5 and not is_holiday(day)


def first_business_day_of_month(year: int, month: int) -> date:
    day = date(year, month, 1)
    while not is_business_day(day):
        day += timedelta(days=1)
    return day


def business_days_in_range(start: date, end: date) -> list[date]:
    """Business days in [start, end], inclusive."""
    days = []
    day = start
    while day <= end:
        if is_business_day(day):
            days.append(day)
        day += timedelta(days=1)
    return days


def default_report_range(today: date) -> tuple[date, date]:
    """First business day of the current month through today.

    Early in a month, before its first business day, the range falls back to
    the calendar month start.
    """
    start = first_business_day_of_month(today.year, today.month)
    if start > today:
        start = today.replace(day=1)
    return start, today


def business_timezone() -> ZoneInfo:
    return ZoneInfo(settings.SNAPSHOT_TIMEZONE)


def local_now() -> datetime:
    return datetime.now(business_timezone())


def local_today() -> date:
    """Today's date where the business operates, not in UTC."""
    return local_now().date()


def local_day_bounds(start: date, end: date) -> tuple[datetime, datetime]:
    """Whole local days [start 00:00, end 23:59:59.999999] expressed in UTC."""
    tz = business_timezone()
    return (
        datetime.combine(start, time.min, tzinfo=tz).astimezone(timezone.utc),
        datetime.combine(end, time.max, tzinfo=tz).astimezone(timezone.utc),
    )
