# shopbook/core.py

"""
Scheduling primitives shared by availability, booking and lifecycle code.

Every instant handled here is a naive datetime in UTC. Wall-clock values
(business hours, requested dates) only exist at the edges and are converted
with the shop's timezone before anything is compared.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterator, Optional, Tuple

import pytz

logger = logging.getLogger(__name__)

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_naive(value: datetime) -> datetime:
    """Aware datetimes are converted to UTC; naive ones are taken as UTC already."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def overlaps(start_a, end_a, start_b, end_b) -> bool:
    # half-open intervals: touching edges do not overlap
    return start_a < end_b and start_b < end_a


def generate_slots(
    day_open: datetime,
    day_close: datetime,
    service_duration_minutes: int,
    granularity_minutes: int,
) -> Iterator[Tuple[datetime, datetime]]:
    """
    Yield (start, end) candidate slots from day_open, one every granularity_minutes.

    A slot whose end would run past day_close is dropped, never truncated,
    so every yielded slot is exactly service_duration_minutes long.
    """
    if service_duration_minutes <= 0:
        raise ValueError("service duration must be positive")
    if granularity_minutes <= 0:
        raise ValueError("slot granularity must be positive")

    duration = timedelta(minutes=service_duration_minutes)
    step = timedelta(minutes=granularity_minutes)

    current = day_open
    while current + duration <= day_close:
        yield current, current + duration
        current += step


def get_tz(tz_name: Optional[str]):
    try:
        return pytz.timezone(tz_name or "UTC")
    except pytz.UnknownTimeZoneError:
        logger.error("Invalid timezone '%s', using UTC", tz_name)
        return pytz.UTC


def parse_clock(value) -> time:
    if isinstance(value, time):
        return value
    hours, minutes = str(value).split(":")[:2]
    return time(int(hours), int(minutes))


def local_to_utc(day: date, clock: time, tz) -> datetime:
    local = tz.localize(datetime.combine(day, clock))
    return local.astimezone(pytz.UTC).replace(tzinfo=None)


def local_date(instant: datetime, tz_name: Optional[str]) -> date:
    tz = get_tz(tz_name)
    return pytz.UTC.localize(instant).astimezone(tz).date()


def resolve_business_day(
    tz_name: Optional[str],
    business_hours: Optional[dict],
    day: date,
    default_open: str,
    default_close: str,
) -> Optional[Tuple[datetime, datetime]]:
    """
    Resolve a shop's opening hours for the wall-clock date `day`.

    Returns (open, close) as UTC instants, or None when the shop is closed
    that weekday. Without configured hours the defaults apply every day; with
    configured hours a weekday that is missing counts as closed.
    """
    weekday = WEEKDAYS[day.weekday()]

    if business_hours is None:
        hours = {"open": default_open, "close": default_close}
    else:
        hours = business_hours.get(weekday)
        if not hours or hours.get("closed"):
            return None

    open_clock = parse_clock(hours.get("open", default_open))
    close_clock = parse_clock(hours.get("close", default_close))
    if close_clock <= open_clock:
        logger.warning("Ignoring business hours for %s: close %s is not after open %s", weekday, close_clock, open_clock)
        return None

    tz = get_tz(tz_name)
    return local_to_utc(day, open_clock, tz), local_to_utc(day, close_clock, tz)
