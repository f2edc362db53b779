# availability.py

from datetime import date, datetime, timedelta
from typing import Optional, Union

import pytz

from config import TIMEZONE, MIN_ADVANCE_DAYS
from errors import InvalidDraftError

DateLike = Union[date, datetime, str, None]


# =========================
# Calendar-day helpers
# =========================
def local_today(tz_name: str = TIMEZONE, now: Optional[datetime] = None) -> date:
    """
    Today's calendar day in the studio timezone.

    A naive `now` is treated as studio-local wall time.
    """
    tz = pytz.timezone(tz_name)
    if now is None:
        return datetime.now(tz).date()
    if now.tzinfo is None:
        now = tz.localize(now)
    return now.astimezone(tz).date()


def to_local_date(value: DateLike, tz_name: str = TIMEZONE) -> Optional[date]:
    """
    Normalize a date-ish value to a calendar day.

    - date: returned as is
    - aware datetime: converted to the studio timezone, then truncated
    - naive datetime: truncated (already local)
    - string: the YYYY-MM-DD it starts with, as written. Booking records
      store event dates as midnight UTC, so shifting them would move the
      day backwards.
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.date()
        return value.astimezone(pytz.timezone(tz_name)).date()

    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not text:
        return None

    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        raise InvalidDraftError(f"Invalid date: {value!r}. Expected YYYY-MM-DD.")


# =========================
# Date floor / ceiling
# =========================
def minimum_event_date(
    today: Optional[date] = None,
    min_advance_days: int = MIN_ADVANCE_DAYS,
) -> date:
    """Earliest bookable event date: local today + min_advance_days."""
    if today is None:
        today = local_today()
    return today + timedelta(days=min_advance_days)


def is_date_allowed(
    candidate: DateLike,
    min_date: DateLike,
    max_date: DateLike = None,
) -> bool:
    """Both bounds are inclusive. A missing candidate is never allowed."""
    day = to_local_date(candidate)
    if day is None:
        return False

    floor = to_local_date(min_date)
    if floor is not None and day < floor:
        return False

    ceiling = to_local_date(max_date)
    if ceiling is not None and day > ceiling:
        return False

    return True


def is_valid_date_range(start: DateLike, end: DateLike) -> bool:
    """Ranged bookings: the end date must be strictly after the start date."""
    start_day = to_local_date(start)
    end_day = to_local_date(end)
    if start_day is None or end_day is None:
        return False
    return end_day > start_day


def validate_event_date(
    candidate: DateLike,
    today: Optional[date] = None,
    max_date: DateLike = None,
    min_advance_days: int = MIN_ADVANCE_DAYS,
) -> date:
    """
    Return the normalized event date or raise InvalidDraftError with a
    message the client can show.
    """
    day = to_local_date(candidate)
    if day is None:
        raise InvalidDraftError("Please select an event date.")

    floor = minimum_event_date(today, min_advance_days)
    if not is_date_allowed(day, floor, max_date):
        if day < floor:
            raise InvalidDraftError(
                f"Event date must be at least {min_advance_days} days from today "
                f"(earliest {floor.isoformat()})."
            )
        raise InvalidDraftError("Event date is later than the latest bookable date.")

    return day


def validate_date_range(start: DateLike, end: DateLike) -> None:
    if to_local_date(start) is None:
        raise InvalidDraftError("Please select an event start date.")
    if to_local_date(end) is None:
        raise InvalidDraftError("Please select an event end date.")
    if not is_valid_date_range(start, end):
        raise InvalidDraftError("Event end date must be after the start date.")
