"""
Week boundary computation.

Weeks run Monday 00:00:00.000 through Sunday 23:59:59.999 in the caller's
local time, where local time is UTC shifted by a signed minute offset.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Union

from .errors import ValidationError

MAX_TZ_OFFSET_MINUTES = 24 * 60
_END_OF_DAY = time(23, 59, 59, 999000)


@dataclass(frozen=True)
class WeekBounds:
    """A Monday-Sunday window expressed in UTC."""
    start_utc: datetime
    end_utc: datetime
    start_str: str
    end_str: str


def _check_offset(tz_offset_minutes: int) -> int:
    if isinstance(tz_offset_minutes, bool) or not isinstance(tz_offset_minutes, int):
        raise ValidationError("tz_offset_minutes must be an integer")
    if abs(tz_offset_minutes) > MAX_TZ_OFFSET_MINUTES:
        raise ValidationError(
            f"tz_offset_minutes must be within +/-{MAX_TZ_OFFSET_MINUTES}"
        )
    return tz_offset_minutes


def parse_day(value: Union[str, date]) -> date:
    """Parse a YYYY-MM-DD string into a date.

    An ISO datetime is accepted and reduced to its date part; anything else
    after the date is rejected.

    Raises:
        ValidationError: If the string is not a calendar date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValidationError("date must be a YYYY-MM-DD string")
    day_part = value.strip().split("T", 1)[0]
    if len(day_part) != 10:
        raise ValidationError(f"Invalid date '{value}', expected YYYY-MM-DD")
    try:
        return date.fromisoformat(day_part)
    except ValueError:
        raise ValidationError(f"Invalid date '{value}', expected YYYY-MM-DD")


def week_bounds(
    week_end: Optional[Union[str, date]] = None,
    tz_offset_minutes: int = 0,
    now: Optional[datetime] = None
) -> WeekBounds:
    """Compute the week containing week_end (or now) in local time.

    A week_end string is taken as a local calendar date, i.e. anchored at
    local midnight, before rolling forward to Sunday. A Sunday therefore
    maps to its own week.

    start_str and end_str are the UTC dates of the UTC boundaries. With a
    non-zero offset they can fall one day outside the local Monday..Sunday:
    for week_end 2024-06-09, +240 gives 2024-06-02..2024-06-09 and -300
    gives 2024-06-03..2024-06-10. They label the settlement and feed its
    idempotency key; day selection uses start_utc/end_utc.

    Args:
        week_end: Optional local week-end date; defaults to the current instant
        tz_offset_minutes: Local time minus UTC, in minutes (e.g. 240 for UTC+4)
        now: Current instant, for deterministic callers

    Returns:
        WeekBounds with UTC boundaries and UTC date strings

    Raises:
        ValidationError: If week_end or the offset is invalid
    """
    offset = timedelta(minutes=_check_offset(tz_offset_minutes))

    if week_end is not None and week_end != "":
        local_day = parse_day(week_end)
    else:
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        local_day = (now.astimezone(timezone.utc) + offset).date()

    # Monday=0 ... Sunday=6
    end_day = local_day + timedelta(days=(6 - local_day.weekday()) % 7)
    start_day = end_day - timedelta(days=6)

    start_utc = datetime.combine(start_day, time.min, tzinfo=timezone.utc) - offset
    end_utc = datetime.combine(end_day, _END_OF_DAY, tzinfo=timezone.utc) - offset

    return WeekBounds(
        start_utc=start_utc,
        end_utc=end_utc,
        start_str=start_utc.date().isoformat(),
        end_str=end_utc.date().isoformat(),
    )


def is_day_in_range(
    day_str: str,
    start_utc: datetime,
    end_utc: datetime,
    tz_offset_minutes: int = 0
) -> bool:
    """Check whether a calendar day falls within [start_utc, end_utc].

    The day is taken at its local midnight and converted to UTC before the
    inclusive comparison. Unparseable days are never in range.
    """
    try:
        day = parse_day(day_str)
    except ValidationError:
        return False
    offset = timedelta(minutes=_check_offset(tz_offset_minutes))
    local_midnight_utc = datetime.combine(day, time.min, tzinfo=timezone.utc) - offset
    return start_utc <= local_midnight_utc <= end_utc
