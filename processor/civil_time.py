"""Civil-time arithmetic for wall-clock event times.

The source calendar writes each start time as a wall-clock value in
Australia/Melbourne. Times are never converted through UTC: the end time is
the start plus the match duration on the calendar, so a daylight-saving
change between two events cannot shift either of them.
"""
import re
from datetime import timedelta

from processor.models import CivilTime

MELBOURNE_TZID = 'Australia/Melbourne'

_LITERAL_PATTERN = re.compile(
    r'^(\d{4})(\d{2})(\d{2})T(\d{2})(\d{2})(\d{2})Z?$'
)


class CivilTimeError(ValueError):
    """Raised when a wall-clock value or duration cannot be resolved."""


def parse_civil(literal: str) -> CivilTime:
    """
    Parse a literal iCalendar date-time into its wall-clock fields.

    A trailing "Z" is ignored: the source always means Melbourne wall-clock
    time, whatever zone marker it writes.

    Args:
        literal: Value such as "20250405T143000" or "20250405T143000Z"

    Returns:
        CivilTime with the literal fields

    Raises:
        CivilTimeError: If the literal is not a date-time value
    """
    match = _LITERAL_PATTERN.match(literal.strip()) if literal else None
    if not match:
        raise CivilTimeError(f"Unparseable date-time literal: {literal!r}")

    try:
        civil = CivilTime(*(int(part) for part in match.groups()))
        # Validates ranges (month 13, Feb 30, hour 25, ...)
        civil.to_datetime()
    except ValueError as e:
        raise CivilTimeError(f"Invalid date-time literal {literal!r}: {e}")

    return civil


def resolve_end(start: CivilTime, duration_minutes: int) -> CivilTime:
    """
    Add a match duration to a wall-clock start.

    Args:
        start: Wall-clock start time
        duration_minutes: Match length in minutes, must be positive

    Returns:
        Wall-clock end time

    Raises:
        CivilTimeError: If the duration is not positive or the end is not
            strictly after the start
    """
    if duration_minutes <= 0:
        raise CivilTimeError(
            f"Duration must be positive, got {duration_minutes} minutes"
        )

    start_dt = start.to_datetime()
    try:
        end_dt = start_dt + timedelta(minutes=duration_minutes)
    except OverflowError as e:
        raise CivilTimeError(f"End time out of range: {e}")

    if end_dt <= start_dt:
        raise CivilTimeError(
            f"End time {end_dt.isoformat()} is not after start "
            f"{start_dt.isoformat()}"
        )

    return CivilTime.from_datetime(end_dt)


def format_civil(civil: CivilTime) -> str:
    """Render a wall-clock value as YYYYMMDDTHHMMSS (no trailing Z)."""
    return (
        f"{civil.year:04d}{civil.month:02d}{civil.day:02d}T"
        f"{civil.hour:02d}{civil.minute:02d}{civil.second:02d}"
    )
