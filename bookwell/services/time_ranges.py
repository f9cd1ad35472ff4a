"""
Time range utilities

All stored timestamps are naive UTC. Helpers here normalise incoming
values to that representation and evaluate working hours in a tenant's
local time.
"""

from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Any, Mapping, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import structlog

from bookwell.core.config import get_settings

logger = structlog.get_logger(__name__)


def utcnow() -> datetime:
    """Current time as naive UTC"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_naive(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC"""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO 8601 string (or pass through a datetime) into naive UTC"""
    if isinstance(value, datetime):
        return to_utc_naive(value)
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return to_utc_naive(datetime.fromisoformat(text))
    except ValueError:
        return None


def zone_for(tz_name: Optional[str]) -> tzinfo:
    """IANA zone for a tenant, falling back to UTC when unknown"""
    try:
        return ZoneInfo(tz_name or get_settings().DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone {tz_name!r}, falling back to UTC")
        return timezone.utc


def to_local(value: datetime, tz_name: Optional[str]) -> datetime:
    """Express a naive UTC datetime in the given IANA timezone"""
    return value.replace(tzinfo=timezone.utc).astimezone(zone_for(tz_name))


def local_to_utc(day: date, minute_of_day: int, tz_name: Optional[str]) -> datetime:
    """Naive UTC instant of a wall-clock minute on a local day"""
    local = datetime.combine(day, time(0), tzinfo=zone_for(tz_name)) + timedelta(minutes=minute_of_day)
    return to_utc_naive(local)


def month_bounds(now: datetime) -> Tuple[datetime, datetime]:
    """First instant of the month containing ``now`` and of the next month"""
    start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end


def ranges_overlap(start1: datetime, end1: datetime, start2: datetime, end2: datetime) -> bool:
    """Half-open overlap test; touching endpoints do not overlap"""
    return start1 < end2 and start2 < end1


def _parse_hhmm(value: Any) -> Optional[int]:
    """Minute of day for an "HH:MM" string, or None when malformed"""
    if not isinstance(value, str):
        return None
    parts = value.strip().split(":")
    if len(parts) < 2:
        return None
    try:
        hours, minutes = int(parts[0]), int(parts[1])
    except ValueError:
        return None
    if not (0 <= hours <= 24 and 0 <= minutes < 60):
        return None
    return hours * 60 + minutes


def opening_window(hours: Any) -> Optional[Tuple[int, int]]:
    """Return (open, close) minutes, or None when no usable constraint exists"""
    if not isinstance(hours, Mapping):
        return None
    opens = _parse_hhmm(hours.get("start"))
    closes = _parse_hhmm(hours.get("end"))
    if opens is None or closes is None:
        return None
    return opens, closes


def within_working_hours(start: datetime, end: datetime, hours: Any) -> bool:
    """Check that [start, end) lies inside the configured opening hours

    ``start`` and ``end`` must already be in the tenant's local time. An
    absent or malformed configuration never blocks a booking.
    """
    window = opening_window(hours)
    if window is None:
        return True

    opens, closes = window
    start_minutes = start.hour * 60 + start.minute
    end_minutes = end.hour * 60 + end.minute
    # A slot ending exactly at midnight on the next day counts as 24:00
    if end.date() > start.date() and end_minutes == 0:
        end_minutes = 24 * 60

    return start_minutes >= opens and end_minutes <= closes


def duration_minutes(start: datetime, end: datetime) -> float:
    return (end - start) / timedelta(minutes=1)


def duration_matches(
    service_duration_minutes: int,
    start: datetime,
    end: datetime,
    tolerance_minutes: Optional[int] = None,
) -> bool:
    """Check the slot length against the service duration, inclusive tolerance"""
    if tolerance_minutes is None:
        tolerance_minutes = get_settings().DURATION_TOLERANCE_MINUTES
    return abs(duration_minutes(start, end) - service_duration_minutes) <= tolerance_minutes
