"""
Civil-time helpers.

Every user-facing date is a calendar day in one fixed civil timezone
(Asia/Shanghai by default). Instants are stored as UTC strings with
millisecond precision so that string comparison in SQL matches instant
order. Range filters must use the boundaries computed here.
"""

from __future__ import annotations

import re
from calendar import monthrange
from datetime import date, datetime, time, timezone
from functools import lru_cache
from typing import Callable, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .errors import ValidationError


DEFAULT_TIMEZONE = "Asia/Shanghai"
INSTANT_FORMAT = "%Y-%m-%dT%H:%M:%S"

# Keeps every stored instant a four-digit UTC year after civil conversion.
MIN_YEAR = 1000
MAX_YEAR = 9998

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_MONTH_RE = re.compile(r"^(\d{4})-(\d{1,2})$")

Clock = Callable[[], datetime]


def system_clock() -> datetime:
    return datetime.now(timezone.utc)


@lru_cache(maxsize=None)
def civil_zone(name: str = DEFAULT_TIMEZONE) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValidationError(f"Unknown timezone: {name}") from exc


def parse_civil_date(value: str, field_name: str = "date") -> date:
    value = (value or "").strip()
    if not _DATE_RE.match(value):
        raise ValidationError(f"Invalid {field_name}: {value!r}, expected YYYY-MM-DD")
    try:
        parsed = date.fromisoformat(value)
    except ValueError as exc:
        raise ValidationError(f"Invalid {field_name}: {value!r}") from exc
    _check_year(parsed.year, value, field_name)
    return parsed


def parse_month(value: str) -> Tuple[int, int]:
    match = _MONTH_RE.match((value or "").strip())
    if not match:
        raise ValidationError(f"Invalid month: {value!r}, expected YYYY-MM")
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise ValidationError(f"Invalid month: {value!r}")
    _check_year(year, value, "month")
    return year, month


def _check_year(year: int, value: str, field_name: str) -> None:
    if not MIN_YEAR <= year <= MAX_YEAR:
        raise ValidationError(f"Unsupported {field_name}: {value!r}, year must be between {MIN_YEAR} and {MAX_YEAR}")


def _to_utc(local: datetime) -> datetime:
    try:
        return local.astimezone(timezone.utc)
    except (OverflowError, ValueError) as exc:
        raise ValidationError(f"Date out of range: {local.isoformat()}") from exc


def is_date_only(value: str) -> bool:
    return bool(_DATE_RE.match((value or "").strip()))


def start_of_day(d: date, tz: str = DEFAULT_TIMEZONE) -> datetime:
    local = datetime.combine(d, time.min, tzinfo=civil_zone(tz))
    return _to_utc(local)


def end_of_day(d: date, tz: str = DEFAULT_TIMEZONE) -> datetime:
    local = datetime.combine(d, time(23, 59, 59, 999000), tzinfo=civil_zone(tz))
    return _to_utc(local)


def start_of_month(year: int, month: int, tz: str = DEFAULT_TIMEZONE) -> datetime:
    return start_of_day(date(year, month, 1), tz)


def end_of_month(year: int, month: int, tz: str = DEFAULT_TIMEZONE) -> datetime:
    last_day = monthrange(year, month)[1]
    return end_of_day(date(year, month, last_day), tz)


def to_civil_date(instant: datetime, tz: str = DEFAULT_TIMEZONE) -> date:
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(civil_zone(tz)).date()


def to_civil_date_string(instant: datetime, tz: str = DEFAULT_TIMEZONE) -> str:
    return to_civil_date(instant, tz).isoformat()


def to_civil_instant(value: str, tz: str = DEFAULT_TIMEZONE) -> datetime:
    """Interpret a user-supplied date or datetime in the civil timezone.

    A bare ``YYYY-MM-DD`` means local midnight. A naive datetime is local
    wall-clock time; an offset-aware one is converted as given.
    """
    value = (value or "").strip()
    if not value:
        raise ValidationError("date is required")
    if _DATE_RE.match(value):
        return start_of_day(parse_civil_date(value), tz)
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError as exc:
        raise ValidationError(f"Invalid date: {value!r}") from exc
    _check_year(parsed.year, value, "date")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=civil_zone(tz))
    return _to_utc(parsed)


def format_instant(instant: datetime) -> str:
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    utc = instant.astimezone(timezone.utc)
    # strftime("%Y") does not zero-pad years below 1000 on every platform.
    return (
        f"{utc.year:04d}-{utc.month:02d}-{utc.day:02d}"
        f"T{utc.hour:02d}:{utc.minute:02d}:{utc.second:02d}.{utc.microsecond // 1000:03d}Z"
    )


def parse_instant(value: str) -> datetime:
    return datetime.strptime(value, INSTANT_FORMAT + ".%fZ").replace(tzinfo=timezone.utc)


def civil_today(now: datetime, tz: str = DEFAULT_TIMEZONE) -> date:
    return to_civil_date(now, tz)


def current_month_str(now: datetime, tz: str = DEFAULT_TIMEZONE) -> str:
    today = civil_today(now, tz)
    return f"{today.year:04d}-{today.month:02d}"
