from __future__ import annotations

import logging
import math
import sqlite3
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from .errors import NotFound, ValidationError
from .models import LessonRecord, RecordFilter, RecordPage
from .storage import db
from .utils import DEFAULT_TIMEZONE, civil_today, is_date_only, parse_civil_date, to_civil_date, to_civil_instant


logger = logging.getLogger(__name__)

MIN_HOURS = Decimal("0.5")
MAX_HOURS = Decimal("24")


def parse_hours(value: Any, min_hours: Decimal = MIN_HOURS) -> Decimal:
    if value is None or value == "":
        raise ValidationError("hours is required")
    try:
        hours = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValidationError(f"Invalid hours: {value!r}") from exc
    if not hours.is_finite():
        raise ValidationError(f"Invalid hours: {value!r}")
    if hours < min_hours:
        raise ValidationError(f"hours must be at least {min_hours}")
    if hours > MAX_HOURS:
        raise ValidationError(f"hours must be at most {MAX_HOURS}")
    return hours


def _is_future(date_value: str, instant: datetime, now: datetime, tz: str) -> bool:
    if is_date_only(date_value):
        return to_civil_date(instant, tz) > civil_today(now, tz)
    return instant > now


def create_record(
    conn: sqlite3.Connection,
    course_id: int,
    date_value: str,
    hours: Any,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
    tz: str = DEFAULT_TIMEZONE,
    min_hours: Decimal = MIN_HOURS,
) -> LessonRecord:
    """Store a lesson record with a snapshot of its course's name and grade.

    ``now`` is the caller's clock reading; when given, a date later than the
    current civil day (or a datetime later than ``now``) is rejected.
    """
    if course_id is None:
        raise ValidationError("courseId is required")
    parsed_hours = parse_hours(hours, min_hours)
    instant = to_civil_instant(date_value, tz)
    if now is not None and _is_future(date_value, instant, now, tz):
        raise ValidationError("date cannot be in the future")
    course = db.get_course(conn, course_id)
    if course is None:
        raise NotFound(f"Course {course_id} not found")
    record = db.insert_record(conn, course, instant, parsed_hours, (notes or "").strip())
    logger.info("Created record %s for course %s (%s hours)", record.record_id, course_id, parsed_hours)
    return record


def get_record(conn: sqlite3.Connection, record_id: int) -> LessonRecord:
    record = db.get_record(conn, record_id)
    if record is None:
        raise NotFound(f"Record {record_id} not found")
    return record


def delete_record(conn: sqlite3.Connection, record_id: int) -> None:
    if not db.delete_record(conn, record_id):
        raise NotFound(f"Record {record_id} not found")
    logger.info("Deleted record %s", record_id)


def build_filter(search: str = "", start_date: str = "", end_date: str = "") -> RecordFilter:
    return RecordFilter(
        search=(search or "").strip(),
        start_date=parse_civil_date(start_date, "startDate") if start_date else None,
        end_date=parse_civil_date(end_date, "endDate") if end_date else None,
    )


def list_records(
    conn: sqlite3.Connection,
    filter_: RecordFilter,
    page: int = 1,
    page_size: int = 10,
    tz: str = DEFAULT_TIMEZONE,
) -> RecordPage:
    """Return one page of matching records, most recent first."""
    if page < 1:
        raise ValidationError("page must be a positive integer")
    if page_size < 1:
        raise ValidationError("pageSize must be a positive integer")
    total = db.count_records(conn, filter_, tz)
    records = db.fetch_records(conn, filter_, tz, limit=page_size, offset=(page - 1) * page_size)
    return RecordPage(
        records=records,
        total_count=total,
        total_pages=math.ceil(total / page_size),
        current_page=page,
        page_size=page_size,
    )
