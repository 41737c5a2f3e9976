"""
CSV export of lesson records over a civil date range.

The payload starts with a UTF-8 byte-order mark so spreadsheet tools pick
the right encoding. Text columns are always quoted; ``date`` and ``hours``
are written bare.
"""

from __future__ import annotations

import logging
import os
import sqlite3
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Optional

from .errors import ValidationError
from .models import LessonRecord
from .storage import db
from .utils import DEFAULT_TIMEZONE, end_of_day, parse_civil_date, start_of_day, to_civil_date_string


logger = logging.getLogger(__name__)

BOM = "\ufeff"
CSV_HEADERS: List[str] = ["courseName", "grade", "date", "hours", "notes"]
CSV_CONTENT_TYPE = "text/csv; charset=utf-8"


@dataclass(frozen=True)
class CsvExport:
    filename: str
    content: str
    row_count: int


def quote_text(value: Optional[str]) -> str:
    text = (value or "").replace("\r\n", " ").replace("\r", " ").replace("\n", " ")
    return '"' + text.replace('"', '""') + '"'


def format_hours(hours: Optional[Decimal]) -> str:
    if hours is None:
        return "0"
    if hours == hours.to_integral_value():
        return str(int(hours))
    return format(hours.normalize(), "f")


def render_csv(records: Iterable[LessonRecord], tz: str = DEFAULT_TIMEZONE) -> str:
    lines = [",".join(CSV_HEADERS)]
    for record in records:
        lines.append(
            ",".join(
                [
                    quote_text(record.course_name),
                    quote_text(record.grade),
                    to_civil_date_string(record.date, tz),
                    format_hours(record.hours),
                    quote_text(record.notes),
                ]
            )
        )
    return BOM + "\n".join(lines) + "\n"


def export_filename(start_date: str, end_date: str) -> str:
    return f"lesson_records_{start_date}_to_{end_date}.csv"


def export_csv(
    conn: sqlite3.Connection,
    start_date: Optional[str],
    end_date: Optional[str],
    tz: str = DEFAULT_TIMEZONE,
) -> CsvExport:
    """Render every record dated within ``start_date``..``end_date`` (inclusive), oldest first."""
    if not start_date or not end_date:
        raise ValidationError("startDate and endDate are required")
    start = parse_civil_date(start_date, "startDate")
    end = parse_civil_date(end_date, "endDate")
    if start > end:
        raise ValidationError("startDate must not be after endDate")
    records = db.fetch_records_between(conn, start_of_day(start, tz), end_of_day(end, tz))
    content = render_csv(records, tz)
    logger.info("Exported %d records for %s..%s", len(records), start.isoformat(), end.isoformat())
    return CsvExport(
        filename=export_filename(start.isoformat(), end.isoformat()),
        content=content,
        row_count=len(records),
    )


def write_csv(path: str, export: CsvExport) -> None:
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w", newline="", encoding="utf-8") as handle:
        handle.write(export.content)
