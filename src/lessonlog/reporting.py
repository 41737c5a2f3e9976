from __future__ import annotations

import sqlite3
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional, Tuple

from .models import CourseStat, GradeStat, LessonRecord, StatsResult
from .storage import db
from .utils import DEFAULT_TIMEZONE, current_month_str, end_of_month, parse_month, start_of_month, system_clock


@dataclass(frozen=True)
class AggregatePass:
    total_hours: Decimal
    course_stats: List[CourseStat]
    grade_stats: List[GradeStat]


def aggregate(records: Iterable[LessonRecord]) -> AggregatePass:
    """Group records by (course id, course name) and by grade.

    Both lists are ordered by total hours, largest first; equal totals keep
    the order in which the group first appeared.
    """
    total = Decimal("0")
    by_course: Dict[Tuple[int, str], List[Decimal]] = defaultdict(lambda: [Decimal("0"), Decimal("0")])
    by_grade: Dict[str, List[Decimal]] = defaultdict(lambda: [Decimal("0"), Decimal("0")])

    for record in records:
        total += record.hours
        course_bucket = by_course[(record.course_id, record.course_name)]
        course_bucket[0] += record.hours
        course_bucket[1] += 1
        grade_bucket = by_grade[record.grade]
        grade_bucket[0] += record.hours
        grade_bucket[1] += 1

    course_stats = [
        CourseStat(course_id=course_id, course_name=course_name, total_hours=hours, count=int(count))
        for (course_id, course_name), (hours, count) in by_course.items()
    ]
    grade_stats = [
        GradeStat(grade=grade, total_hours=hours, count=int(count))
        for grade, (hours, count) in by_grade.items()
    ]
    course_stats.sort(key=lambda stat: stat.total_hours, reverse=True)
    grade_stats.sort(key=lambda stat: stat.total_hours, reverse=True)
    return AggregatePass(total_hours=total, course_stats=course_stats, grade_stats=grade_stats)


def compute_stats(
    conn: sqlite3.Connection,
    month: Optional[str] = None,
    now: Optional[datetime] = None,
    tz: str = DEFAULT_TIMEZONE,
) -> StatsResult:
    """Monthly and all-time hour totals grouped by course and by grade.

    ``month`` is ``YYYY-MM`` in the civil timezone and defaults to the month
    containing ``now``.
    """
    if not month:
        month = current_month_str(now or system_clock(), tz)
    year, month_num = parse_month(month)
    month_key = f"{year:04d}-{month_num:02d}"

    # TODO: replace the all-time scan with a per-course rollup table once record volume warrants it.
    all_time = aggregate(db.fetch_records_between(conn))
    monthly = aggregate(
        db.fetch_records_between(conn, start_of_month(year, month_num, tz), end_of_month(year, month_num, tz))
    )

    return StatsResult(
        month=month_key,
        total_hours=monthly.total_hours,
        all_time_hours=all_time.total_hours,
        course_stats=monthly.course_stats,
        grade_stats=monthly.grade_stats,
        all_time_course_stats=all_time.course_stats,
        all_time_grade_stats=all_time.grade_stats,
    )


def percentage(part: Decimal, total: Decimal) -> Decimal:
    if not total:
        return Decimal("0.0")
    return (part * Decimal("100") / total).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
