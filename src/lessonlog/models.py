from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional


@dataclass(frozen=True)
class Course:
    course_id: int
    name: str
    grade: str
    created_at: str
    updated_at: str

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("name is required")
        if not self.grade:
            raise ValueError("grade is required")


@dataclass(frozen=True)
class LessonRecord:
    record_id: int
    course_id: int
    course_name: str
    grade: str
    date: datetime
    hours: Decimal
    notes: str = ""
    created_at: str = ""


@dataclass(frozen=True)
class User:
    user_id: int
    username: str
    password_hash: str
    created_at: str


@dataclass(frozen=True)
class RecordFilter:
    search: str = ""
    start_date: Optional[date] = None
    end_date: Optional[date] = None


@dataclass(frozen=True)
class RecordPage:
    records: List[LessonRecord]
    total_count: int
    total_pages: int
    current_page: int
    page_size: int


@dataclass(frozen=True)
class CourseStat:
    course_id: int
    course_name: str
    total_hours: Decimal
    count: int


@dataclass(frozen=True)
class GradeStat:
    grade: str
    total_hours: Decimal
    count: int


@dataclass(frozen=True)
class StatsResult:
    month: str
    total_hours: Decimal
    all_time_hours: Decimal
    course_stats: List[CourseStat] = field(default_factory=list)
    grade_stats: List[GradeStat] = field(default_factory=list)
    all_time_course_stats: List[CourseStat] = field(default_factory=list)
    all_time_grade_stats: List[GradeStat] = field(default_factory=list)
