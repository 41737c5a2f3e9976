from .config import AppConfig
from .courses import create_course, delete_course, get_course, list_courses, rename_course
from .errors import Conflict, LessonLogError, NotFound, StorageError, ValidationError
from .export import CsvExport, export_csv, render_csv
from .models import (
    Course,
    CourseStat,
    GradeStat,
    LessonRecord,
    RecordFilter,
    RecordPage,
    StatsResult,
    User,
)
from .records import build_filter, create_record, delete_record, get_record, list_records
from .reporting import aggregate, compute_stats, percentage

__all__ = [
    "AppConfig",
    "Conflict",
    "Course",
    "CourseStat",
    "CsvExport",
    "GradeStat",
    "LessonLogError",
    "LessonRecord",
    "NotFound",
    "RecordFilter",
    "RecordPage",
    "StatsResult",
    "StorageError",
    "User",
    "ValidationError",
    "aggregate",
    "build_filter",
    "compute_stats",
    "create_course",
    "create_record",
    "delete_course",
    "delete_record",
    "export_csv",
    "get_course",
    "get_record",
    "list_courses",
    "list_records",
    "percentage",
    "rename_course",
    "render_csv",
]
