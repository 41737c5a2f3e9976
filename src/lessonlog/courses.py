"""
Course management.

Every lesson record carries a snapshot of its course's name and grade.
The snapshot only changes through ``rename_course``, which rewrites it on
all records of that course in the same write.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import List, Tuple

from .errors import Conflict, NotFound, ValidationError
from .models import Course
from .storage import db


logger = logging.getLogger(__name__)


def _clean(name: str, grade: str) -> Tuple[str, str]:
    name = (name or "").strip()
    grade = (grade or "").strip()
    if not name or not grade:
        raise ValidationError("Course name and grade are required")
    return name, grade


def create_course(conn: sqlite3.Connection, name: str, grade: str) -> Course:
    name, grade = _clean(name, grade)
    if db.find_course(conn, name, grade) is not None:
        logger.warning("Rejected duplicate course %s (%s)", name, grade)
        raise Conflict(f"Course {name} ({grade}) already exists")
    course = db.insert_course(conn, name, grade)
    logger.info("Created course %s: %s (%s)", course.course_id, name, grade)
    return course


def get_course(conn: sqlite3.Connection, course_id: int) -> Course:
    course = db.get_course(conn, course_id)
    if course is None:
        raise NotFound(f"Course {course_id} not found")
    return course


def list_courses(conn: sqlite3.Connection) -> List[Course]:
    return db.list_courses(conn)


def rename_course(conn: sqlite3.Connection, course_id: int, name: str, grade: str) -> Course:
    name, grade = _clean(name, grade)
    if db.get_course(conn, course_id) is None:
        raise NotFound(f"Course {course_id} not found")
    if db.find_course(conn, name, grade, exclude_id=course_id) is not None:
        logger.warning("Rejected rename of course %s to existing %s (%s)", course_id, name, grade)
        raise Conflict(f"Course {name} ({grade}) already exists")
    course, cascaded = db.apply_course_rename(conn, course_id, name, grade)
    if course is None:
        raise NotFound(f"Course {course_id} not found")
    logger.info("Renamed course %s to %s (%s), updated %d records", course_id, name, grade, cascaded)
    return course


def delete_course(conn: sqlite3.Connection, course_id: int) -> None:
    if db.get_course(conn, course_id) is None:
        raise NotFound(f"Course {course_id} not found")
    blocking = db.count_records_for_course(conn, course_id)
    if blocking:
        logger.warning("Course %s delete blocked by %d records", course_id, blocking)
        raise Conflict(
            f"Course {course_id} has {blocking} lesson records; delete them first",
            blocking_count=blocking,
        )
    if not db.delete_course(conn, course_id):
        raise NotFound(f"Course {course_id} not found")
    logger.info("Deleted course %s", course_id)
