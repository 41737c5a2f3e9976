from __future__ import annotations

import functools
import logging
import sqlite3
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, List, Optional, Tuple, TypeVar

from ..errors import Conflict, NotFound, StorageError, ValidationError
from ..models import Course, LessonRecord, RecordFilter, User
from ..utils import DEFAULT_TIMEZONE, end_of_day, format_instant, parse_instant, start_of_day


logger = logging.getLogger(__name__)

T = TypeVar("T")


def _storage_call(func: Callable[..., T]) -> Callable[..., T]:
    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> T:
        try:
            return func(*args, **kwargs)
        except sqlite3.Error as exc:
            logger.error("Storage failure in %s", func.__name__, exc_info=True)
            raise StorageError(f"{func.__name__} failed: {exc}") from exc

    return wrapper


def _casefold(value: Optional[str]) -> str:
    return (value or "").casefold()


def _utc_now() -> str:
    return format_instant(datetime.now(timezone.utc))


@_storage_call
def connect(path: str) -> sqlite3.Connection:
    # Used by one request at a time, possibly across worker threads.
    conn = sqlite3.connect(path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    conn.create_function("casefold", 1, _casefold, deterministic=True)
    return conn


@_storage_call
def init_db(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS courses (
            course_id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL CHECK (name <> ''),
            grade TEXT NOT NULL CHECK (grade <> ''),
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            UNIQUE (name, grade)
        );

        CREATE TABLE IF NOT EXISTS lesson_records (
            record_id INTEGER PRIMARY KEY AUTOINCREMENT,
            course_id INTEGER NOT NULL,
            course_name TEXT NOT NULL,
            grade TEXT NOT NULL,
            date TEXT NOT NULL,
            hours TEXT NOT NULL CHECK (CAST(hours AS REAL) >= 0.5),
            notes TEXT NOT NULL DEFAULT '',
            created_at TEXT NOT NULL,
            FOREIGN KEY(course_id) REFERENCES courses(course_id)
        );

        CREATE INDEX IF NOT EXISTS idx_lesson_records_date ON lesson_records(date);
        CREATE INDEX IF NOT EXISTS idx_lesson_records_course ON lesson_records(course_id);

        CREATE TABLE IF NOT EXISTS users (
            user_id INTEGER PRIMARY KEY AUTOINCREMENT,
            username TEXT NOT NULL UNIQUE,
            password_hash TEXT NOT NULL,
            created_at TEXT NOT NULL
        );
        """
    )
    conn.commit()


# Courses


@_storage_call
def insert_course(conn: sqlite3.Connection, name: str, grade: str) -> Course:
    now = _utc_now()
    try:
        cur = conn.execute(
            "INSERT INTO courses (name, grade, created_at, updated_at) VALUES (?, ?, ?, ?)",
            (name, grade, now, now),
        )
    except sqlite3.IntegrityError as exc:
        conn.rollback()
        raise Conflict(f"Course {name} ({grade}) already exists") from exc
    conn.commit()
    return get_course(conn, cur.lastrowid)


@_storage_call
def get_course(conn: sqlite3.Connection, course_id: int) -> Optional[Course]:
    cur = conn.execute("SELECT * FROM courses WHERE course_id = ?", (course_id,))
    row = cur.fetchone()
    if not row:
        return None
    return Course(**dict(row))


@_storage_call
def find_course(conn: sqlite3.Connection, name: str, grade: str, exclude_id: Optional[int] = None) -> Optional[Course]:
    sql = "SELECT * FROM courses WHERE name = ? AND grade = ?"
    params: List[Any] = [name, grade]
    if exclude_id is not None:
        sql += " AND course_id <> ?"
        params.append(exclude_id)
    row = conn.execute(sql, params).fetchone()
    if not row:
        return None
    return Course(**dict(row))


@_storage_call
def list_courses(conn: sqlite3.Connection) -> List[Course]:
    cur = conn.execute("SELECT * FROM courses ORDER BY name, grade, course_id")
    return [Course(**dict(row)) for row in cur.fetchall()]


@_storage_call
def apply_course_rename(conn: sqlite3.Connection, course_id: int, name: str, grade: str) -> Tuple[Optional[Course], int]:
    """Rename a course and re-sync the snapshot on its records in one transaction.

    The record update is a single filtered UPDATE so records created while
    the rename runs are never skipped. Applying the same rename twice leaves
    the same end state.
    """
    try:
        cur = conn.execute(
            "UPDATE courses SET name = ?, grade = ?, updated_at = ? WHERE course_id = ?",
            (name, grade, _utc_now(), course_id),
        )
        if cur.rowcount == 0:
            conn.rollback()
            return None, 0
        cascaded = conn.execute(
            "UPDATE lesson_records SET course_name = ?, grade = ? WHERE course_id = ?",
            (name, grade, course_id),
        ).rowcount
    except sqlite3.IntegrityError as exc:
        conn.rollback()
        raise Conflict(f"Course {name} ({grade}) already exists") from exc
    except sqlite3.Error:
        conn.rollback()
        raise
    conn.commit()
    return get_course(conn, course_id), cascaded


@_storage_call
def count_records_for_course(conn: sqlite3.Connection, course_id: int) -> int:
    cur = conn.execute("SELECT COUNT(*) AS cnt FROM lesson_records WHERE course_id = ?", (course_id,))
    return cur.fetchone()["cnt"]


@_storage_call
def delete_course(conn: sqlite3.Connection, course_id: int) -> bool:
    try:
        cur = conn.execute("DELETE FROM courses WHERE course_id = ?", (course_id,))
    except sqlite3.IntegrityError as exc:
        conn.rollback()
        blocking = count_records_for_course(conn, course_id)
        raise Conflict(f"Course {course_id} still has {blocking} lesson records", blocking_count=blocking) from exc
    conn.commit()
    return cur.rowcount > 0


# Lesson records


@_storage_call
def insert_record(
    conn: sqlite3.Connection,
    course: Course,
    instant: datetime,
    hours: Decimal,
    notes: str = "",
) -> LessonRecord:
    try:
        cur = conn.execute(
            """
            INSERT INTO lesson_records (course_id, course_name, grade, date, hours, notes, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (course.course_id, course.name, course.grade, format_instant(instant), str(hours), notes, _utc_now()),
        )
    except sqlite3.IntegrityError as exc:
        conn.rollback()
        if "FOREIGN KEY" in str(exc):
            raise NotFound(f"Course {course.course_id} not found") from exc
        raise ValidationError(f"Invalid lesson record: {exc}") from exc
    conn.commit()
    return get_record(conn, cur.lastrowid)


@_storage_call
def get_record(conn: sqlite3.Connection, record_id: int) -> Optional[LessonRecord]:
    cur = conn.execute("SELECT * FROM lesson_records WHERE record_id = ?", (record_id,))
    row = cur.fetchone()
    if not row:
        return None
    return _row_to_record(row)


@_storage_call
def delete_record(conn: sqlite3.Connection, record_id: int) -> bool:
    cur = conn.execute("DELETE FROM lesson_records WHERE record_id = ?", (record_id,))
    conn.commit()
    return cur.rowcount > 0


def build_record_where(filter_: RecordFilter, tz: str = DEFAULT_TIMEZONE) -> Tuple[str, List[Any]]:
    clauses = []
    params: List[Any] = []
    if filter_.start_date is not None:
        clauses.append("date >= ?")
        params.append(format_instant(start_of_day(filter_.start_date, tz)))
    if filter_.end_date is not None:
        clauses.append("date <= ?")
        params.append(format_instant(end_of_day(filter_.end_date, tz)))
    if filter_.search:
        needle = filter_.search.casefold()
        clauses.append(
            "(instr(casefold(course_name), ?) > 0 OR instr(casefold(grade), ?) > 0 OR instr(casefold(notes), ?) > 0)"
        )
        params.extend([needle, needle, needle])
    where_sql = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    return where_sql, params


@_storage_call
def count_records(conn: sqlite3.Connection, filter_: RecordFilter, tz: str = DEFAULT_TIMEZONE) -> int:
    where_sql, params = build_record_where(filter_, tz)
    cur = conn.execute(f"SELECT COUNT(*) AS cnt FROM lesson_records {where_sql}", params)
    return cur.fetchone()["cnt"]


@_storage_call
def fetch_records(
    conn: sqlite3.Connection,
    filter_: RecordFilter,
    tz: str = DEFAULT_TIMEZONE,
    limit: Optional[int] = None,
    offset: int = 0,
    newest_first: bool = True,
) -> List[LessonRecord]:
    where_sql, params = build_record_where(filter_, tz)
    direction = "DESC" if newest_first else "ASC"
    sql = f"SELECT * FROM lesson_records {where_sql} ORDER BY date {direction}, record_id {direction}"
    if limit is not None:
        sql += " LIMIT ? OFFSET ?"
        params = params + [limit, offset]
    cur = conn.execute(sql, params)
    return [_row_to_record(row) for row in cur.fetchall()]


@_storage_call
def fetch_records_between(
    conn: sqlite3.Connection,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> List[LessonRecord]:
    clauses = []
    params: List[Any] = []
    if start is not None:
        clauses.append("date >= ?")
        params.append(format_instant(start))
    if end is not None:
        clauses.append("date <= ?")
        params.append(format_instant(end))
    where_sql = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    cur = conn.execute(f"SELECT * FROM lesson_records {where_sql} ORDER BY date, record_id", params)
    return [_row_to_record(row) for row in cur.fetchall()]


def _row_to_record(row: sqlite3.Row) -> LessonRecord:
    return LessonRecord(
        record_id=row["record_id"],
        course_id=row["course_id"],
        course_name=row["course_name"],
        grade=row["grade"],
        date=parse_instant(row["date"]),
        hours=Decimal(row["hours"]),
        notes=row["notes"] or "",
        created_at=row["created_at"],
    )


# Users


@_storage_call
def insert_user(conn: sqlite3.Connection, username: str, password_hash: str) -> User:
    try:
        cur = conn.execute(
            "INSERT INTO users (username, password_hash, created_at) VALUES (?, ?, ?)",
            (username, password_hash, _utc_now()),
        )
    except sqlite3.IntegrityError as exc:
        conn.rollback()
        raise Conflict(f"User {username} already exists") from exc
    conn.commit()
    row = conn.execute("SELECT * FROM users WHERE user_id = ?", (cur.lastrowid,)).fetchone()
    return User(**dict(row))


@_storage_call
def get_user_by_username(conn: sqlite3.Connection, username: str) -> Optional[User]:
    cur = conn.execute("SELECT * FROM users WHERE username = ?", (username,))
    row = cur.fetchone()
    if not row:
        return None
    return User(**dict(row))
