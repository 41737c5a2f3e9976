from __future__ import annotations

import logging
import sqlite3
from functools import lru_cache
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse, Response
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from pydantic import BaseModel

from .. import auth, courses, records, reporting
from ..config import AppConfig
from ..errors import Conflict, LessonLogError, NotFound, StorageError, ValidationError
from ..export import CSV_CONTENT_TYPE, export_csv
from ..log import setup_logger
from ..models import Course, CourseStat, GradeStat, LessonRecord, User
from ..storage import db
from ..utils import Clock, format_instant, system_clock, to_civil_date_string


logger = logging.getLogger(__name__)

app = FastAPI(title="Lesson Hour Log")
security = HTTPBasic(auto_error=False)

ERROR_STATUS = {
    ValidationError: 400,
    NotFound: 404,
    Conflict: 409,
    StorageError: 500,
}


class CourseIn(BaseModel):
    name: str
    grade: str


class RecordIn(BaseModel):
    courseId: int
    date: str
    hours: Decimal
    notes: Optional[str] = ""


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    return AppConfig.from_env()


def get_clock() -> Clock:
    return system_clock


def get_db(config: AppConfig = Depends(get_config)) -> Iterator[sqlite3.Connection]:
    conn = db.connect(config.db_path)
    try:
        yield conn
    finally:
        conn.close()


def require_user(
    credentials: Optional[HTTPBasicCredentials] = Depends(security),
    conn: sqlite3.Connection = Depends(get_db),
) -> User:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Login required",
            headers={"WWW-Authenticate": "Basic"},
        )
    user = auth.authenticate(conn, credentials.username, credentials.password)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
            headers={"WWW-Authenticate": "Basic"},
        )
    return user


api_router = APIRouter(prefix="/api", dependencies=[Depends(require_user)])


@app.on_event("startup")
def _startup() -> None:
    config = get_config()
    setup_logger(config.log_level, config.log_file)
    conn = db.connect(config.db_path)
    try:
        db.init_db(conn)
    finally:
        conn.close()
    logger.info("Lesson Hour Log ready, database at %s", config.db_path)


@app.exception_handler(LessonLogError)
async def _lessonlog_error_handler(request: Request, exc: LessonLogError) -> JSONResponse:
    status_code = next((code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)), 500)
    body: Dict[str, Any] = {"message": exc.message}
    body.update(exc.details)
    return JSONResponse(status_code=status_code, content=body)


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


# Courses


@api_router.get("/courses")
def course_list(conn: sqlite3.Connection = Depends(get_db)) -> List[Dict[str, Any]]:
    return [_course_json(course) for course in courses.list_courses(conn)]


@api_router.post("/courses", status_code=201)
def course_create(payload: CourseIn, conn: sqlite3.Connection = Depends(get_db)) -> Dict[str, Any]:
    return _course_json(courses.create_course(conn, payload.name, payload.grade))


@api_router.get("/courses/{course_id}")
def course_detail(course_id: int, conn: sqlite3.Connection = Depends(get_db)) -> Dict[str, Any]:
    return _course_json(courses.get_course(conn, course_id))


@api_router.put("/courses/{course_id}")
def course_update(course_id: int, payload: CourseIn, conn: sqlite3.Connection = Depends(get_db)) -> Dict[str, Any]:
    return _course_json(courses.rename_course(conn, course_id, payload.name, payload.grade))


@api_router.delete("/courses/{course_id}")
def course_delete(course_id: int, conn: sqlite3.Connection = Depends(get_db)) -> Dict[str, str]:
    courses.delete_course(conn, course_id)
    return {"message": "Course deleted"}


# Records


@api_router.get("/records")
def record_list(
    page: int = 1,
    limit: Optional[int] = None,
    search: str = "",
    start_date: str = Query("", alias="startDate"),
    end_date: str = Query("", alias="endDate"),
    conn: sqlite3.Connection = Depends(get_db),
    config: AppConfig = Depends(get_config),
) -> Dict[str, Any]:
    page_size = config.default_page_size if limit is None else limit
    filter_ = records.build_filter(search, start_date, end_date)
    result = records.list_records(conn, filter_, page=page, page_size=page_size, tz=config.timezone)
    return {
        "records": [_record_json(record, config.timezone) for record in result.records],
        "total": result.total_count,
        "totalPages": result.total_pages,
        "currentPage": result.current_page,
        "pageSize": result.page_size,
    }


@api_router.post("/records", status_code=201)
def record_create(
    payload: RecordIn,
    conn: sqlite3.Connection = Depends(get_db),
    config: AppConfig = Depends(get_config),
    clock: Clock = Depends(get_clock),
) -> Dict[str, Any]:
    record = records.create_record(
        conn,
        course_id=payload.courseId,
        date_value=payload.date,
        hours=payload.hours,
        notes=payload.notes,
        now=clock(),
        tz=config.timezone,
        min_hours=config.min_hours,
    )
    return _record_json(record, config.timezone)


@api_router.get("/records/{record_id}")
def record_detail(
    record_id: int,
    conn: sqlite3.Connection = Depends(get_db),
    config: AppConfig = Depends(get_config),
) -> Dict[str, Any]:
    return _record_json(records.get_record(conn, record_id), config.timezone)


@api_router.delete("/records/{record_id}")
def record_delete(record_id: int, conn: sqlite3.Connection = Depends(get_db)) -> Dict[str, str]:
    records.delete_record(conn, record_id)
    return {"message": "Record deleted"}


# Reporting


@api_router.get("/stats")
def stats(
    month: str = "",
    conn: sqlite3.Connection = Depends(get_db),
    config: AppConfig = Depends(get_config),
    clock: Clock = Depends(get_clock),
) -> Dict[str, Any]:
    result = reporting.compute_stats(conn, month or None, now=clock(), tz=config.timezone)
    return {
        "month": result.month,
        "totalHours": float(result.total_hours),
        "allTimeHours": float(result.all_time_hours),
        "courseStats": [_course_stat_json(stat, result.total_hours) for stat in result.course_stats],
        "gradeStats": [_grade_stat_json(stat, result.total_hours) for stat in result.grade_stats],
        "allTimeCourseStats": [_course_stat_json(stat, result.all_time_hours) for stat in result.all_time_course_stats],
        "allTimeGradeStats": [_grade_stat_json(stat, result.all_time_hours) for stat in result.all_time_grade_stats],
    }


@api_router.get("/export")
def export(
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    conn: sqlite3.Connection = Depends(get_db),
    config: AppConfig = Depends(get_config),
) -> Response:
    result = export_csv(conn, start_date, end_date, tz=config.timezone)
    return Response(
        content=result.content.encode("utf-8"),
        media_type=CSV_CONTENT_TYPE,
        headers={"Content-Disposition": f"attachment; filename={result.filename}"},
    )


app.include_router(api_router)


def _course_json(course: Course) -> Dict[str, Any]:
    return {
        "id": course.course_id,
        "name": course.name,
        "grade": course.grade,
        "createdAt": course.created_at,
        "updatedAt": course.updated_at,
    }


def _record_json(record: LessonRecord, tz: str) -> Dict[str, Any]:
    return {
        "id": record.record_id,
        "courseId": record.course_id,
        "courseName": record.course_name,
        "grade": record.grade,
        "date": format_instant(record.date),
        "civilDate": to_civil_date_string(record.date, tz),
        "hours": float(record.hours),
        "notes": record.notes,
    }


def _course_stat_json(stat: CourseStat, total: Decimal) -> Dict[str, Any]:
    return {
        "courseId": stat.course_id,
        "courseName": stat.course_name,
        "totalHours": float(stat.total_hours),
        "count": stat.count,
        "percentage": float(reporting.percentage(stat.total_hours, total)),
    }


def _grade_stat_json(stat: GradeStat, total: Decimal) -> Dict[str, Any]:
    return {
        "grade": stat.grade,
        "totalHours": float(stat.total_hours),
        "count": stat.count,
        "percentage": float(reporting.percentage(stat.total_hours, total)),
    }
