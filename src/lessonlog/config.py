from __future__ import annotations

import os
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Optional


DB_ENV = "LESSONLOG_DB_PATH"
TZ_ENV = "LESSONLOG_TIMEZONE"
LOG_LEVEL_ENV = "LESSONLOG_LOG_LEVEL"
LOG_FILE_ENV = "LESSONLOG_LOG_FILE"


@dataclass(frozen=True)
class AppConfig:
    """Runtime settings for the lesson-hour store and its HTTP surface."""

    db_path: str
    timezone: str
    default_page_size: int
    min_hours: Decimal
    admin_username: str
    log_level: str
    log_file: Optional[str] = None

    @staticmethod
    def default() -> "AppConfig":
        return AppConfig(
            db_path="lessonlog.db",
            timezone="Asia/Shanghai",
            default_page_size=10,
            min_hours=Decimal("0.5"),
            admin_username="admin",
            log_level="INFO",
        )

    @staticmethod
    def from_env() -> "AppConfig":
        config = AppConfig.default()
        return replace(
            config,
            db_path=os.environ.get(DB_ENV, config.db_path),
            timezone=os.environ.get(TZ_ENV, config.timezone),
            log_level=os.environ.get(LOG_LEVEL_ENV, config.log_level).upper(),
            log_file=os.environ.get(LOG_FILE_ENV) or None,
        )
