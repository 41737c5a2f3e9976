from __future__ import annotations

import argparse
import getpass
import logging
import sys
from typing import List, Optional

from . import auth
from .config import AppConfig
from .errors import Conflict, LessonLogError
from .export import export_csv, write_csv
from .log import setup_logger
from .storage import db


logger = logging.getLogger(__name__)


def _open(config: AppConfig):
    conn = db.connect(config.db_path)
    db.init_db(conn)
    return conn


def cmd_init_db(args: argparse.Namespace, config: AppConfig) -> int:
    conn = _open(config)
    conn.close()
    logger.info("Initialized database at %s", config.db_path)
    return 0


def cmd_create_admin(args: argparse.Namespace, config: AppConfig) -> int:
    username = args.username or config.admin_username
    password = args.password or getpass.getpass(f"Password for {username}: ")
    conn = _open(config)
    try:
        auth.create_user(conn, username, password)
    except Conflict:
        print(f"User {username} already exists")
        return 0
    finally:
        conn.close()
    print(f"Created user {username}; change the password after first login")
    return 0


def cmd_export(args: argparse.Namespace, config: AppConfig) -> int:
    conn = _open(config)
    try:
        result = export_csv(conn, args.start, args.end, tz=config.timezone)
    finally:
        conn.close()
    output = args.output or result.filename
    write_csv(output, result)
    print(f"Wrote {result.row_count} records to {output}")
    return 0


def cmd_serve(args: argparse.Namespace, config: AppConfig) -> int:
    import uvicorn

    uvicorn.run("lessonlog.web.app:app", host=args.host, port=args.port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="lessonlog", description="Lesson-hour log maintenance commands")
    sub = parser.add_subparsers(dest="command", required=True)

    init_parser = sub.add_parser("init-db", help="Create the database tables")
    init_parser.set_defaults(handler=cmd_init_db)

    admin_parser = sub.add_parser("create-admin", help="Create the initial administrator account")
    admin_parser.add_argument("--username", default="")
    admin_parser.add_argument("--password", default="")
    admin_parser.set_defaults(handler=cmd_create_admin)

    export_parser = sub.add_parser("export", help="Write lesson records in a date range to CSV")
    export_parser.add_argument("--start", required=True, help="First day, YYYY-MM-DD")
    export_parser.add_argument("--end", required=True, help="Last day, YYYY-MM-DD")
    export_parser.add_argument("--output", default="", help="Target file (default: lesson_records_<start>_to_<end>.csv)")
    export_parser.set_defaults(handler=cmd_export)

    serve_parser = sub.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)
    serve_parser.set_defaults(handler=cmd_serve)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = AppConfig.from_env()
    setup_logger(config.log_level, config.log_file)
    try:
        return args.handler(args, config)
    except LessonLogError as exc:
        print(f"error: {exc.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
