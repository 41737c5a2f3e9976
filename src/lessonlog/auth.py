from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from passlib.hash import pbkdf2_sha256

from .errors import Conflict, ValidationError
from .models import User
from .storage import db


logger = logging.getLogger(__name__)


def hash_password(password: str) -> str:
    return pbkdf2_sha256.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return pbkdf2_sha256.verify(password, password_hash)
    except ValueError:
        return False


def create_user(conn: sqlite3.Connection, username: str, password: str) -> User:
    username = (username or "").strip()
    if not username or not password:
        raise ValidationError("username and password are required")
    if db.get_user_by_username(conn, username) is not None:
        raise Conflict(f"User {username} already exists")
    user = db.insert_user(conn, username, hash_password(password))
    logger.info("Created user %s", username)
    return user


def authenticate(conn: sqlite3.Connection, username: str, password: str) -> Optional[User]:
    user = db.get_user_by_username(conn, username)
    if user is None or not verify_password(password, user.password_hash):
        logger.warning("Rejected credentials for %s", username)
        return None
    return user
