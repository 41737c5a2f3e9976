"""
Error taxonomy shared by the store, the services and the HTTP layer.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class LessonLogError(Exception):
    """Base class for every failure the core reports to its callers."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(LessonLogError):
    """A required field is missing or malformed."""


class NotFound(LessonLogError):
    """A referenced course, record or user does not exist."""


class Conflict(LessonLogError):
    """The write would break a uniqueness or reference rule."""

    def __init__(self, message: str, blocking_count: Optional[int] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.blocking_count = blocking_count
        if blocking_count is not None:
            self.details.setdefault("blocking_count", blocking_count)


class StorageError(LessonLogError):
    """The database could not be reached or a statement failed."""
