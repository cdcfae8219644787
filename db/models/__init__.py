"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.content_item import ContentItemRecord
from db.models.job_lock import JobLock
from db.models.job_run import JobRun, JobRunOutcome

__all__ = [
    "ContentItemRecord",
    "JobLock",
    "JobRun",
    "JobRunOutcome",
]
