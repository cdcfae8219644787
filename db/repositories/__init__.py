"""
Repository layer exports.
"""

from db.repositories.content_item_repository import ContentItemRepository
from db.repositories.job_lock_repository import JobLockRepository
from db.repositories.job_run_repository import JobRunRepository

__all__ = [
    "ContentItemRepository",
    "JobLockRepository",
    "JobRunRepository",
]
