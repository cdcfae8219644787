"""
Repository for lease-based job locks.

Acquisition is one conditional upsert: insert the row, or take over an
existing row only when its lease has expired. The database decides which
caller wins; there is no read before the write.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from db.models.job_lock import JobLock

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class JobLockRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def try_acquire(
        self,
        *,
        key: str,
        holder_token: str,
        now: datetime,
        expires_at: datetime,
    ) -> bool:
        """
        Insert or take over an expired lease. Returns True when ``holder_token`` now holds ``key``.
        """

        dialect_name = self._session.get_bind().dialect.name
        insert_factory = _DIALECT_INSERTS.get(dialect_name)
        if insert_factory is None:
            raise RuntimeError(f"Lock acquisition is not supported on dialect '{dialect_name}'.")

        stmt = insert_factory(JobLock).values(
            key=key,
            holder_token=holder_token,
            acquired_at=now,
            expires_at=expires_at,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[JobLock.key],
            set_={
                "holder_token": stmt.excluded.holder_token,
                "acquired_at": stmt.excluded.acquired_at,
                "expires_at": stmt.excluded.expires_at,
            },
            where=JobLock.expires_at <= now,
        ).returning(JobLock.holder_token)

        winner = self._session.execute(stmt).scalar_one_or_none()
        return winner == holder_token

    def release(self, *, key: str, holder_token: str) -> bool:
        result = self._session.execute(
            delete(JobLock).where(
                JobLock.key == key,
                JobLock.holder_token == holder_token,
            )
        )
        return (result.rowcount or 0) > 0

    def get(self, key: str) -> JobLock | None:
        return self._session.scalars(select(JobLock).where(JobLock.key == key)).first()
