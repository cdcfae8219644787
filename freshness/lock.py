"""
freshness/lock.py

Lease-based mutual exclusion keyed by job name, backed by ``job_locks``.

Acquisition never blocks: a held key returns ``None`` immediately and the
caller retries on its next scheduled tick. Leases expire on their own, so a
crashed holder cannot wedge a key.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import timedelta

from sqlalchemy.orm import Session, sessionmaker

from db.repositories.job_lock_repository import JobLockRepository
from freshness.clock import Clock, utc_now

logger = logging.getLogger(__name__)


class DistributedLock:
    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        clock: Clock = utc_now,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    def acquire(self, key: str, lease_seconds: float) -> str | None:
        """
        Take the lease on ``key`` for ``lease_seconds``. Returns the holder token or None.
        """

        if lease_seconds <= 0:
            raise ValueError("lease_seconds must be positive.")

        token = secrets.token_hex(16)
        now = self._clock()
        expires_at = now + timedelta(seconds=lease_seconds)

        with self._session_factory() as db:
            acquired = JobLockRepository(db).try_acquire(
                key=key,
                holder_token=token,
                now=now,
                expires_at=expires_at,
            )
            db.commit()

        if not acquired:
            logger.info("Lock denied key=%s", key)
            return None
        logger.info("Lock acquired key=%s expires_at=%s", key, expires_at.isoformat())
        return token

    def release(self, key: str, token: str) -> bool:
        """
        Release ``key`` only if ``token`` still holds it. Returns True when a row was removed.
        """

        with self._session_factory() as db:
            released = JobLockRepository(db).release(key=key, holder_token=token)
            db.commit()

        if released:
            logger.info("Lock released key=%s", key)
        else:
            logger.warning("Lock release skipped, lease no longer held key=%s", key)
        return released

    @contextmanager
    def hold(self, key: str, lease_seconds: float) -> Iterator[str | None]:
        """
        Yield the holder token, or None when denied. An acquired lease is always released.
        """

        token = self.acquire(key, lease_seconds)
        try:
            yield token
        finally:
            if token is not None:
                try:
                    self.release(key, token)
                except Exception:
                    logger.exception("Lock release failed key=%s", key)
