"""
app/auth.py

Operator authentication for side-effecting endpoints.

Callers present the shared cron secret either as ``x-cron-secret`` or as
an ``Authorization: Bearer`` token. The orchestrator never sees any of this;
routers resolve an AuthContext and decide.
"""

from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass

from app.config import AuthSettings

logger = logging.getLogger(__name__)

_BEARER_PREFIX = "bearer "


@dataclass(frozen=True)
class AuthContext:
    authenticated: bool
    method: str | None = None


ANONYMOUS = AuthContext(authenticated=False)


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    value = authorization.strip()
    if value.lower().startswith(_BEARER_PREFIX):
        token = value[len(_BEARER_PREFIX):].strip()
        return token or None
    return None


def resolve_auth_context(
    *,
    settings: AuthSettings,
    cron_secret_header: str | None = None,
    authorization: str | None = None,
) -> AuthContext:
    """
    Build an AuthContext from request credentials.

    Without a configured secret every caller is anonymous unless
    ``allow_unauthenticated`` is set, which is meant for local development.
    """

    if settings.cron_secret is None:
        if settings.allow_unauthenticated:
            return AuthContext(authenticated=True, method="unauthenticated")
        logger.warning("Operator auth rejected: CRON_SECRET is not configured")
        return ANONYMOUS

    expected = settings.cron_secret.encode("utf-8")
    if cron_secret_header and hmac.compare_digest(cron_secret_header.strip().encode("utf-8"), expected):
        return AuthContext(authenticated=True, method="cron-secret")

    token = _bearer_token(authorization)
    if token and hmac.compare_digest(token.encode("utf-8"), expected):
        return AuthContext(authenticated=True, method="bearer")

    return ANONYMOUS
