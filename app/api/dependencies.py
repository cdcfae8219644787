"""
app/api/dependencies.py

Shared FastAPI dependencies for auth and orchestrator access.
"""

from __future__ import annotations

from fastapi import Depends, Header, HTTPException, status

from app.auth import AuthContext, resolve_auth_context
from app.config import AuthSettings, get_auth_settings
from freshness.orchestrator import Orchestrator, get_orchestrator


def get_auth_context(
    x_cron_secret: str | None = Header(default=None),
    authorization: str | None = Header(default=None),
    settings: AuthSettings = Depends(get_auth_settings),
) -> AuthContext:
    return resolve_auth_context(
        settings=settings,
        cron_secret_header=x_cron_secret,
        authorization=authorization,
    )


def require_operator(auth: AuthContext = Depends(get_auth_context)) -> AuthContext:
    """
    Reject callers that did not present the operator secret.
    """

    if not auth.authenticated:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )
    return auth


def get_freshness_orchestrator() -> Orchestrator:
    return get_orchestrator()
