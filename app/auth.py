# app/auth.py
"""Shared authentication dependencies."""

import logging
import secrets
from enum import Enum

from fastapi import Depends, Header

from app.config import Settings, get_settings
from app.services.lifecycle.errors import AuthorizationError

logger = logging.getLogger(__name__)

_BEARER_PREFIX = "bearer "


class Principal(str, Enum):
    """Who is calling a lifecycle endpoint."""
    REJECTED = "rejected"
    SCHEDULER = "scheduler"
    ADMIN = "admin"


def _matches(token: str, secret: str | None) -> bool:
    # An unset secret never matches, not even an empty token
    if not secret:
        return False
    return secrets.compare_digest(token.encode("utf-8"), secret.encode("utf-8"))


def classify(authorization: str | None, settings: Settings) -> Principal:
    """
    Classify an Authorization header value.

    `Bearer <CRON_SECRET>` is the scheduler, `Bearer <ADMIN_SECRET>` is an
    admin, anything else (including a missing header) is rejected. When both
    secrets are equal the caller is treated as admin.
    """
    if not authorization or not authorization.lower().startswith(_BEARER_PREFIX):
        return Principal.REJECTED

    token = authorization[len(_BEARER_PREFIX):].strip()
    if not token:
        return Principal.REJECTED

    if _matches(token, settings.ADMIN_SECRET):
        return Principal.ADMIN
    if _matches(token, settings.CRON_SECRET):
        return Principal.SCHEDULER
    return Principal.REJECTED


def get_principal(
    authorization: str | None = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> Principal:
    """Resolve the caller without enforcing anything."""
    return classify(authorization, settings)


def require_lifecycle_principal(principal: Principal = Depends(get_principal)) -> Principal:
    """Scheduler or admin. Raised before any read or write happens."""
    if principal is Principal.REJECTED:
        logger.warning(
            "Rejected lifecycle request with missing or invalid bearer token",
            extra={"event": "auth_rejected"},
        )
        raise AuthorizationError()
    return principal


def require_admin(principal: Principal = Depends(get_principal)) -> Principal:
    """Admin only."""
    if principal is not Principal.ADMIN:
        logger.warning(
            f"Rejected admin request from principal {principal.value}",
            extra={"event": "auth_rejected", "principal": principal.value},
        )
        raise AuthorizationError()
    return principal
