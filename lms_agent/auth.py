"""lms_agent/auth.py

Bearer-token authentication for the assistant's HTTP routes.

Tokens are HS256 JWTs carrying the user id (``{"id": ...}``). A verified
token is resolved against the domain store into a :class:`Principal`; the
agent routes then require the ``admin`` or ``professor`` role.
"""

from __future__ import annotations

# Standard Library
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

# Third-Party Libraries
import jwt
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

# Local Modules
from lms_agent.config import AgentSettings
from lms_agent.errors import AuthError
from lms_agent.store import DomainStore

logger = logging.getLogger(__name__)

STAFF_ROLES: tuple[str, ...] = ("admin", "professor")

_bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    id: str
    role: str
    name: str = ""


def issue_token(user_id: str, settings: AgentSettings) -> str:
    """Sign a token for ``user_id`` that expires after the configured lifetime."""
    now = datetime.now(timezone.utc)
    payload = {
        "id": user_id,
        "iat": now,
        "exp": now + timedelta(hours=settings.jwt_expires_hours),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str, settings: AgentSettings) -> dict[str, Any] | None:
    """Verify a token and return its payload, or ``None`` if invalid or expired."""
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        logger.info("Rejected expired token")
        return None
    except jwt.InvalidTokenError as exc:
        logger.info("Rejected invalid token: %s", exc)
        return None


def resolve_principal(token: str | None, settings: AgentSettings, store: DomainStore) -> Principal:
    """Turn a raw bearer token into a :class:`Principal`.

    Raises:
        AuthError: With status 401 when the token is missing, invalid or
            names an unknown user.
    """
    if not token:
        raise AuthError("Not authorized, no token")

    payload = decode_token(token, settings)
    if payload is None or not payload.get("id"):
        raise AuthError("Not authorized, token failed")

    user = store.get_user(str(payload["id"]))
    if user is None:
        raise AuthError("Not authorized, user not found")
    return Principal(id=user.id, role=user.role, name=user.name)


async def get_principal(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> Principal:
    """FastAPI dependency: the authenticated caller."""
    token = credentials.credentials if credentials else None
    try:
        return resolve_principal(token, request.app.state.settings, request.app.state.store)
    except AuthError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc


def require_roles(*roles: str) -> Callable[..., Any]:
    """Build a dependency that admits only callers holding one of ``roles``."""

    async def _check(principal: Principal = Depends(get_principal)) -> Principal:
        if principal.role not in roles:
            logger.warning("Forbidden: role %r not in %s", principal.role, roles)
            raise HTTPException(
                status_code=403,
                detail=f"User role '{principal.role}' is not authorized to access this route",
            )
        return principal

    return _check
