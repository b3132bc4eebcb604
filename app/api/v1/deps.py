# app/api/v1/deps.py
"""
FastAPI dependencies for the v1 API layer.

``get_actor`` validates the Bearer JWT and returns the ``ActorContext`` the
engine scopes every read and write by. ``get_engine`` hands out the
process-wide ``ComplianceEngine``; there must be exactly one so that its
per-entity locks actually serialize writers.
"""

from __future__ import annotations

import logging
import uuid

from fastapi import Depends, HTTPException, Header, status
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.db import AsyncSessionLocal, get_db
from app.domain.models.compliance import ActorContext
from app.domain.services.compliance_engine import ComplianceEngine
from app.infrastructure.db.repositories.user_repository import UserRepository

logger = logging.getLogger("api.v1.deps")

_engine: ComplianceEngine | None = None


def get_engine() -> ComplianceEngine:
    global _engine
    if _engine is None:
        _engine = ComplianceEngine(AsyncSessionLocal)
    return _engine


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_actor(
    authorization: str | None = Header(None),
    db: AsyncSession = Depends(get_db),
) -> ActorContext:
    """
    Validate ``Authorization: Bearer <jwt>`` and return the acting practitioner.

    Raises HTTP 401 if the token is missing, invalid, expired, or names a user
    that does not exist or has been deactivated.
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise _unauthorized("Missing or invalid Authorization header. Expected: Bearer <token>")

    token = authorization[7:]

    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as exc:
        logger.debug("JWT decode failed: %s", exc)
        raise _unauthorized("Invalid or expired token")

    try:
        user_id = uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise _unauthorized("Token missing subject")

    user = await UserRepository(db).get_by_id(user_id)
    if user is None or not user.is_active:
        raise _unauthorized("User not found")

    return ActorContext(user_id=user.id)
