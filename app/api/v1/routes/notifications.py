# app/api/v1/routes/notifications.py
"""Practitioner notification inbox: list, mark read, run checks on demand."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.deps import get_actor
from app.api.v1.envelope import ok
from app.api.v1.schemas.compliance import MarkReadRequest
from app.core.db import get_db
from app.domain.models.compliance import ActorContext
from app.infrastructure.db.entity_store import to_dict
from app.infrastructure.db.repositories.notification_repository import NotificationRepository

logger = logging.getLogger("api.v1.notifications")

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("/")
async def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    actor: ActorContext = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    repo = NotificationRepository(db)
    items = [to_dict(n) for n in await repo.list_for_user(actor.user_id, unread_only=unread_only, limit=limit)]
    unread = await repo.unread_count(actor.user_id)
    return ok(data={"items": items, "unread_count": unread}, message=f"{len(items)} notification(s)")


@router.post("/mark-read")
async def mark_read(
    body: MarkReadRequest,
    actor: ActorContext = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    """Mark the given notifications, or all of them, as read."""
    repo = NotificationRepository(db)
    if body.mark_all:
        updated = await repo.mark_all_read(actor.user_id)
    else:
        updated = await repo.mark_read(actor.user_id, body.notification_ids)
    await db.commit()
    return ok(data={"updated": updated}, message=f"Marked {updated} notification(s) as read")


@router.post("/check")
async def run_checks(
    actor: ActorContext = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    """Run the deadline checks for the acting practitioner's clients now."""
    from app.domain.services.notification_service import run_all_checks
    counts = await run_all_checks(db, user_id=actor.user_id)
    return ok(data=counts, message="Notification checks completed")
