# app/api/v1/routes/analytics.py
"""Dashboard counts, period analytics and practice reports for the acting practitioner."""

from __future__ import annotations

import logging
from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.deps import get_actor
from app.api.v1.envelope import ok
from app.core.db import get_db
from app.domain.models.compliance import ActorContext
from app.domain.services.dashboard_service import practice_analytics, practice_summary
from app.domain.services.notification_service import compliance_badges
from app.domain.services.reports_service import generate_report

logger = logging.getLogger("api.v1.analytics")

router = APIRouter(prefix="/analytics", tags=["Analytics"])


@router.get("/")
async def analytics(
    period: str = Query(default="6months", description="1month, 3months, 6months or 1year"),
    actor: ActorContext = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    """Monthly returns, revenue and client intake over the chosen period."""
    return ok(data=await practice_analytics(db, actor.user_id, period))


@router.get("/badges")
async def badges(
    actor: ActorContext = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    """Overdue returns, pending notices and unread notifications."""
    return ok(data=await compliance_badges(db, actor.user_id))


@router.get("/summary")
async def summary(
    actor: ActorContext = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    """Client counts by GST status and record counts by status, per kind."""
    return ok(data=await practice_summary(db, actor.user_id))


@router.get("/reports")
async def report(
    report_type: str = Query(..., alias="type", description="Report type, e.g. compliance-status"),
    year: int | None = Query(None, ge=2017, le=2100),
    month: int | None = Query(default=None, ge=1, le=12),
    actor: ActorContext = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    """One of the practice reports for a year, or a month of it."""
    data = await generate_report(db, actor.user_id, report_type, year or date.today().year, month)
    return ok(data=data)
