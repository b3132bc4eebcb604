# app/domain/services/dashboard_service.py
"""Per-practitioner dashboard figures: record counts and period analytics."""

from __future__ import annotations

import calendar
import logging
from collections import Counter
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.errors import ValidationError
from app.domain.models.compliance import (
    STATUS_FIELD,
    ClientGSTStatus,
    EntityKind,
    InvoiceStatus,
    NoticeStatus,
    ReturnStatus,
)
from app.infrastructure.db.entity_store import MODELS
from app.infrastructure.db.models import Client, GSTReturn, Invoice, Notice

logger = logging.getLogger("dashboard_service")

# Look-back window per analytics period
PERIOD_MONTHS: dict[str, int] = {"1month": 1, "3months": 3, "6months": 6, "1year": 12}

UNPAID_INVOICE_STATUSES = (InvoiceStatus.DRAFT.value, InvoiceStatus.SENT.value)


async def _counts_by_status(db: AsyncSession, kind: EntityKind, user_id: UUID) -> dict[str, int]:
    model = MODELS[kind]
    status_col = getattr(model, STATUS_FIELD[kind])
    stmt = select(status_col, func.count()).select_from(model)
    if kind == EntityKind.CLIENT:
        stmt = stmt.where(Client.user_id == user_id)
    else:
        stmt = stmt.join(Client, model.client_id == Client.id).where(Client.user_id == user_id)
    rows = (await db.execute(stmt.group_by(status_col))).all()
    return {status: count for status, count in rows}


async def practice_summary(db: AsyncSession, user_id: UUID) -> dict[str, Any]:
    """``{kind: {"total": n, "by_status": {...}}}`` for every record kind."""
    summary: dict[str, Any] = {}
    for kind in EntityKind:
        by_status = await _counts_by_status(db, kind, user_id)
        summary[kind.value] = {"total": sum(by_status.values()), "by_status": by_status}
    return summary


# ---------------------------------------------------------------------------
# Period analytics
# ---------------------------------------------------------------------------

def period_start(period: str, today: date) -> date:
    """First day of the look-back window ending ``today``."""
    if period not in PERIOD_MONTHS:
        raise ValidationError(
            f"Unknown analytics period '{period}'",
            field="period",
            allowed=list(PERIOD_MONTHS),
        )
    year, month_index = divmod(today.year * 12 + today.month - 1 - PERIOD_MONTHS[period], 12)
    month = month_index + 1
    return date(year, month, min(today.day, calendar.monthrange(year, month)[1]))


def _month_key(value: datetime | date) -> str:
    return f"{value:%Y-%m}"


async def practice_analytics(
    db: AsyncSession,
    user_id: UUID,
    period: str = "6months",
    today: date | None = None,
) -> dict[str, Any]:
    """Activity over the last ``period``: returns, revenue and client intake per month.

    ``compliance_rate`` is the share of returns created in the window that
    are Filed or Processed. ``pending_tasks`` counts overdue returns plus
    notices awaiting a reply, regardless of the window.
    """
    today = today or datetime.now(timezone.utc).date()
    since = datetime.combine(period_start(period, today), time.min, tzinfo=timezone.utc)

    clients = list((await db.execute(select(Client).where(Client.user_id == user_id))).scalars().all())
    returns = list((await db.execute(
        select(GSTReturn)
        .join(Client, GSTReturn.client_id == Client.id)
        .where(Client.user_id == user_id, GSTReturn.created_at >= since)
    )).scalars().all())
    invoices = list((await db.execute(
        select(Invoice)
        .join(Client, Invoice.client_id == Client.id)
        .where(Client.user_id == user_id, Invoice.created_at >= since)
    )).scalars().all())
    outstanding = (await db.execute(
        select(func.sum(Invoice.amount))
        .select_from(Invoice)
        .join(Client, Invoice.client_id == Client.id)
        .where(Client.user_id == user_id, Invoice.status.in_(UNPAID_INVOICE_STATUSES))
    )).scalar_one()
    new_clients = list((await db.execute(
        select(Client.created_at).where(Client.user_id == user_id, Client.created_at >= since)
    )).scalars().all())

    returns_by_period = Counter(r.period for r in returns)
    revenue: dict[str, Decimal] = {}
    for inv in invoices:
        key = _month_key(inv.created_at)
        revenue[key] = revenue.get(key, Decimal("0.00")) + Decimal(inv.amount or 0)
    acquisition = Counter(_month_key(created) for created in new_clients)

    filed = sum(1 for r in returns if r.status in (ReturnStatus.FILED.value, ReturnStatus.PROCESSED.value))
    compliance_rate = round(filed / len(returns) * 100, 1) if returns else 0.0

    overdue_returns = (await db.execute(
        select(func.count())
        .select_from(GSTReturn)
        .join(Client, GSTReturn.client_id == Client.id)
        .where(Client.user_id == user_id, GSTReturn.status == ReturnStatus.OVERDUE.value)
    )).scalar_one() or 0
    pending_notices = (await db.execute(
        select(func.count())
        .select_from(Notice)
        .join(Client, Notice.client_id == Client.id)
        .where(
            Client.user_id == user_id,
            Notice.status.in_((NoticeStatus.RECEIVED.value, NoticeStatus.IN_PROGRESS.value)),
        )
    )).scalar_one() or 0

    logger.debug("Analytics for user %s over %s since %s", user_id, period, since.date())
    return {
        "period": period,
        "since": since.date(),
        "total_clients": len(clients),
        "active_gst": sum(1 for c in clients if c.gst_status == ClientGSTStatus.ACTIVE.value),
        "monthly_returns": [{"period": p, "count": n} for p, n in sorted(returns_by_period.items())],
        "revenue": [{"month": m, "amount": revenue[m]} for m in sorted(revenue)],
        "client_acquisition": [{"month": m, "count": acquisition[m]} for m in sorted(acquisition)],
        "compliance_rate": compliance_rate,
        "outstanding_payments": Decimal(outstanding or 0),
        "pending_tasks": overdue_returns + pending_notices,
    }

