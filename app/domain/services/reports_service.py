# app/domain/services/reports_service.py
"""
Practice reports.

Six report types over one practitioner's records, for a calendar year or
a single month of it:

  client-summary      clients taken on in the period and their record counts
  returns-filing      returns due in the period, by status and return type
  payment-analysis    payments raised in the period, counts and amounts
  compliance-status   per-client compliance score (overdue returns, late notices)
  revenue-trend       practice invoices per month for the year
  notice-management   notices received in the period, by status and type
"""

from __future__ import annotations

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
    ClientGSTStatus,
    InvoiceStatus,
    NoticeStatus,
    PaymentStatus,
    RegistrationStatus,
    ReturnStatus,
)
from app.infrastructure.db.models import (
    Client,
    GSTPayment,
    GSTRegistration,
    GSTReturn,
    Invoice,
    Notice,
)

logger = logging.getLogger("reports_service")

REPORT_TYPES = (
    "client-summary",
    "returns-filing",
    "payment-analysis",
    "compliance-status",
    "revenue-trend",
    "notice-management",
)

FILED_RETURN_STATUSES = (ReturnStatus.FILED.value, ReturnStatus.PROCESSED.value)
CLOSED_NOTICE_STATUSES = (NoticeStatus.REPLIED.value, NoticeStatus.RESOLVED.value)

_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def report_window(year: int, month: int | None = None) -> tuple[date, date]:
    """``[start, end)`` for a whole year, or for one month of it."""
    if month is None:
        return date(year, 1, 1), date(year + 1, 1, 1)
    if not 1 <= month <= 12:
        raise ValidationError("month must be between 1 and 12", field="month", month=month)
    start = date(year, month, 1)
    end = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
    return start, end


def _at_midnight(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def _created_in(model: type, start: date, end: date) -> tuple[Any, Any]:
    return model.created_at >= _at_midnight(start), model.created_at < _at_midnight(end)


def _period_label(year: int, month: int | None) -> str:
    return f"{month:02d}-{year}" if month else str(year)


def _total(rows: list[Any]) -> Decimal:
    return sum((Decimal(r.amount or 0) for r in rows), Decimal("0.00"))


async def _owned(db: AsyncSession, model: type, user_id: UUID, *conditions: Any) -> list[tuple[Any, Client]]:
    stmt = (
        select(model, Client)
        .join(Client, model.client_id == Client.id)
        .where(Client.user_id == user_id, *conditions)
        .order_by(model.created_at.desc())
    )
    return list((await db.execute(stmt)).all())


def _client_ref(client: Client) -> dict[str, Any]:
    return {"id": client.id, "business_name": client.business_name, "gstin": client.gstin}


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------

async def client_summary_report(db: AsyncSession, user_id: UUID, start: date, end: date) -> dict[str, Any]:
    clients = list((await db.execute(
        select(Client)
        .where(Client.user_id == user_id, *_created_in(Client, start, end))
        .order_by(Client.created_at.desc())
    )).scalars().all())

    registrations = await _owned(db, GSTRegistration, user_id, *_created_in(GSTRegistration, start, end))
    returns = await _owned(db, GSTReturn, user_id, *_created_in(GSTReturn, start, end))

    counts: dict[UUID, Counter] = {c.id: Counter() for c in clients}
    for model, key in ((GSTReturn, "returns"), (GSTRegistration, "registrations"), (Notice, "notices")):
        rows = await db.execute(
            select(model.client_id, func.count())
            .where(model.client_id.in_(list(counts)))
            .group_by(model.client_id)
        )
        for client_id, n in rows.all():
            counts[client_id][key] = n

    statuses = Counter(c.gst_status for c in clients)
    return {
        "total_clients": len(clients),
        "active_gst": statuses[ClientGSTStatus.ACTIVE.value],
        "inactive_gst": statuses[ClientGSTStatus.INACTIVE.value],
        "new_registrations": sum(1 for r, _ in registrations if r.status == RegistrationStatus.APPROVED.value),
        "total_returns_filed": sum(1 for r, _ in returns if r.status in FILED_RETURN_STATUSES),
        "overdue_returns": sum(1 for r, _ in returns if r.status == ReturnStatus.OVERDUE.value),
        "clients": [
            {
                **_client_ref(c),
                "pan": c.pan,
                "gst_status": c.gst_status,
                "created_at": c.created_at,
                "returns": counts[c.id]["returns"],
                "registrations": counts[c.id]["registrations"],
                "notices": counts[c.id]["notices"],
            }
            for c in clients
        ],
    }


async def returns_filing_report(db: AsyncSession, user_id: UUID, start: date, end: date) -> dict[str, Any]:
    rows = await _owned(db, GSTReturn, user_id, GSTReturn.due_date >= start, GSTReturn.due_date < end)
    return_ids = [r.id for r, _ in rows]

    paid_by_return: dict[UUID, Decimal] = {}
    if return_ids:
        sums = await db.execute(
            select(GSTPayment.return_id, func.sum(GSTPayment.amount))
            .where(GSTPayment.return_id.in_(return_ids))
            .group_by(GSTPayment.return_id)
        )
        paid_by_return = {rid: Decimal(total or 0) for rid, total in sums.all()}

    by_status = Counter(r.status for r, _ in rows)
    return {
        "total_returns": len(rows),
        "by_status": {s.value: by_status[s.value] for s in ReturnStatus},
        "return_type_breakdown": dict(Counter(r.return_type for r, _ in rows)),
        "total_tax_amount": sum(paid_by_return.values(), Decimal("0.00")),
        "returns": [
            {
                "id": r.id,
                "client": _client_ref(c),
                "return_type": r.return_type,
                "period": r.period,
                "due_date": r.due_date,
                "status": r.status,
                "tax_paid": paid_by_return.get(r.id, Decimal("0.00")),
            }
            for r, c in rows
        ],
    }


async def payment_analysis_report(db: AsyncSession, user_id: UUID, start: date, end: date) -> dict[str, Any]:
    rows = await _owned(db, GSTPayment, user_id, *_created_in(GSTPayment, start, end))
    payments = [p for p, _ in rows]
    by_status = Counter(p.status for p in payments)
    return {
        "total_payments": len(payments),
        "by_status": {s.value: by_status[s.value] for s in PaymentStatus},
        "total_amount": _total(payments),
        "paid_amount": _total([p for p in payments if p.status == PaymentStatus.PAID.value]),
        "pending_amount": _total([p for p in payments if p.status == PaymentStatus.PENDING.value]),
        "payment_type_breakdown": dict(Counter(p.payment_type or "GST" for p in payments)),
        "payments": [
            {
                "id": p.id,
                "client": _client_ref(c),
                "return_id": p.return_id,
                "challan_no": p.challan_no,
                "amount": p.amount,
                "status": p.status,
                "paid_at": p.paid_at,
            }
            for p, c in rows
        ],
    }


def compliance_score(overdue_returns: int, late_notices: int) -> int:
    return max(0, 100 - overdue_returns * 10 - late_notices * 20)


async def compliance_status_report(
    db: AsyncSession,
    user_id: UUID,
    start: date,
    end: date,
    today: date,
) -> dict[str, Any]:
    clients = list((await db.execute(
        select(Client).where(Client.user_id == user_id).order_by(Client.business_name)
    )).scalars().all())
    returns = [r for r, _ in await _owned(db, GSTReturn, user_id, *_created_in(GSTReturn, start, end))]
    notices = [n for n, _ in await _owned(db, Notice, user_id, *_created_in(Notice, start, end))]

    per_client = []
    for client in clients:
        own_returns = [r for r in returns if r.client_id == client.id]
        own_notices = [n for n in notices if n.client_id == client.id]
        overdue = sum(
            1 for r in own_returns
            if r.status not in FILED_RETURN_STATUSES and r.due_date is not None and r.due_date < today
        )
        late = sum(
            1 for n in own_notices
            if n.status not in CLOSED_NOTICE_STATUSES and n.due_date is not None and n.due_date < today
        )
        per_client.append({
            "client": {**_client_ref(client), "gst_status": client.gst_status},
            "total_returns": len(own_returns),
            "filed_returns": sum(1 for r in own_returns if r.status in FILED_RETURN_STATUSES),
            "overdue_returns": overdue,
            "total_notices": len(own_notices),
            "pending_notices": late,
            "compliance_score": compliance_score(overdue, late),
        })

    scores = [c["compliance_score"] for c in per_client]
    return {
        "total_clients": len(clients),
        "fully_compliant": sum(1 for s in scores if s == 100),
        "partially_compliant": sum(1 for s in scores if 70 <= s < 100),
        "non_compliant": sum(1 for s in scores if s < 70),
        "average_compliance_score": round(sum(scores) / len(scores), 1) if scores else 0,
        "total_overdue_returns": sum(c["overdue_returns"] for c in per_client),
        "total_pending_notices": sum(c["pending_notices"] for c in per_client),
        "client_compliance": per_client,
    }


async def revenue_trend_report(db: AsyncSession, user_id: UUID, year: int) -> dict[str, Any]:
    start, end = report_window(year)
    invoices = [inv for inv, _ in await _owned(db, Invoice, user_id, *_created_in(Invoice, start, end))]
    paid = [inv for inv in invoices if inv.status == InvoiceStatus.PAID.value]
    unpaid = [inv for inv in invoices if inv.status != InvoiceStatus.PAID.value]

    monthly = []
    for index, label in enumerate(_MONTHS, start=1):
        month_invoices = [inv for inv in invoices if inv.created_at.month == index]
        monthly.append({
            "month": label,
            "invoices": len(month_invoices),
            "total_amount": _total(month_invoices),
            "paid_amount": _total([i for i in month_invoices if i.status == InvoiceStatus.PAID.value]),
            "pending_amount": _total([i for i in month_invoices if i.status != InvoiceStatus.PAID.value]),
        })

    return {
        "yearly_total": _total(invoices),
        "yearly_paid": _total(paid),
        "yearly_pending": _total(unpaid),
        "total_invoices": len(invoices),
        "paid_invoices": len(paid),
        "pending_invoices": len(unpaid),
        "monthly_data": monthly,
    }


async def notice_management_report(
    db: AsyncSession,
    user_id: UUID,
    start: date,
    end: date,
    today: date,
) -> dict[str, Any]:
    rows = await _owned(db, Notice, user_id, Notice.received_at >= start, Notice.received_at < end)
    notices = [n for n, _ in rows]
    by_status = Counter(n.status for n in notices)
    return {
        "total_notices": len(notices),
        "by_status": {s.value: by_status[s.value] for s in NoticeStatus},
        "notice_type_breakdown": dict(Counter(n.notice_type for n in notices)),
        "overdue": sum(
            1 for n in notices
            if n.status not in CLOSED_NOTICE_STATUSES and n.due_date is not None and n.due_date < today
        ),
        "notices": [
            {
                "id": n.id,
                "client": _client_ref(c),
                "notice_no": n.notice_no,
                "notice_type": n.notice_type,
                "subject": n.subject,
                "received_at": n.received_at,
                "due_date": n.due_date,
                "status": n.status,
            }
            for n, c in rows
        ],
    }


async def generate_report(
    db: AsyncSession,
    user_id: UUID,
    report_type: str,
    year: int,
    month: int | None = None,
    today: date | None = None,
) -> dict[str, Any]:
    """Build one report for ``year`` (or ``month`` of it), scoped to the practitioner."""
    if report_type not in REPORT_TYPES:
        raise ValidationError(
            f"Unknown report type '{report_type}'",
            field="type",
            allowed=list(REPORT_TYPES),
        )
    today = today or datetime.now(timezone.utc).date()
    start, end = report_window(year, month)

    if report_type == "client-summary":
        data = await client_summary_report(db, user_id, start, end)
    elif report_type == "returns-filing":
        data = await returns_filing_report(db, user_id, start, end)
    elif report_type == "payment-analysis":
        data = await payment_analysis_report(db, user_id, start, end)
    elif report_type == "compliance-status":
        data = await compliance_status_report(db, user_id, start, end, today)
    elif report_type == "revenue-trend":
        data = await revenue_trend_report(db, user_id, year)
    else:
        data = await notice_management_report(db, user_id, start, end, today)

    logger.info("Generated %s report for user %s (%s)", report_type, user_id, _period_label(year, month))
    if report_type == "revenue-trend":
        return {**data, "year": str(year)}
    return {**data, "period": _period_label(year, month)}
