# app/domain/services/notification_service.py
"""
Practitioner notifications.

Two producers feed the same ``notifications`` table:

- ``NotificationTrigger``: told about every committed status change and
  decides whether it deserves an alert (return filed, registration
  approved, ...). Best-effort: a failing sink is logged and never unwinds
  the transition that was already committed.
- ``run_all_checks``: periodic sweep for upcoming return deadlines, notice
  reply dates and unpaid invoices. Deduplicated per item per day.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.domain.models.compliance import (
    ActorContext,
    CommittedState,
    CommittedTransition,
    EntityKind,
    NoticeStatus,
    RegistrationStatus,
    ReturnStatus,
)
from app.infrastructure.db.repositories.notification_repository import NotificationRepository

logger = logging.getLogger("notification_service")

PENDING_NOTICE_STATUSES = (NoticeStatus.RECEIVED.value, NoticeStatus.IN_PROGRESS.value)
OPEN_RETURN_STATUSES = (ReturnStatus.DRAFT.value, ReturnStatus.OVERDUE.value)
UNPAID_INVOICE_STATUSES = ("Draft", "Sent")


@dataclass(frozen=True)
class Alert:
    kind: str
    type: str
    title: str
    message: str
    payload: dict[str, Any] = field(default_factory=dict)

    def as_payload(self) -> dict[str, Any]:
        return {"type": self.type, "title": self.title, "message": self.message, **self.payload}


class NotificationSink(Protocol):
    async def create_alert(self, user_id: UUID, kind: str, payload: dict[str, Any]) -> None:
        ...


class DatabaseNotificationSink:
    """Persists alerts as Notification rows, each in its own short transaction."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def create_alert(self, user_id: UUID, kind: str, payload: dict[str, Any]) -> None:
        data = dict(payload)
        async with self.session_factory() as session:
            await NotificationRepository(session).create(
                user_id,
                kind=kind,
                type=data.pop("type", "INFO"),
                title=data.pop("title"),
                message=data.pop("message"),
                payload=_jsonable(data),
            )
            await session.commit()


def _jsonable(data: dict[str, Any]) -> dict[str, Any]:
    return {k: (str(v) if isinstance(v, (UUID, date, datetime)) else v) for k, v in data.items()}


# ---------------------------------------------------------------------------
# Transition alerts
# ---------------------------------------------------------------------------

def _describe_return(state: CommittedState, event: CommittedTransition) -> tuple[str, str]:
    row = state.entity if event.kind == state.kind else state.related.get(EntityKind.RETURN.value, {})
    return_type = row.get("return_type") or "Return"
    period = row.get("period")
    return return_type, (f"{return_type} for {period}" if period else return_type)


def alerts_for(event: CommittedTransition, state: CommittedState) -> list[Alert]:
    """Alerts implied by one committed status change."""
    payload = {"entity_kind": event.kind.value, "entity_id": event.entity_id, "client_id": event.client_id}

    if event.kind == EntityKind.RETURN:
        return_type, label = _describe_return(state, event)
        if event.to_status == ReturnStatus.FILED.value:
            return [Alert("return_filed", "SUCCESS", f"Success: {return_type} Filed",
                          f"{label} has been successfully filed.", payload)]
        if event.to_status == ReturnStatus.OVERDUE.value:
            return [Alert("return_overdue", "ERROR", f"Overdue: {label}",
                          f"{label} is overdue. Immediate action required!", payload)]

    elif event.kind == EntityKind.REGISTRATION:
        if event.to_status == RegistrationStatus.APPROVED.value:
            return [Alert("registration_approved", "SUCCESS", "GST Registration Approved",
                          "GST registration has been approved; client GST status is now ACTIVE.", payload)]
        if event.to_status == RegistrationStatus.REJECTED.value:
            return [Alert("registration_rejected", "WARNING", "GST Registration Rejected",
                          "GST registration was rejected. Review the application and resubmit.", payload)]

    elif event.kind == EntityKind.NOTICE:
        if event.from_status is None and event.to_status == NoticeStatus.RECEIVED.value:
            notice_type = state.entity.get("notice_type") or "Notice"
            due = state.entity.get("due_date")
            message = f"New {notice_type} received: {state.entity.get('subject', '')}."
            if due:
                message += f" Due date: {due:%b %d, %Y}."
            return [Alert("notice_received", "WARNING", f"New Notice Received: {notice_type}", message, payload)]

    return []


class NotificationTrigger:
    """Observes committed transitions and hands resulting alerts to a sink."""

    def __init__(self, sink: NotificationSink) -> None:
        self.sink = sink

    async def on_committed(self, ctx: ActorContext, state: CommittedState) -> int:
        """Create alerts for ``state.events``. Returns how many were delivered."""
        delivered = 0
        for event in state.events:
            try:
                for alert in alerts_for(event, state):
                    await self.sink.create_alert(ctx.user_id, alert.kind, alert.as_payload())
                    delivered += 1
            except Exception:
                logger.exception(
                    "Failed to create alert for %s %s -> %s",
                    event.kind.value, event.entity_id, event.to_status,
                )
        return delivered


# ---------------------------------------------------------------------------
# Periodic checks
# ---------------------------------------------------------------------------

def _start_of_day(today: date) -> datetime:
    return datetime.combine(today, time.min, tzinfo=timezone.utc)


def _plural_days(n: int) -> str:
    return f"{n} day{'s' if n != 1 else ''}"


async def check_upcoming_return_deadlines(db: AsyncSession, today: date, user_id: UUID | None = None) -> int:
    """Remind about open returns: ERROR within the critical window, WARNING within the warning window, INFO otherwise."""
    from app.infrastructure.db.models import Client, GSTReturn

    repo = NotificationRepository(db)
    stmt = (
        select(GSTReturn, Client)
        .join(Client, GSTReturn.client_id == Client.id)
        .where(
            GSTReturn.status.in_(OPEN_RETURN_STATUSES),
            GSTReturn.due_date >= today,
        )
    )
    if user_id is not None:
        stmt = stmt.where(Client.user_id == user_id)
    rows = (await db.execute(stmt)).all()

    count = 0
    for ret, client in rows:
        marker = f"{ret.return_type} - {ret.period}"
        if await repo.exists_since(client.user_id, "return_deadline", "return_id", ret.id, _start_of_day(today)):
            continue

        days = (ret.due_date - today).days
        due = f"{ret.due_date:%b %d, %Y}"
        if days <= settings.RETURN_CRITICAL_DAYS:
            type_, title = "ERROR", f"Critical: {marker} Due Soon"
            message = f"{client.business_name} - {ret.return_type} for {ret.period} is due in {_plural_days(days)} ({due}). Immediate action required!"
        elif days <= settings.RETURN_WARNING_DAYS:
            type_, title = "WARNING", f"Reminder: {marker} Due Soon"
            message = f"{client.business_name} - {ret.return_type} for {ret.period} is due in {_plural_days(days)} ({due}). Please file soon."
        else:
            type_, title = "INFO", f"Upcoming: {marker} Due"
            message = f"{client.business_name} - {ret.return_type} for {ret.period} is due on {due}."

        await repo.create(
            client.user_id, kind="return_deadline", type=type_, title=title, message=message,
            payload={"return_id": str(ret.id), "days_until_due": days},
        )
        count += 1
    return count


async def check_overdue_notices(db: AsyncSession, today: date, user_id: UUID | None = None) -> int:
    """Remind about notices awaiting a reply that are due soon or already overdue."""
    from app.infrastructure.db.models import Client, Notice

    repo = NotificationRepository(db)
    stmt = (
        select(Notice, Client)
        .join(Client, Notice.client_id == Client.id)
        .where(Notice.status.in_(PENDING_NOTICE_STATUSES), Notice.due_date.is_not(None))
    )
    if user_id is not None:
        stmt = stmt.where(Client.user_id == user_id)
    rows = (await db.execute(stmt)).all()

    count = 0
    for notice, client in rows:
        days = (notice.due_date - today).days
        if days > settings.NOTICE_WARNING_DAYS:
            continue
        marker = f"{notice.notice_type} {notice.notice_no or notice.id}"
        if await repo.exists_since(client.user_id, "notice_deadline", "notice_id", notice.id, _start_of_day(today)):
            continue

        due = f"{notice.due_date:%b %d, %Y}"
        if days <= 0:
            type_, title = "ERROR", f"Overdue: {marker} Reply"
            message = f"{client.business_name} - Reply for {notice.notice_type} is overdue! Due date was {due}."
        else:
            type_, title = "WARNING", f"Reminder: {marker} Reply Due"
            message = f"{client.business_name} - Reply for {notice.notice_type} is due in {_plural_days(days)} ({due})."

        await repo.create(
            client.user_id, kind="notice_deadline", type=type_, title=title, message=message,
            payload={"notice_id": str(notice.id), "days_until_due": days},
        )
        count += 1
    return count


async def check_pending_invoices(db: AsyncSession, today: date, user_id: UUID | None = None) -> int:
    """Remind about unpaid practice invoices that are due soon or overdue."""
    from app.infrastructure.db.models import Client, Invoice

    repo = NotificationRepository(db)
    stmt = (
        select(Invoice, Client)
        .join(Client, Invoice.client_id == Client.id)
        .where(Invoice.status.in_(UNPAID_INVOICE_STATUSES), Invoice.due_date.is_not(None))
    )
    if user_id is not None:
        stmt = stmt.where(Client.user_id == user_id)
    rows = (await db.execute(stmt)).all()

    count = 0
    for invoice, client in rows:
        days = (invoice.due_date - today).days
        if days > settings.INVOICE_WARNING_DAYS:
            continue
        marker = f"Invoice {invoice.invoice_no}"
        if await repo.exists_since(client.user_id, "invoice_due", "invoice_id", invoice.id, _start_of_day(today)):
            continue

        due = f"{invoice.due_date:%b %d, %Y}"
        if days <= 0:
            type_, title = "ERROR", f"Overdue: {marker}"
            message = f"{client.business_name} - {marker} for ₹{invoice.amount} is overdue! Due date was {due}."
        else:
            type_, title = "WARNING", f"Reminder: {marker} Due"
            message = f"{client.business_name} - {marker} for ₹{invoice.amount} is due in {_plural_days(days)} ({due})."

        await repo.create(
            client.user_id, kind="invoice_due", type=type_, title=title, message=message,
            payload={"invoice_id": str(invoice.id), "days_until_due": days},
        )
        count += 1
    return count


async def run_all_checks(
    db: AsyncSession,
    today: date | None = None,
    user_id: UUID | None = None,
) -> dict[str, int]:
    """Run every periodic check and commit the notifications they created.

    ``user_id`` limits the sweep to one practitioner's clients; the worker
    passes none and covers everyone.
    """
    today = today or datetime.now(timezone.utc).date()
    counts = {
        "returns": await check_upcoming_return_deadlines(db, today, user_id),
        "notices": await check_overdue_notices(db, today, user_id),
        "invoices": await check_pending_invoices(db, today, user_id),
    }
    await db.commit()
    logger.info("Notification checks completed: %s", counts)
    return counts


async def compliance_badges(db: AsyncSession, user_id: UUID, today: date | None = None) -> dict[str, int]:
    """Dashboard badge counts: overdue returns, pending notices, unread notifications."""
    from app.infrastructure.db.models import Client, GSTReturn, Notice

    today = today or datetime.now(timezone.utc).date()

    overdue_stmt = (
        select(func.count())
        .select_from(GSTReturn)
        .join(Client, GSTReturn.client_id == Client.id)
        .where(
            Client.user_id == user_id,
            (GSTReturn.status == ReturnStatus.OVERDUE.value)
            | ((GSTReturn.status == ReturnStatus.DRAFT.value) & (GSTReturn.due_date < today)),
        )
    )
    pending_stmt = (
        select(func.count())
        .select_from(Notice)
        .join(Client, Notice.client_id == Client.id)
        .where(Client.user_id == user_id, Notice.status.in_(PENDING_NOTICE_STATUSES))
    )
    return {
        "overdue_returns": (await db.execute(overdue_stmt)).scalar_one() or 0,
        "pending_notices": (await db.execute(pending_stmt)).scalar_one() or 0,
        "unread_notifications": await NotificationRepository(db).unread_count(user_id),
    }
