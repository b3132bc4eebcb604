# tests/test_notification_service.py
"""Tests for transition alerts, periodic reminder checks and dashboard badges."""

import uuid
from datetime import date, timedelta
from unittest.mock import AsyncMock, MagicMock

from app.domain.models.compliance import (
    ActorContext,
    CommittedState,
    CommittedTransition,
    EntityKind,
)
from app.domain.services.compliance_engine import ComplianceEngine
from app.domain.services.notification_service import (
    DatabaseNotificationSink,
    NotificationTrigger,
    alerts_for,
    compliance_badges,
    run_all_checks,
)
from app.infrastructure.db.repositories.notification_repository import NotificationRepository

TODAY = date(2025, 4, 20)


def _state(kind, entity, events, related=None):
    return CommittedState(
        kind=kind, entity_id=entity.get("id", uuid.uuid4()), entity=entity,
        related=related or {}, events=events,
    )


def _notifications(event_loop, session_factory, user_id):
    async def _list():
        async with session_factory() as session:
            return await NotificationRepository(session).list_for_user(user_id)

    return event_loop.run_until_complete(_list())


# ---------------------------------------------------------------------------
# Transition alerts
# ---------------------------------------------------------------------------

def test_cascaded_return_filed_alert_names_the_return():
    return_id = uuid.uuid4()
    event = CommittedTransition(EntityKind.RETURN, return_id, uuid.uuid4(), "Draft", "Filed", via_cascade=True)
    state = _state(
        EntityKind.PAYMENT, {"status": "PAID"}, [event],
        related={"return": {"id": return_id, "return_type": "GSTR-3B", "period": "03-2025"}},
    )

    alerts = alerts_for(event, state)

    assert len(alerts) == 1
    assert alerts[0].type == "SUCCESS"
    assert alerts[0].title == "Success: GSTR-3B Filed"
    assert "GSTR-3B for 03-2025" in alerts[0].message


def test_new_notice_alert_only_on_create():
    entity = {"notice_type": "ASMT-10", "subject": "Scrutiny", "due_date": date(2025, 5, 1)}
    created = CommittedTransition(EntityKind.NOTICE, uuid.uuid4(), uuid.uuid4(), None, "RECEIVED")
    reopened = CommittedTransition(EntityKind.NOTICE, uuid.uuid4(), uuid.uuid4(), "IN_PROGRESS", "RECEIVED")

    alerts = alerts_for(created, _state(EntityKind.NOTICE, entity, [created]))
    assert [a.title for a in alerts] == ["New Notice Received: ASMT-10"]
    assert "May 01, 2025" in alerts[0].message
    assert alerts_for(reopened, _state(EntityKind.NOTICE, entity, [reopened])) == []


def test_registration_outcomes_produce_alerts():
    approved = CommittedTransition(EntityKind.REGISTRATION, uuid.uuid4(), uuid.uuid4(), "Submitted", "Approved")
    rejected = CommittedTransition(EntityKind.REGISTRATION, uuid.uuid4(), uuid.uuid4(), "Submitted", "Rejected")
    submitted = CommittedTransition(EntityKind.REGISTRATION, uuid.uuid4(), uuid.uuid4(), "Draft", "Submitted")

    assert alerts_for(approved, _state(EntityKind.REGISTRATION, {}, [approved]))[0].type == "SUCCESS"
    assert alerts_for(rejected, _state(EntityKind.REGISTRATION, {}, [rejected]))[0].type == "WARNING"
    assert alerts_for(submitted, _state(EntityKind.REGISTRATION, {}, [submitted])) == []


def test_trigger_swallows_sink_failure(event_loop):
    sink = MagicMock()
    sink.create_alert = AsyncMock(side_effect=RuntimeError("sink down"))
    trigger = NotificationTrigger(sink)
    event = CommittedTransition(EntityKind.REGISTRATION, uuid.uuid4(), uuid.uuid4(), "Draft", "Approved")

    delivered = event_loop.run_until_complete(
        trigger.on_committed(ActorContext(uuid.uuid4()), _state(EntityKind.REGISTRATION, {}, [event]))
    )

    assert delivered == 0
    sink.create_alert.assert_awaited_once()


def test_failing_sink_does_not_undo_committed_transition(event_loop, session_factory, actor, client_id):
    sink = MagicMock()
    sink.create_alert = AsyncMock(side_effect=RuntimeError("sink down"))
    engine = ComplianceEngine(session_factory, trigger=NotificationTrigger(sink))

    reg = event_loop.run_until_complete(engine.create(actor, EntityKind.REGISTRATION, {"client_id": client_id}))
    event_loop.run_until_complete(engine.update(actor, EntityKind.REGISTRATION, reg.entity_id, {"status": "Approved"}))

    row = event_loop.run_until_complete(engine.get(actor, EntityKind.REGISTRATION, reg.entity_id))
    client = event_loop.run_until_complete(engine.get(actor, EntityKind.CLIENT, client_id))
    assert row["status"] == "Approved"
    assert client["gst_status"] == "ACTIVE"
    assert sink.create_alert.await_count >= 1


def test_database_sink_persists_alerts_after_commit(event_loop, session_factory, actor, client_id):
    engine = ComplianceEngine(session_factory, trigger=NotificationTrigger(DatabaseNotificationSink(session_factory)))
    ret = event_loop.run_until_complete(engine.create(
        actor, EntityKind.RETURN, {"client_id": client_id, "return_type": "GSTR-1", "period": "03-2025"},
    ))

    event_loop.run_until_complete(engine.update(actor, EntityKind.RETURN, ret.entity_id, {"status": "Filed"}))

    titles = [n.title for n in _notifications(event_loop, session_factory, actor.user_id)]
    assert titles == ["Success: GSTR-1 Filed"]


# ---------------------------------------------------------------------------
# Periodic checks
# ---------------------------------------------------------------------------

def _seed_due_items(event_loop, engine, actor, client_id):
    async def _seed():
        await engine.create(actor, EntityKind.RETURN, {
            "client_id": client_id, "return_type": "GSTR-3B", "period": "03-2025",
            "due_date": TODAY + timedelta(days=2),
        })
        await engine.create(actor, EntityKind.RETURN, {
            "client_id": client_id, "return_type": "GSTR-1", "period": "03-2025",
            "due_date": TODAY + timedelta(days=6),
        })
        await engine.create(actor, EntityKind.NOTICE, {
            "client_id": client_id, "notice_type": "DRC-01", "notice_no": "ZD3604250001",
            "subject": "Demand", "due_date": TODAY + timedelta(days=1),
        })
        await engine.create(actor, EntityKind.INVOICE, {
            "client_id": client_id, "invoice_no": "INV-2025-001", "amount": 5900,
            "due_date": TODAY - timedelta(days=2), "status": "Sent",
        })

    event_loop.run_until_complete(_seed())


def test_periodic_checks_create_reminders_once_per_day(event_loop, session_factory, engine, actor, client_id):
    _seed_due_items(event_loop, engine, actor, client_id)

    async def _check():
        async with session_factory() as session:
            return await run_all_checks(session, TODAY)

    first = event_loop.run_until_complete(_check())
    second = event_loop.run_until_complete(_check())

    assert first == {"returns": 2, "notices": 1, "invoices": 1}
    assert second == {"returns": 0, "notices": 0, "invoices": 0}

    by_title = {n.title: n for n in _notifications(event_loop, session_factory, actor.user_id)}
    assert by_title["Critical: GSTR-3B - 03-2025 Due Soon"].type == "ERROR"
    assert by_title["Reminder: GSTR-1 - 03-2025 Due Soon"].type == "WARNING"
    assert by_title["Reminder: DRC-01 ZD3604250001 Reply Due"].type == "WARNING"
    assert by_title["Overdue: Invoice INV-2025-001"].type == "ERROR"


def test_filed_returns_and_replied_notices_are_not_reminded(event_loop, session_factory, engine, actor, client_id):
    async def _seed_and_check():
        ret = await engine.create(actor, EntityKind.RETURN, {
            "client_id": client_id, "return_type": "GSTR-3B", "period": "02-2025",
            "due_date": TODAY + timedelta(days=1),
        })
        await engine.update(actor, EntityKind.RETURN, ret.entity_id, {"status": "Filed"})
        notice = await engine.create(actor, EntityKind.NOTICE, {
            "client_id": client_id, "notice_type": "ASMT-10", "subject": "Scrutiny",
            "due_date": TODAY,
        })
        await engine.update(actor, EntityKind.NOTICE, notice.entity_id, {"status": "REPLIED"})
        async with session_factory() as session:
            return await run_all_checks(session, TODAY)

    assert event_loop.run_until_complete(_seed_and_check()) == {"returns": 0, "notices": 0, "invoices": 0}


def test_same_return_period_for_two_clients_reminds_both(event_loop, session_factory, engine, actor, client_id):
    async def _seed_and_check():
        second = await engine.create(actor, EntityKind.CLIENT, {"business_name": "XYZ Enterprises"})
        for owner in (client_id, second.entity_id):
            await engine.create(actor, EntityKind.RETURN, {
                "client_id": owner, "return_type": "GSTR-3B", "period": "03-2025",
                "due_date": TODAY + timedelta(days=2),
            })
            await engine.create(actor, EntityKind.INVOICE, {
                "client_id": owner, "invoice_no": "INV-001", "amount": 1180,
                "due_date": TODAY + timedelta(days=1),
            })
        async with session_factory() as session:
            first = await run_all_checks(session, TODAY)
            again = await run_all_checks(session, TODAY)
        return first, again

    first, again = event_loop.run_until_complete(_seed_and_check())

    assert first == {"returns": 2, "notices": 0, "invoices": 2}
    assert again == {"returns": 0, "notices": 0, "invoices": 0}
    messages = [n.message for n in _notifications(event_loop, session_factory, actor.user_id)]
    assert sum("ABC Traders Pvt Ltd - GSTR-3B" in m for m in messages) == 1
    assert sum("XYZ Enterprises - GSTR-3B" in m for m in messages) == 1


def test_checks_can_be_limited_to_one_practitioner(event_loop, session_factory, engine, actor, other_actor, client_id):
    _seed_due_items(event_loop, engine, actor, client_id)

    async def _check(user_id):
        async with session_factory() as session:
            return await run_all_checks(session, TODAY, user_id=user_id)

    assert event_loop.run_until_complete(_check(other_actor.user_id)) == {"returns": 0, "notices": 0, "invoices": 0}
    assert event_loop.run_until_complete(_check(actor.user_id)) == {"returns": 2, "notices": 1, "invoices": 1}


def test_compliance_badges(event_loop, session_factory, engine, actor, client_id):
    async def _seed_and_count():
        await engine.create(actor, EntityKind.RETURN, {
            "client_id": client_id, "return_type": "GSTR-3B", "period": "01-2025",
            "due_date": TODAY - timedelta(days=5),
        })
        await engine.create(actor, EntityKind.RETURN, {
            "client_id": client_id, "return_type": "GSTR-1", "period": "02-2025", "status": "Overdue",
        })
        await engine.create(actor, EntityKind.NOTICE, {
            "client_id": client_id, "notice_type": "REG-17", "subject": "Show cause",
        })
        async with session_factory() as session:
            await NotificationRepository(session).create(
                actor.user_id, kind="return_deadline", title="Upcoming", message="m",
            )
            await session.commit()
            return await compliance_badges(session, actor.user_id, TODAY)

    badges = event_loop.run_until_complete(_seed_and_count())

    assert badges == {"overdue_returns": 2, "pending_notices": 1, "unread_notifications": 1}


# ---------------------------------------------------------------------------
# Background worker
# ---------------------------------------------------------------------------

def test_worker_cycle_runs_checks_on_app_sessions(event_loop, session_factory, engine, actor, client_id):
    from unittest.mock import patch

    from app.infrastructure.jobs.notification_worker import run_notification_cycle

    _seed_due_items(event_loop, engine, actor, client_id)

    with patch("app.core.db.AsyncSessionLocal", session_factory):
        counts = event_loop.run_until_complete(run_notification_cycle(TODAY))

    assert counts == {"returns": 2, "notices": 1, "invoices": 1}


def test_worker_cycle_logs_and_survives_errors(event_loop):
    from unittest.mock import patch

    from app.infrastructure.jobs.notification_worker import run_notification_cycle

    with patch("app.domain.services.notification_service.run_all_checks", AsyncMock(side_effect=RuntimeError("db down"))):
        assert event_loop.run_until_complete(run_notification_cycle()) == {}


def test_worker_not_started_when_disabled():
    from unittest.mock import patch

    from app.infrastructure.jobs import notification_worker

    with patch.object(notification_worker.settings, "NOTIFICATION_ENABLED", False):
        notification_worker.start_notification_worker()
    assert notification_worker._worker_task is None
