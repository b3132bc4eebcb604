# tests/test_reports_service.py
"""Tests for practice reports and period analytics."""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from app.domain.errors import ValidationError
from app.domain.models.compliance import EntityKind
from app.domain.services.dashboard_service import period_start, practice_analytics
from app.domain.services.reports_service import generate_report, report_window

TODAY = datetime.now(timezone.utc).date()


def _report(event_loop, session_factory, user_id, report_type, year, month=None):
    async def _go():
        async with session_factory() as session:
            return await generate_report(session, user_id, report_type, year, month, today=TODAY)

    return event_loop.run_until_complete(_go())


# ---------------------------------------------------------------------------
# Windows
# ---------------------------------------------------------------------------

def test_report_window_for_year_and_month():
    assert report_window(2025) == (date(2025, 1, 1), date(2026, 1, 1))
    assert report_window(2025, 3) == (date(2025, 3, 1), date(2025, 4, 1))
    assert report_window(2025, 12) == (date(2025, 12, 1), date(2026, 1, 1))
    with pytest.raises(ValidationError):
        report_window(2025, 13)


@pytest.mark.parametrize(
    "period,today,expected",
    [
        ("1month", date(2025, 3, 31), date(2025, 2, 28)),
        ("3months", date(2025, 4, 20), date(2025, 1, 20)),
        ("6months", date(2025, 4, 20), date(2024, 10, 20)),
        ("1year", date(2024, 2, 29), date(2023, 2, 28)),
    ],
)
def test_period_start(period, today, expected):
    assert period_start(period, today) == expected


def test_unknown_period_is_rejected():
    with pytest.raises(ValidationError):
        period_start("2weeks", date(2025, 4, 20))


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------

def test_returns_filing_report_uses_due_dates(event_loop, session_factory, engine, actor, client_id):
    async def _seed():
        filed = await engine.create(actor, EntityKind.RETURN, {
            "client_id": client_id, "return_type": "GSTR-3B", "period": "02-2025",
            "due_date": date(2025, 3, 20),
        })
        await engine.create(actor, EntityKind.PAYMENT, {
            "client_id": client_id, "return_id": filed.entity_id, "amount": Decimal("12500.00"),
        })
        await engine.update(actor, EntityKind.RETURN, filed.entity_id, {"status": "Filed"})
        await engine.create(actor, EntityKind.RETURN, {
            "client_id": client_id, "return_type": "GSTR-1", "period": "02-2025",
            "due_date": date(2025, 3, 11),
        })
        await engine.create(actor, EntityKind.RETURN, {
            "client_id": client_id, "return_type": "GSTR-3B", "period": "03-2025",
            "due_date": date(2025, 4, 20),
        })

    event_loop.run_until_complete(_seed())

    report = _report(event_loop, session_factory, actor.user_id, "returns-filing", 2025, 3)

    assert report["period"] == "03-2025"
    assert report["total_returns"] == 2
    assert report["by_status"]["Filed"] == 1
    assert report["by_status"]["Draft"] == 1
    assert report["return_type_breakdown"] == {"GSTR-3B": 1, "GSTR-1": 1}
    assert report["total_tax_amount"] == Decimal("12500")


def test_payment_analysis_report_totals(event_loop, session_factory, engine, actor, client_id):
    async def _seed():
        paid = await engine.create(actor, EntityKind.PAYMENT, {"client_id": client_id, "amount": Decimal("12500.00")})
        await engine.update(actor, EntityKind.PAYMENT, paid.entity_id, {"status": "PAID"})
        await engine.create(actor, EntityKind.PAYMENT, {
            "client_id": client_id, "amount": Decimal("3000.00"), "payment_type": "INTEREST",
        })

    event_loop.run_until_complete(_seed())

    report = _report(event_loop, session_factory, actor.user_id, "payment-analysis", TODAY.year)

    assert report["total_payments"] == 2
    assert report["by_status"]["PAID"] == 1
    assert report["by_status"]["PENDING"] == 1
    assert report["total_amount"] == Decimal("15500")
    assert report["paid_amount"] == Decimal("12500")
    assert report["pending_amount"] == Decimal("3000")
    assert report["payment_type_breakdown"] == {"GST": 1, "INTEREST": 1}


def test_compliance_status_scores_each_client(event_loop, session_factory, engine, actor, client_id):
    async def _seed():
        await engine.create(actor, EntityKind.CLIENT, {"business_name": "XYZ Enterprises"})
        await engine.create(actor, EntityKind.RETURN, {
            "client_id": client_id, "return_type": "GSTR-3B", "period": "03-2025",
            "due_date": TODAY - timedelta(days=1),
        })
        await engine.create(actor, EntityKind.NOTICE, {
            "client_id": client_id, "notice_type": "ASMT-10", "subject": "Scrutiny",
            "due_date": TODAY - timedelta(days=1),
        })

    event_loop.run_until_complete(_seed())

    report = _report(event_loop, session_factory, actor.user_id, "compliance-status", TODAY.year)

    scores = {c["client"]["business_name"]: c["compliance_score"] for c in report["client_compliance"]}
    assert scores == {"ABC Traders Pvt Ltd": 70, "XYZ Enterprises": 100}
    assert report["fully_compliant"] == 1
    assert report["partially_compliant"] == 1
    assert report["non_compliant"] == 0
    assert report["average_compliance_score"] == 85
    assert report["total_overdue_returns"] == 1
    assert report["total_pending_notices"] == 1


def test_client_summary_counts_records(event_loop, session_factory, engine, actor, client_id):
    async def _seed():
        reg = await engine.create(actor, EntityKind.REGISTRATION, {"client_id": client_id})
        await engine.update(actor, EntityKind.REGISTRATION, reg.entity_id, {"status": "Approved"})
        await engine.create(actor, EntityKind.RETURN, {"client_id": client_id, "return_type": "GSTR-1", "period": "03-2025"})

    event_loop.run_until_complete(_seed())

    report = _report(event_loop, session_factory, actor.user_id, "client-summary", TODAY.year)

    assert report["total_clients"] == 1
    assert report["active_gst"] == 1
    assert report["new_registrations"] == 1
    assert report["clients"][0]["returns"] == 1
    assert report["clients"][0]["registrations"] == 1


def test_revenue_trend_has_twelve_months(event_loop, session_factory, engine, actor, client_id):
    async def _seed():
        inv = await engine.create(actor, EntityKind.INVOICE, {"client_id": client_id, "invoice_no": "INV-1", "amount": Decimal("5900.00")})
        await engine.update(actor, EntityKind.INVOICE, inv.entity_id, {"status": "Paid"})
        await engine.create(actor, EntityKind.INVOICE, {"client_id": client_id, "invoice_no": "INV-2", "amount": Decimal("1180.00")})

    event_loop.run_until_complete(_seed())

    report = _report(event_loop, session_factory, actor.user_id, "revenue-trend", TODAY.year)

    assert report["year"] == str(TODAY.year)
    assert len(report["monthly_data"]) == 12
    assert report["yearly_total"] == Decimal("7080")
    assert report["yearly_paid"] == Decimal("5900")
    assert report["pending_invoices"] == 1
    assert report["monthly_data"][TODAY.month - 1]["invoices"] == 2


def test_notice_management_uses_received_dates(event_loop, session_factory, engine, actor, client_id):
    async def _seed():
        await engine.create(actor, EntityKind.NOTICE, {
            "client_id": client_id, "notice_type": "DRC-01", "subject": "Demand",
            "received_at": date(2025, 3, 5), "due_date": date(2025, 4, 4),
        })
        await engine.create(actor, EntityKind.NOTICE, {
            "client_id": client_id, "notice_type": "ASMT-10", "subject": "Scrutiny",
            "received_at": date(2025, 5, 2),
        })

    event_loop.run_until_complete(_seed())

    report = _report(event_loop, session_factory, actor.user_id, "notice-management", 2025, 3)

    assert report["total_notices"] == 1
    assert report["notice_type_breakdown"] == {"DRC-01": 1}
    assert report["overdue"] == 1


def test_reports_are_scoped_to_the_practitioner(event_loop, session_factory, engine, actor, other_actor, client_id):
    event_loop.run_until_complete(engine.create(actor, EntityKind.PAYMENT, {"client_id": client_id, "amount": 100}))

    report = _report(event_loop, session_factory, other_actor.user_id, "payment-analysis", TODAY.year)

    assert report["total_payments"] == 0
    assert report["total_amount"] == Decimal("0")


def test_unknown_report_type_is_rejected(event_loop, session_factory, actor):
    with pytest.raises(ValidationError) as exc:
        _report(event_loop, session_factory, actor.user_id, "tax-liability", 2025)
    assert exc.value.details["field"] == "type"


# ---------------------------------------------------------------------------
# Period analytics
# ---------------------------------------------------------------------------

def test_practice_analytics_over_period(event_loop, session_factory, engine, actor, client_id):
    async def _seed_and_read():
        filed = await engine.create(actor, EntityKind.RETURN, {"client_id": client_id, "return_type": "GSTR-1", "period": "03-2025"})
        await engine.update(actor, EntityKind.RETURN, filed.entity_id, {"status": "Filed"})
        await engine.create(actor, EntityKind.RETURN, {
            "client_id": client_id, "return_type": "GSTR-3B", "period": "03-2025", "status": "Overdue",
        })
        await engine.create(actor, EntityKind.INVOICE, {"client_id": client_id, "invoice_no": "INV-1", "amount": Decimal("1180.00")})
        await engine.create(actor, EntityKind.NOTICE, {"client_id": client_id, "notice_type": "REG-17", "subject": "Show cause"})
        async with session_factory() as session:
            return await practice_analytics(session, actor.user_id, "1month", today=TODAY)

    data = event_loop.run_until_complete(_seed_and_read())

    month = f"{TODAY:%Y-%m}"
    assert data["total_clients"] == 1
    assert data["monthly_returns"] == [{"period": "03-2025", "count": 2}]
    assert data["revenue"] == [{"month": month, "amount": Decimal("1180")}]
    assert data["client_acquisition"] == [{"month": month, "count": 1}]
    assert data["compliance_rate"] == 50.0
    assert data["outstanding_payments"] == Decimal("1180")
    assert data["pending_tasks"] == 2
