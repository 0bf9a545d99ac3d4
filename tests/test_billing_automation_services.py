"""Tests for billing automation services."""

import uuid
from datetime import timedelta
from decimal import Decimal

import pytest
from celery.exceptions import SoftTimeLimitExceeded

from partner_billing.models.billing import (
    BillingRun,
    BillingRunStatus,
    InvoiceStatus,
    PartnerFee,
    PartnerInvoice,
)
from partner_billing.services import billing as billing_service
from partner_billing.services import billing_automation
from partner_billing.services.common import as_utc

from tests.conftest import NOW


def _invoices(db_session, partner):
    return (
        db_session.query(PartnerInvoice)
        .filter(PartnerInvoice.partner_id == partner.id)
        .order_by(PartnerInvoice.created_at.asc())
        .all()
    )


# =============================================================================
# run_invoice_cycle Tests
# =============================================================================


class TestRunInvoiceCycle:
    """Tests for run_invoice_cycle."""

    def test_invoices_due_partner(self, db_session, make_partner, make_fee):
        """Test a 40 day old partner with three fees gets one invoice."""
        partner = make_partner(age=timedelta(days=40))
        for days, value in ((25, "10.00"), (15, "20.00"), (2, "30.00")):
            make_fee(partner, value, NOW - timedelta(days=days))

        summary = billing_automation.run_invoice_cycle(db_session, run_at=NOW)

        invoices = _invoices(db_session, partner)
        assert len(invoices) == 1
        invoice = invoices[0]
        assert invoice.total_amount == Decimal("60.00")
        assert invoice.total_orders == 3
        assert invoice.status == InvoiceStatus.pending
        assert as_utc(invoice.start_date) == NOW - timedelta(days=30)
        assert as_utc(invoice.end_date) == NOW
        assert all(fee.settled for fee in db_session.query(PartnerFee).all())
        assert summary["partners_invoiced"] == 1
        assert summary["invoices_created"] == 1
        assert summary["fees_settled"] == 3

    def test_young_partner_is_skipped(self, db_session, make_partner, make_fee):
        """Test a partner younger than one window is left alone."""
        partner = make_partner(age=timedelta(days=10))
        make_fee(partner, "5.00", NOW - timedelta(days=1))

        summary = billing_automation.run_invoice_cycle(db_session, run_at=NOW)

        assert _invoices(db_session, partner) == []
        assert summary["partners_skipped"] == 1

    def test_no_fees_produces_no_invoice(self, db_session, make_partner):
        """Test zero-amount invoices are never created."""
        partner = make_partner(age=timedelta(days=40))

        summary = billing_automation.run_invoice_cycle(db_session, run_at=NOW)

        assert _invoices(db_session, partner) == []
        assert summary["partners_skipped"] == 1
        assert summary["partners_invoiced"] == 0

    def test_consecutive_windows_are_contiguous(self, db_session, make_partner, make_fee):
        """Test the second invoice starts where the first ended."""
        partner = make_partner(age=timedelta(days=40))
        make_fee(partner, "10.00", NOW - timedelta(days=5))
        billing_automation.run_invoice_cycle(db_session, run_at=NOW)

        later = NOW + timedelta(days=31)
        make_fee(partner, "7.50", NOW + timedelta(days=10))
        billing_automation.run_invoice_cycle(db_session, run_at=later)

        first, second = _invoices(db_session, partner)
        assert as_utc(second.start_date) == as_utc(first.end_date)
        assert as_utc(second.end_date) == later
        assert second.total_amount == Decimal("7.50")

    def test_rerun_same_day_is_noop(self, db_session, make_partner, make_fee):
        """Test running twice does not bill the same window again."""
        partner = make_partner(age=timedelta(days=40))
        make_fee(partner, "10.00", NOW - timedelta(days=5))

        billing_automation.run_invoice_cycle(db_session, run_at=NOW)
        summary = billing_automation.run_invoice_cycle(
            db_session, run_at=NOW + timedelta(hours=6)
        )

        assert len(_invoices(db_session, partner)) == 1
        assert summary["partners_invoiced"] == 0

    def test_fee_before_window_stays_unsettled(self, db_session, make_partner, make_fee):
        """Test fees older than the first window are not swept in."""
        partner = make_partner(age=timedelta(days=60))
        stale = make_fee(partner, "99.00", NOW - timedelta(days=45))
        make_fee(partner, "1.00", NOW - timedelta(days=3))

        billing_automation.run_invoice_cycle(db_session, run_at=NOW)

        db_session.refresh(stale)
        assert stale.settled is False
        assert _invoices(db_session, partner)[0].total_amount == Decimal("1.00")

    def test_inactive_partner_not_scanned(self, db_session, make_partner, make_fee):
        """Test inactive partners are excluded from the scan."""
        partner = make_partner(age=timedelta(days=40), is_active=False)
        make_fee(partner, "10.00", NOW - timedelta(days=5))

        summary = billing_automation.run_invoice_cycle(db_session, run_at=NOW)

        assert summary["partners_scanned"] == 0
        assert _invoices(db_session, partner) == []

    def test_partner_failure_is_isolated(
        self, db_session, make_partner, make_fee, monkeypatch
    ):
        """Test one failing partner rolls back alone and the scan continues."""
        failing = make_partner(age=timedelta(days=50), name="Failing")
        healthy = make_partner(age=timedelta(days=40), name="Healthy")
        make_fee(failing, "10.00", NOW - timedelta(days=5))
        make_fee(healthy, "20.00", NOW - timedelta(days=5))
        original = billing_service.stage_invoice

        def _stage(db, partner, window, fees):
            if partner.id == failing.id:
                original(db, partner, window, fees)
                raise RuntimeError("storage unavailable")
            return original(db, partner, window, fees)

        monkeypatch.setattr(billing_service, "stage_invoice", _stage)

        summary = billing_automation.run_invoice_cycle(db_session, run_at=NOW)

        assert _invoices(db_session, failing) == []
        failing_fees = (
            db_session.query(PartnerFee).filter(PartnerFee.partner_id == failing.id).all()
        )
        assert all(not fee.settled for fee in failing_fees)
        assert len(_invoices(db_session, healthy)) == 1
        assert summary["partners_failed"] == 1
        assert summary["failures"] == [
            {"partner_id": str(failing.id), "error": "storage unavailable"}
        ]
        run = db_session.get(BillingRun, uuid.UUID(summary["run_id"]))
        assert run.status == BillingRunStatus.partial

    def test_records_successful_run(self, db_session, make_partner, make_fee):
        """Test the run row is finalised with counters."""
        partner = make_partner(age=timedelta(days=40))
        make_fee(partner, "10.00", NOW - timedelta(days=5))

        summary = billing_automation.run_invoice_cycle(db_session, run_at=NOW)

        run = db_session.get(BillingRun, uuid.UUID(summary["run_id"]))
        assert run.status == BillingRunStatus.success
        assert run.partners_invoiced == 1
        assert run.fees_settled == 1
        assert run.finished_at is not None
        assert run.error is None

    def test_dry_run_writes_nothing(self, db_session, make_partner, make_fee):
        """Test dry run reports without persisting."""
        partner = make_partner(age=timedelta(days=40))
        make_fee(partner, "10.00", NOW - timedelta(days=5))

        summary = billing_automation.run_invoice_cycle(db_session, run_at=NOW, dry_run=True)

        assert summary["run_id"] is None
        assert summary["partners_invoiced"] == 1
        assert summary["fees_settled"] == 1
        assert _invoices(db_session, partner) == []
        assert db_session.query(BillingRun).count() == 0
        assert db_session.query(PartnerFee).filter(PartnerFee.settled.is_(True)).count() == 0

    def test_soft_time_limit_fails_run(
        self, db_session, make_partner, make_fee, monkeypatch
    ):
        """Test the time limit aborts the run and marks it failed."""
        partner = make_partner(age=timedelta(days=40))
        make_fee(partner, "10.00", NOW - timedelta(days=5))

        def _timeout(*args, **kwargs):
            raise SoftTimeLimitExceeded()

        monkeypatch.setattr(billing_service, "stage_invoice", _timeout)

        with pytest.raises(SoftTimeLimitExceeded):
            billing_automation.run_invoice_cycle(db_session, run_at=NOW)

        run = db_session.query(BillingRun).one()
        assert run.status == BillingRunStatus.failed
        assert run.error == "Time limit exceeded"
        assert _invoices(db_session, partner) == []

    def test_issues_next_invoice_while_previous_pending(
        self, db_session, make_partner, make_fee
    ):
        """Test an unpaid previous invoice does not block billing."""
        partner = make_partner(age=timedelta(days=40))
        make_fee(partner, "10.00", NOW - timedelta(days=5))
        billing_automation.run_invoice_cycle(db_session, run_at=NOW)
        make_fee(partner, "4.00", NOW + timedelta(days=20))

        billing_automation.run_invoice_cycle(db_session, run_at=NOW + timedelta(days=30))

        invoices = _invoices(db_session, partner)
        assert [invoice.status for invoice in invoices] == [InvoiceStatus.pending] * 2
