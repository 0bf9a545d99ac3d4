"""Tests for the partner fee ledger."""

import uuid
from datetime import timedelta
from decimal import Decimal

import pytest
from fastapi import HTTPException

from partner_billing.schemas.billing import FeeCreate
from partner_billing.services import billing as billing_service

from tests.conftest import NOW

# =============================================================================
# unsettled_in_window Tests
# =============================================================================


class TestUnsettledInWindow:
    """Tests for Fees.unsettled_in_window."""

    def test_returns_unsettled_fees_in_window_oldest_first(
        self, db_session, partner, make_fee
    ):
        """Test fees are filtered by window and ordered by creation time."""
        start = NOW - timedelta(days=30)
        late = make_fee(partner, "20.00", NOW - timedelta(days=5))
        early = make_fee(partner, "10.00", NOW - timedelta(days=25))

        fees = billing_service.fees.unsettled_in_window(db_session, partner.id, start, NOW)

        assert [fee.id for fee in fees] == [early.id, late.id]

    def test_bounds_are_inclusive(self, db_session, partner, make_fee):
        """Test fees created exactly at start or end are included."""
        start = NOW - timedelta(days=30)
        make_fee(partner, "1.00", start)
        make_fee(partner, "2.00", NOW)

        fees = billing_service.fees.unsettled_in_window(db_session, partner.id, start, NOW)

        assert len(fees) == 2

    def test_excludes_settled_fees(self, db_session, partner, make_fee):
        """Test already settled fees are never returned."""
        make_fee(partner, "5.00", NOW - timedelta(days=3), settled=True)
        open_fee = make_fee(partner, "7.00", NOW - timedelta(days=2))

        fees = billing_service.fees.unsettled_in_window(
            db_session, partner.id, NOW - timedelta(days=30), NOW
        )

        assert [fee.id for fee in fees] == [open_fee.id]

    def test_excludes_fees_outside_window(self, db_session, partner, make_fee):
        """Test fees older than the window start stay out."""
        make_fee(partner, "9.00", NOW - timedelta(days=45))

        fees = billing_service.fees.unsettled_in_window(
            db_session, partner.id, NOW - timedelta(days=30), NOW
        )

        assert fees == []

    def test_excludes_other_partners(self, db_session, make_partner, make_fee):
        """Test fees are scoped to the owning partner."""
        partner = make_partner()
        other = make_partner()
        make_fee(other, "3.00", NOW - timedelta(days=1))

        fees = billing_service.fees.unsettled_in_window(
            db_session, partner.id, NOW - timedelta(days=30), NOW
        )

        assert fees == []


# =============================================================================
# record / list Tests
# =============================================================================


class TestRecordFee:
    """Tests for Fees.record."""

    def test_records_unsettled_fee(self, db_session, partner):
        """Test a new fee starts unsettled."""
        fee = billing_service.fees.record(
            db_session,
            str(partner.id),
            FeeCreate(
                value=Decimal("12.50"),
                order_id="order-1",
                order_base_value=Decimal("125.00"),
                fee_percentage=Decimal("10"),
            ),
        )

        assert fee.settled is False
        assert fee.invoice_id is None
        assert fee.value == Decimal("12.50")
        assert fee.order_id == "order-1"

    def test_unknown_partner_returns_404(self, db_session):
        """Test recording against a missing partner fails."""
        with pytest.raises(HTTPException) as exc_info:
            billing_service.fees.record(
                db_session, str(uuid.uuid4()), FeeCreate(value=Decimal("1.00"))
            )

        assert exc_info.value.status_code == 404

    def test_list_filters_by_settled(self, db_session, partner, make_fee):
        """Test list honours the settled filter."""
        make_fee(partner, "1.00", NOW - timedelta(days=2), settled=True)
        make_fee(partner, "2.00", NOW - timedelta(days=1))

        items = billing_service.fees.list(
            db_session, str(partner.id), False, "created_at", "desc", 50, 0
        )

        assert [fee.value for fee in items] == [Decimal("2.00")]

    def test_list_rejects_unknown_order_by(self, db_session, partner):
        """Test invalid ordering column raises 400."""
        with pytest.raises(HTTPException) as exc_info:
            billing_service.fees.list(
                db_session, str(partner.id), None, "partner_id", "asc", 50, 0
            )

        assert exc_info.value.status_code == 400


# =============================================================================
# summary Tests
# =============================================================================


class TestFeeSummary:
    """Tests for Fees.summary."""

    def test_summarises_period(self, db_session, partner, make_fee):
        """Test totals and base-value weighted percentage."""
        make_fee(
            partner,
            "10.00",
            NOW - timedelta(days=3),
            order_base_value=Decimal("100.00"),
            fee_percentage=Decimal("10"),
        )
        make_fee(
            partner,
            "15.00",
            NOW - timedelta(days=2),
            order_base_value=Decimal("300.00"),
            fee_percentage=Decimal("5"),
        )

        summary = billing_service.fees.summary(
            db_session, str(partner.id), NOW - timedelta(days=7), NOW
        )

        assert summary.total_orders == 2
        assert summary.total_base_value == Decimal("400.00")
        assert summary.total_fees == Decimal("25.00")
        assert summary.average_fee_percentage == Decimal("6.25")
        assert len(summary.fees) == 2

    def test_empty_period(self, db_session, partner):
        """Test an empty period reports zeros."""
        summary = billing_service.fees.summary(
            db_session, str(partner.id), NOW - timedelta(days=7), NOW
        )

        assert summary.total_orders == 0
        assert summary.total_fees == Decimal("0.00")
        assert summary.average_fee_percentage == Decimal("0.00")

    def test_start_after_end_rejected(self, db_session, partner):
        """Test an inverted period raises 400."""
        with pytest.raises(HTTPException) as exc_info:
            billing_service.fees.summary(
                db_session, str(partner.id), NOW, NOW - timedelta(days=1)
            )

        assert exc_info.value.status_code == 400
