"""Accrual window resolution for partner invoicing."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from partner_billing.config import settings
from partner_billing.models.billing import PartnerInvoice
from partner_billing.models.partner import Partner
from partner_billing.services.common import as_utc


@dataclass(frozen=True)
class BillingWindow:
    should_invoice: bool
    start: datetime | None = None
    end: datetime | None = None


def window_length() -> timedelta:
    return timedelta(days=settings.billing_window_days)


def last_invoice(db: Session, partner_id) -> PartnerInvoice | None:
    return (
        db.query(PartnerInvoice)
        .filter(PartnerInvoice.partner_id == partner_id)
        .order_by(PartnerInvoice.created_at.desc())
        .first()
    )


def resolve_billing_window(
    db: Session,
    partner: Partner,
    now: datetime,
    length: timedelta | None = None,
) -> BillingWindow:
    """Decide whether ``partner`` is due an invoice at ``now``.

    With invoice history the next window starts exactly at the previous
    invoice's ``end_date``, so windows stay contiguous. Without history the
    partner must be at least one window old and the window covers the
    trailing ``length`` up to ``now``.
    """
    now = as_utc(now)
    length = length or window_length()
    previous = last_invoice(db, partner.id)
    if previous is not None:
        previous_end = as_utc(previous.end_date)
        if now - previous_end >= length:
            return BillingWindow(True, previous_end, now)
        return BillingWindow(False)

    created_at = as_utc(partner.created_at)
    if created_at is not None and now - created_at >= length:
        return BillingWindow(True, now - length, now)
    return BillingWindow(False)
