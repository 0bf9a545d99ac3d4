"""Partner invoice services."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from decimal import Decimal

from fastapi import HTTPException
from sqlalchemy import update
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from partner_billing.models.billing import (
    InvoicePaymentMethod,
    InvoiceStatus,
    PartnerFee,
    PartnerInvoice,
)
from partner_billing.models.partner import Partner
from partner_billing.schemas.billing import InvoicePaymentRequest
from partner_billing.services.billing.windows import BillingWindow
from partner_billing.services.common import (
    apply_ordering,
    apply_pagination,
    as_utc,
    coerce_uuid,
    round_money,
    validate_enum,
)
from partner_billing.services.mercadopago import MercadoPagoClient, MercadoPagoError
from partner_billing.services.response import ListResponseMixin

logger = logging.getLogger(__name__)


class InvoiceGenerationError(Exception):
    """Raised when an invoice cannot be staged from the given fees."""


def stage_invoice(
    db: Session,
    partner: Partner,
    window: BillingWindow,
    fees: list[PartnerFee],
) -> PartnerInvoice:
    """Stage one invoice and settle every fee it consumes.

    Nothing is committed here. The invoice insert and the fee updates share
    the caller's transaction, so either all of them land or none do. Fees
    are only settled while still unsettled in the database; losing that race
    raises ``InvoiceGenerationError`` and the caller rolls back.
    """
    if not window.should_invoice or window.start is None or window.end is None:
        raise InvoiceGenerationError(f"Partner {partner.id} has no billable window")
    if not fees:
        raise InvoiceGenerationError(f"Partner {partner.id} has no fees to invoice")
    already_settled = [str(fee.id) for fee in fees if fee.settled]
    if already_settled:
        raise InvoiceGenerationError(
            f"Fees already settled: {', '.join(already_settled)}"
        )

    start = as_utc(window.start)
    end = as_utc(window.end)
    total = sum((Decimal(str(fee.value or 0)) for fee in fees), Decimal("0"))
    invoice = PartnerInvoice(
        partner_id=partner.id,
        start_date=start,
        end_date=end,
        created_at=end,
        total_amount=round_money(total),
        total_orders=len(fees),
        status=InvoiceStatus.pending,
    )
    db.add(invoice)
    db.flush()

    settled_at = datetime.now(UTC)
    fee_ids = [fee.id for fee in fees]
    result = db.execute(
        update(PartnerFee)
        .where(PartnerFee.id.in_(fee_ids))
        .where(PartnerFee.settled.is_(False))
        .values(settled=True, invoice_id=invoice.id, settled_at=settled_at)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != len(fee_ids):
        raise InvoiceGenerationError(
            f"Partner {partner.id}: {len(fee_ids) - result.rowcount} fee(s) were "
            "settled by another run"
        )
    for fee in fees:
        set_committed_value(fee, "settled", True)
        set_committed_value(fee, "invoice_id", invoice.id)
        set_committed_value(fee, "settled_at", settled_at)
    return invoice


def _payer_payload(payload: InvoicePaymentRequest) -> dict:
    payer: dict = {"email": payload.email}
    if payload.first_name:
        payer["first_name"] = payload.first_name
    if payload.last_name:
        payer["last_name"] = payload.last_name
    if payload.identification:
        payer["identification"] = payload.identification.model_dump()
    return payer


class Invoices(ListResponseMixin):
    @staticmethod
    def get(db: Session, partner_id: str, invoice_id: str) -> PartnerInvoice:
        invoice = db.get(PartnerInvoice, coerce_uuid(invoice_id))
        if not invoice or invoice.partner_id != coerce_uuid(partner_id):
            raise HTTPException(status_code=404, detail="Invoice not found")
        return invoice

    @staticmethod
    def list(
        db: Session,
        partner_id: str,
        status: str | None,
        order_by: str,
        order_dir: str,
        limit: int,
        offset: int,
    ):
        query = db.query(PartnerInvoice).filter(
            PartnerInvoice.partner_id == coerce_uuid(partner_id)
        )
        if status:
            query = query.filter(
                PartnerInvoice.status == validate_enum(status, InvoiceStatus, "status")
            )
        query = apply_ordering(
            query,
            order_by,
            order_dir,
            {
                "created_at": PartnerInvoice.created_at,
                "end_date": PartnerInvoice.end_date,
                "total_amount": PartnerInvoice.total_amount,
            },
        )
        return apply_pagination(query, limit, offset).all()

    @staticmethod
    def get_by_payment_id(db: Session, payment_id: str) -> PartnerInvoice | None:
        """Find the invoice carrying ``payment_id`` regardless of its partner."""
        return (
            db.query(PartnerInvoice)
            .filter(PartnerInvoice.payment_id == str(payment_id))
            .order_by(PartnerInvoice.created_at.desc())
            .first()
        )

    @staticmethod
    def attach_payment(
        db: Session,
        partner_id: str,
        invoice_id: str,
        payload: InvoicePaymentRequest,
        gateway: MercadoPagoClient,
    ) -> PartnerInvoice:
        invoice = Invoices.get(db, partner_id, invoice_id)
        if invoice.status != InvoiceStatus.pending:
            raise HTTPException(status_code=409, detail="Invoice is not pending")
        if invoice.payment_id:
            raise HTTPException(status_code=409, detail="Invoice already has a payment")

        start = as_utc(invoice.start_date)
        end = as_utc(invoice.end_date)
        description = f"Platform fees {start.date()} - {end.date()}"
        try:
            created = gateway.create_payment(
                amount=invoice.total_amount,
                description=description,
                method=payload.method,
                payer=_payer_payload(payload),
                idempotency_key=f"invoice-{invoice.id}-{payload.method.value}",
            )
        except MercadoPagoError as exc:
            logger.error("Payment creation failed for invoice %s: %s", invoice.id, exc)
            raise HTTPException(status_code=502, detail="Payment gateway unavailable") from exc

        invoice.payment_id = created.id
        invoice.payment_method = InvoicePaymentMethod(payload.method)
        invoice.payment_data = created.payment_data
        db.commit()
        db.refresh(invoice)
        logger.info(
            "Attached %s payment %s to invoice %s",
            payload.method.value,
            created.id,
            invoice.id,
        )
        return invoice
