from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from partner_billing.api.deps import get_gateway_client
from partner_billing.db import get_db
from partner_billing.schemas.billing import (
    FeeCreate,
    FeeRead,
    FeeSummary,
    InvoicePaymentRequest,
    InvoiceRead,
)
from partner_billing.schemas.common import ListResponse
from partner_billing.services import billing as billing_service
from partner_billing.services.mercadopago import MercadoPagoClient

router = APIRouter(prefix="/partners")


# --- Fees ---


@router.post(
    "/{partner_id}/fees",
    response_model=FeeRead,
    status_code=status.HTTP_201_CREATED,
    tags=["partner-fees"],
)
def record_fee(partner_id: str, payload: FeeCreate, db: Session = Depends(get_db)):
    return billing_service.fees.record(db, partner_id, payload)


@router.get(
    "/{partner_id}/fees",
    response_model=ListResponse[FeeRead],
    tags=["partner-fees"],
)
def list_fees(
    partner_id: str,
    settled: bool | None = None,
    order_by: str = Query(default="created_at"),
    order_dir: str = Query(default="desc", pattern="^(asc|desc)$"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    return billing_service.fees.list_response(
        db, partner_id, settled, order_by, order_dir, limit, offset
    )


@router.get(
    "/{partner_id}/fees/summary",
    response_model=FeeSummary,
    tags=["partner-fees"],
)
def fee_summary(
    partner_id: str,
    start: datetime,
    end: datetime,
    db: Session = Depends(get_db),
):
    return billing_service.fees.summary(db, partner_id, start, end)


# --- Invoices ---


@router.get(
    "/{partner_id}/invoices",
    response_model=ListResponse[InvoiceRead],
    tags=["partner-invoices"],
)
def list_invoices(
    partner_id: str,
    status_filter: str | None = Query(default=None, alias="status"),
    order_by: str = Query(default="created_at"),
    order_dir: str = Query(default="desc", pattern="^(asc|desc)$"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    return billing_service.invoices.list_response(
        db, partner_id, status_filter, order_by, order_dir, limit, offset
    )


@router.get(
    "/{partner_id}/invoices/{invoice_id}",
    response_model=InvoiceRead,
    tags=["partner-invoices"],
)
def get_invoice(partner_id: str, invoice_id: str, db: Session = Depends(get_db)):
    return billing_service.invoices.get(db, partner_id, invoice_id)


@router.post(
    "/{partner_id}/invoices/{invoice_id}/payments",
    response_model=InvoiceRead,
    status_code=status.HTTP_201_CREATED,
    tags=["partner-invoices"],
)
def create_invoice_payment(
    partner_id: str,
    invoice_id: str,
    payload: InvoicePaymentRequest,
    db: Session = Depends(get_db),
    gateway: MercadoPagoClient = Depends(get_gateway_client),
):
    return billing_service.invoices.attach_payment(
        db, partner_id, invoice_id, payload, gateway
    )
