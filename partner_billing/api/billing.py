from typing import Callable

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from partner_billing.api.deps import get_gateway_factory
from partner_billing.db import get_db
from partner_billing.schemas.billing import (
    BillingRunRead,
    BillingRunRequest,
    BillingRunResponse,
)
from partner_billing.schemas.common import ListResponse
from partner_billing.services import billing as billing_service
from partner_billing.services import billing_automation as billing_automation_service
from partner_billing.services import payment_webhooks as payment_webhooks_service
from partner_billing.services.mercadopago import MercadoPagoClient

router = APIRouter(prefix="/billing")


@router.post(
    "/runs",
    response_model=BillingRunResponse,
    status_code=status.HTTP_200_OK,
    tags=["billing-runs"],
)
def run_billing_cycle(payload: BillingRunRequest, db: Session = Depends(get_db)):
    return billing_automation_service.run_invoice_cycle(
        db, run_at=payload.run_at, dry_run=payload.dry_run
    )


@router.get(
    "/runs/{run_id}",
    response_model=BillingRunRead,
    tags=["billing-runs"],
)
def get_billing_run(run_id: str, db: Session = Depends(get_db)):
    return billing_service.billing_runs.get(db, run_id)


@router.get(
    "/runs",
    response_model=ListResponse[BillingRunRead],
    tags=["billing-runs"],
)
def list_billing_runs(
    status_filter: str | None = Query(default=None, alias="status"),
    order_by: str = Query(default="created_at"),
    order_dir: str = Query(default="desc", pattern="^(asc|desc)$"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    return billing_service.billing_runs.list_response(
        db, status_filter, order_by, order_dir, limit, offset
    )


@router.post(
    "/payment-events/mercadopago",
    tags=["payment-events"],
)
async def mercadopago_webhook(
    request: Request,
    db: Session = Depends(get_db),
    gateway_factory: Callable[[], MercadoPagoClient] = Depends(get_gateway_factory),
):
    body = await request.body()
    return await run_in_threadpool(
        payment_webhooks_service.process_mercadopago_webhook,
        db=db,
        body=body,
        gateway_factory=gateway_factory,
    )
