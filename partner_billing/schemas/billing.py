from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

from partner_billing.models.billing import (
    BillingRunStatus,
    InvoicePaymentMethod,
    InvoiceStatus,
)


class FeeCreate(BaseModel):
    value: Decimal = Field(ge=0)
    order_id: str | None = Field(default=None, max_length=120)
    order_base_value: Decimal | None = Field(default=None, ge=0)
    fee_percentage: Decimal | None = Field(default=None, ge=0, le=100)
    created_at: datetime | None = None


class FeeRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    partner_id: UUID
    order_id: str | None = None
    value: Decimal
    order_base_value: Decimal | None = None
    fee_percentage: Decimal | None = None
    settled: bool
    invoice_id: UUID | None = None
    settled_at: datetime | None = None
    created_at: datetime


class FeeSummary(BaseModel):
    total_orders: int
    total_base_value: Decimal
    total_fees: Decimal
    average_fee_percentage: Decimal
    start_date: datetime
    end_date: datetime
    fees: list[FeeRead] = Field(default_factory=list)


class InvoiceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    partner_id: UUID
    start_date: datetime
    end_date: datetime
    created_at: datetime
    total_amount: Decimal
    total_orders: int
    status: InvoiceStatus
    payment_id: str | None = None
    payment_method: InvoicePaymentMethod | None = None
    payment_data: dict[str, Any] | None = None
    paid_at: datetime | None = None


class PayerIdentification(BaseModel):
    type: str = Field(min_length=1, max_length=20)
    number: str = Field(min_length=1, max_length=40)


class InvoicePaymentRequest(BaseModel):
    method: InvoicePaymentMethod
    email: EmailStr
    first_name: str | None = Field(default=None, max_length=80)
    last_name: str | None = Field(default=None, max_length=80)
    identification: PayerIdentification | None = None

    @model_validator(mode="after")
    def _validate_boleto_payer(self) -> "InvoicePaymentRequest":
        if self.method == InvoicePaymentMethod.boleto:
            if not (self.first_name and self.last_name and self.identification):
                raise ValueError(
                    "first_name, last_name and identification are required for boleto"
                )
        return self


class BillingRunRequest(BaseModel):
    run_at: datetime | None = None
    dry_run: bool = False


class BillingRunFailure(BaseModel):
    partner_id: str
    error: str


class BillingRunResponse(BaseModel):
    run_id: str | None = None
    run_at: datetime
    partners_scanned: int
    partners_invoiced: int
    partners_skipped: int
    partners_failed: int
    invoices_created: int
    fees_settled: int
    failures: list[BillingRunFailure] = Field(default_factory=list)


class BillingRunRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    run_at: datetime
    status: BillingRunStatus
    started_at: datetime
    finished_at: datetime | None = None
    partners_scanned: int
    partners_invoiced: int
    partners_skipped: int
    partners_failed: int
    fees_settled: int
    error: str | None = None
    created_at: datetime


class PaymentWebhookData(BaseModel):
    id: str | int | None = None


class PaymentWebhookPayload(BaseModel):
    """Mercado Pago notification body; extra gateway metadata is ignored."""

    type: str | None = None
    data: PaymentWebhookData | None = None
