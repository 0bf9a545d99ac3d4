import enum
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from partner_billing.db import Base


class InvoiceStatus(enum.Enum):
    pending = "pending"
    paid = "paid"
    overdue = "overdue"


class InvoicePaymentMethod(enum.Enum):
    pix = "pix"
    boleto = "boleto"


class BillingRunStatus(enum.Enum):
    running = "running"
    success = "success"
    partial = "partial"
    failed = "failed"


class PartnerFee(Base):
    """Platform commission charged to a partner for one completed order."""

    __tablename__ = "partner_fees"
    __table_args__ = (
        Index("ix_partner_fees_partner_settled_created", "partner_id", "settled", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    partner_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("partners.id"), nullable=False
    )
    order_id: Mapped[str | None] = mapped_column(String(120))
    value: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"))
    order_base_value: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    fee_percentage: Mapped[Decimal | None] = mapped_column(Numeric(5, 2))
    settled: Mapped[bool] = mapped_column(Boolean, default=False)
    invoice_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("partner_invoices.id")
    )
    settled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    partner = relationship("Partner", back_populates="fees")
    invoice = relationship("PartnerInvoice", back_populates="fees")


class PartnerInvoice(Base):
    """Billing statement for one closed accrual window of a partner."""

    __tablename__ = "partner_invoices"
    __table_args__ = (
        Index("ix_partner_invoices_partner_created", "partner_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    partner_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("partners.id"), nullable=False
    )
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"))
    total_orders: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[InvoiceStatus] = mapped_column(
        Enum(InvoiceStatus), default=InvoiceStatus.pending
    )
    payment_id: Mapped[str | None] = mapped_column(String(120), index=True)
    payment_method: Mapped[InvoicePaymentMethod | None] = mapped_column(
        Enum(InvoicePaymentMethod)
    )
    payment_data: Mapped[dict | None] = mapped_column(JSON)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    partner = relationship("Partner", back_populates="invoices")
    fees = relationship("PartnerFee", back_populates="invoice")


class BillingRun(Base):
    __tablename__ = "billing_runs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    run_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    status: Mapped[BillingRunStatus] = mapped_column(
        Enum(BillingRunStatus), default=BillingRunStatus.running
    )
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    partners_scanned: Mapped[int] = mapped_column(Integer, default=0)
    partners_invoiced: Mapped[int] = mapped_column(Integer, default=0)
    partners_skipped: Mapped[int] = mapped_column(Integer, default=0)
    partners_failed: Mapped[int] = mapped_column(Integer, default=0)
    fees_settled: Mapped[int] = mapped_column(Integer, default=0)
    error: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
