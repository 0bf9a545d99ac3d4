"""partner billing core tables

Revision ID: 0001_partner_billing_core
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID


# revision identifiers, used by Alembic.
revision: str = "0001_partner_billing_core"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


invoice_status = sa.Enum("pending", "paid", "overdue", name="invoicestatus")
invoice_payment_method = sa.Enum("pix", "boleto", name="invoicepaymentmethod")
billing_run_status = sa.Enum(
    "running", "success", "partial", "failed", name="billingrunstatus"
)


def upgrade() -> None:
    op.create_table(
        "partners",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(160), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "partner_invoices",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("partner_id", UUID(as_uuid=True), sa.ForeignKey("partners.id"), nullable=False),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("total_orders", sa.Integer, nullable=False, server_default="0"),
        sa.Column("status", invoice_status, nullable=False, server_default="pending"),
        sa.Column("payment_id", sa.String(120), nullable=True),
        sa.Column("payment_method", invoice_payment_method, nullable=True),
        sa.Column("payment_data", sa.JSON, nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_partner_invoices_partner_created",
        "partner_invoices",
        ["partner_id", "created_at"],
    )
    op.create_index(
        "ix_partner_invoices_payment_id", "partner_invoices", ["payment_id"]
    )

    op.create_table(
        "partner_fees",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("partner_id", UUID(as_uuid=True), sa.ForeignKey("partners.id"), nullable=False),
        sa.Column("order_id", sa.String(120), nullable=True),
        sa.Column("value", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("order_base_value", sa.Numeric(12, 2), nullable=True),
        sa.Column("fee_percentage", sa.Numeric(5, 2), nullable=True),
        sa.Column("settled", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column(
            "invoice_id",
            UUID(as_uuid=True),
            sa.ForeignKey("partner_invoices.id"),
            nullable=True,
        ),
        sa.Column("settled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_partner_fees_partner_settled_created",
        "partner_fees",
        ["partner_id", "settled", "created_at"],
    )

    op.create_table(
        "billing_runs",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("run_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", billing_run_status, nullable=False, server_default="running"),
        sa.Column("started_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("partners_scanned", sa.Integer, nullable=False, server_default="0"),
        sa.Column("partners_invoiced", sa.Integer, nullable=False, server_default="0"),
        sa.Column("partners_skipped", sa.Integer, nullable=False, server_default="0"),
        sa.Column("partners_failed", sa.Integer, nullable=False, server_default="0"),
        sa.Column("fees_settled", sa.Integer, nullable=False, server_default="0"),
        sa.Column("error", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("billing_runs")
    op.drop_index("ix_partner_fees_partner_settled_created", table_name="partner_fees")
    op.drop_table("partner_fees")
    op.drop_index("ix_partner_invoices_payment_id", table_name="partner_invoices")
    op.drop_index("ix_partner_invoices_partner_created", table_name="partner_invoices")
    op.drop_table("partner_invoices")
    op.drop_table("partners")
    billing_run_status.drop(op.get_bind(), checkfirst=True)
    invoice_payment_method.drop(op.get_bind(), checkfirst=True)
    invoice_status.drop(op.get_bind(), checkfirst=True)
