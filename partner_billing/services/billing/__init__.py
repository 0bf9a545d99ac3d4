"""Billing services package.

    from partner_billing.services import billing as billing_service
    billing_service.invoices.list(db, partner_id, ...)
"""

from partner_billing.services.billing.fees import Fees
from partner_billing.services.billing.invoices import (
    InvoiceGenerationError,
    Invoices,
    stage_invoice,
)
from partner_billing.services.billing.runs import BillingRuns
from partner_billing.services.billing.windows import (
    BillingWindow,
    resolve_billing_window,
)

# Singleton instances for service access
fees = Fees()
invoices = Invoices()
billing_runs = BillingRuns()

__all__ = [
    "BillingRuns",
    "BillingWindow",
    "Fees",
    "InvoiceGenerationError",
    "Invoices",
    "billing_runs",
    "fees",
    "invoices",
    "resolve_billing_window",
    "stage_invoice",
]
