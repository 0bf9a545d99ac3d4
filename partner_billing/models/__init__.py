from partner_billing.models.billing import (  # noqa: F401
    BillingRun,
    BillingRunStatus,
    InvoicePaymentMethod,
    InvoiceStatus,
    PartnerFee,
    PartnerInvoice,
)
from partner_billing.models.partner import Partner  # noqa: F401
