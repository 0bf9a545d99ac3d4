from partner_billing.tasks.billing import run_invoice_cycle

__all__ = [
    "run_invoice_cycle",
]
