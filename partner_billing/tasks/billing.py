import logging
import time

from partner_billing.celery_app import celery_app
from partner_billing.config import settings
from partner_billing.db import SessionLocal
from partner_billing.metrics import observe_job
from partner_billing.services import billing_automation as billing_automation_service

logger = logging.getLogger(__name__)


class BillingRunIncomplete(RuntimeError):
    """Some partners could not be billed during a run."""


@celery_app.task(
    name="partner_billing.tasks.billing.run_invoice_cycle",
    soft_time_limit=settings.billing_job_soft_time_limit,
)
def run_invoice_cycle():
    start = time.monotonic()
    status = "success"
    session = SessionLocal()
    try:
        summary = billing_automation_service.run_invoice_cycle(session)
        if summary["partners_failed"]:
            status = "partial"
            raise BillingRunIncomplete(
                f"Billing run {summary['run_id']}: {summary['partners_failed']} "
                f"of {summary['partners_scanned']} partners failed"
            )
        logger.info(
            "Billing run %s invoiced %s partners",
            summary["run_id"],
            summary["partners_invoiced"],
        )
        return {
            "run_id": summary["run_id"],
            "partners_invoiced": summary["partners_invoiced"],
        }
    except BillingRunIncomplete:
        raise
    except Exception:
        status = "error"
        session.rollback()
        logger.exception("Billing run failed.")
        raise
    finally:
        session.close()
        observe_job("billing_invoice_cycle", status, time.monotonic() - start)
