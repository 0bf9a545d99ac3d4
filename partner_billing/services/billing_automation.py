from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from celery.exceptions import SoftTimeLimitExceeded
from sqlalchemy.orm import Session

from partner_billing.metrics import INVOICES_CREATED
from partner_billing.models.billing import BillingRun, BillingRunStatus, InvoiceStatus
from partner_billing.models.partner import Partner
from partner_billing.services import billing as billing_service
from partner_billing.services.billing.windows import last_invoice
from partner_billing.services.common import as_utc

logger = logging.getLogger(__name__)


def _new_summary(run_at: datetime) -> dict[str, Any]:
    return {
        "run_id": None,
        "run_at": run_at,
        "partners_scanned": 0,
        "partners_invoiced": 0,
        "partners_skipped": 0,
        "partners_failed": 0,
        "invoices_created": 0,
        "fees_settled": 0,
        "failures": [],
    }


def _finish_run(
    db: Session,
    run_id,
    summary: dict[str, Any],
    status: BillingRunStatus,
    error: str | None = None,
) -> None:
    if run_id is None:
        return
    run = db.get(BillingRun, run_id)
    if not run:
        return
    run.status = status
    run.finished_at = datetime.now(UTC)
    run.partners_scanned = summary["partners_scanned"]
    run.partners_invoiced = summary["partners_invoiced"]
    run.partners_skipped = summary["partners_skipped"]
    run.partners_failed = summary["partners_failed"]
    run.fees_settled = summary["fees_settled"]
    run.error = error
    db.commit()


def _bill_partner(db: Session, partner_id, run_at: datetime, dry_run: bool) -> int:
    """Bill one partner as a single unit of work.

    Returns the number of fees settled, 0 when the partner was skipped.
    Commits on success; the caller rolls back on any exception.
    """
    partner = db.get(Partner, partner_id)
    if partner is None:
        return 0
    window = billing_service.resolve_billing_window(db, partner, run_at)
    if not window.should_invoice:
        return 0

    fees = billing_service.fees.unsettled_in_window(
        db, partner.id, window.start, window.end, for_update=not dry_run
    )
    if not fees:
        logger.info(
            "Skipping partner %s: no unsettled fees between %s and %s",
            partner.id,
            window.start.isoformat(),
            window.end.isoformat(),
        )
        return 0
    if dry_run:
        return len(fees)

    previous = last_invoice(db, partner.id)
    if previous is not None and previous.status == InvoiceStatus.pending:
        logger.warning(
            "Partner %s still has pending invoice %s; issuing the next one anyway",
            partner.id,
            previous.id,
        )

    invoice = billing_service.stage_invoice(db, partner, window, fees)
    db.commit()
    INVOICES_CREATED.inc()
    logger.info(
        "Invoice %s created for partner %s: %s over %s fees (%s - %s)",
        invoice.id,
        partner_id,
        invoice.total_amount,
        invoice.total_orders,
        as_utc(invoice.start_date).date(),
        as_utc(invoice.end_date).date(),
    )
    return len(fees)


def run_invoice_cycle(
    db: Session,
    run_at: datetime | None = None,
    dry_run: bool = False,
) -> dict[str, Any]:
    """Close due accrual windows and invoice every eligible partner.

    Each partner is billed in its own transaction. A failing partner is
    rolled back, recorded in ``summary["failures"]`` and the scan moves on.
    Errors outside a partner unit fail the run and propagate.

    Args:
        db: Database session
        run_at: The reference time for the billing run (defaults to now)
        dry_run: If True, don't write anything, just report what would be done
    """
    run_at = as_utc(run_at) or datetime.now(UTC)
    summary = _new_summary(run_at)

    run_uuid = None
    if not dry_run:
        run = BillingRun(
            run_at=run_at,
            status=BillingRunStatus.running,
            started_at=datetime.now(UTC),
        )
        db.add(run)
        db.commit()
        db.refresh(run)
        run_uuid = run.id
        summary["run_id"] = str(run_uuid)

    try:
        partner_ids = [
            row.id
            for row in db.query(Partner.id)
            .filter(Partner.is_active.is_(True))
            .order_by(Partner.created_at.asc())
            .all()
        ]
    except Exception as exc:
        db.rollback()
        logger.error("Billing run failed while listing partners: %s", exc)
        _finish_run(db, run_uuid, summary, BillingRunStatus.failed, str(exc))
        raise

    summary["partners_scanned"] = len(partner_ids)
    for partner_id in partner_ids:
        try:
            settled = _bill_partner(db, partner_id, run_at, dry_run)
        except SoftTimeLimitExceeded:
            db.rollback()
            logger.error("Billing run hit its time limit at partner %s", partner_id)
            _finish_run(
                db, run_uuid, summary, BillingRunStatus.failed, "Time limit exceeded"
            )
            raise
        except Exception as exc:
            db.rollback()
            logger.exception("Billing failed for partner %s", partner_id)
            summary["partners_failed"] += 1
            summary["failures"].append({"partner_id": str(partner_id), "error": str(exc)})
            continue

        if settled:
            summary["partners_invoiced"] += 1
            summary["invoices_created"] += 1
            summary["fees_settled"] += settled
        else:
            summary["partners_skipped"] += 1

    if summary["partners_failed"]:
        status = BillingRunStatus.partial
        error = f"{summary['partners_failed']} partner(s) failed"
    else:
        status = BillingRunStatus.success
        error = None
    _finish_run(db, run_uuid, summary, status, error)

    if summary["partners_invoiced"]:
        logger.info(
            "Billing run completed: %s invoices, %s fees settled, %s failed",
            summary["invoices_created"],
            summary["fees_settled"],
            summary["partners_failed"],
        )
    else:
        logger.info("Billing run completed: no invoices to generate")
    return summary
