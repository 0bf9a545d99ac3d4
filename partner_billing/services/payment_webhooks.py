"""Mercado Pago webhook reconciliation.

Maps asynchronous payment notifications onto invoices. Delivery is
at-least-once and may be duplicated or reordered, so every transition here
is idempotent: only ``pending -> paid`` ever writes, and a redelivered
approval for a paid invoice leaves it untouched.
"""

from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Callable

from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from partner_billing.metrics import observe_webhook
from partner_billing.models.billing import InvoiceStatus
from partner_billing.schemas.billing import PaymentWebhookPayload
from partner_billing.services import billing as billing_service
from partner_billing.services.mercadopago import MercadoPagoClient, MercadoPagoError

logger = logging.getLogger(__name__)

PROVIDER = "mercadopago"
PAYMENT_EVENT_TYPE = "payment"


class InvalidWebhookPayload(ValueError):
    """The notification body cannot be interpreted."""


class WebhookOutcome(enum.Enum):
    ignored = "ignored"
    processed = "processed"
    unchanged = "unchanged"
    not_found = "not_found"


@dataclass(frozen=True)
class WebhookResult:
    outcome: WebhookOutcome
    payment_id: str | None = None
    invoice_id: str | None = None
    payment_status: str | None = None


def is_payment_event(payload: dict[str, Any]) -> bool:
    return payload.get("type") == PAYMENT_EVENT_TYPE


def parse_payload(body: bytes) -> dict[str, Any]:
    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise InvalidWebhookPayload("invalid JSON") from exc
    if not isinstance(payload, dict):
        raise InvalidWebhookPayload("expected a JSON object")
    return payload


def reconcile_payment_notification(
    db: Session,
    payload: dict[str, Any],
    gateway: MercadoPagoClient,
    now: datetime | None = None,
) -> WebhookResult:
    """Apply one gateway notification to the matching invoice.

    Raises:
        InvalidWebhookPayload: a payment notification without ``data.id``.
        MercadoPagoError: the authoritative payment state could not be read.
    """
    if not is_payment_event(payload):
        logger.info("Ignoring Mercado Pago webhook of type %r", payload.get("type"))
        return WebhookResult(WebhookOutcome.ignored)

    try:
        notification = PaymentWebhookPayload.model_validate(payload)
    except ValidationError as exc:
        raise InvalidWebhookPayload("malformed payment notification") from exc
    if notification.data is None or notification.data.id in (None, ""):
        raise InvalidWebhookPayload("payment notification without data.id")

    payment = gateway.get_payment(notification.data.id)
    invoice = billing_service.invoices.get_by_payment_id(db, payment.id)
    if invoice is None:
        logger.warning("No invoice found for Mercado Pago payment %s", payment.id)
        return WebhookResult(
            WebhookOutcome.not_found, payment_id=payment.id, payment_status=payment.status
        )

    result = WebhookResult(
        WebhookOutcome.unchanged,
        payment_id=payment.id,
        invoice_id=str(invoice.id),
        payment_status=payment.status,
    )
    if not payment.is_approved:
        logger.info(
            "Payment %s for invoice %s is %s; nothing to settle",
            payment.id,
            invoice.id,
            payment.status,
        )
        return result
    if invoice.status == InvoiceStatus.paid:
        logger.info("Invoice %s already paid; duplicate approval for %s", invoice.id, payment.id)
        return result
    if invoice.status != InvoiceStatus.pending:
        logger.warning(
            "Approved payment %s for invoice %s in status %s; left unchanged",
            payment.id,
            invoice.id,
            invoice.status.value,
        )
        return result

    invoice.status = InvoiceStatus.paid
    invoice.paid_at = now or datetime.now(UTC)
    db.commit()
    logger.info("Invoice %s paid via Mercado Pago payment %s", invoice.id, payment.id)
    return WebhookResult(
        WebhookOutcome.processed,
        payment_id=payment.id,
        invoice_id=str(invoice.id),
        payment_status=payment.status,
    )


def process_mercadopago_webhook(
    *,
    db: Session,
    body: bytes,
    gateway_factory: Callable[[], MercadoPagoClient],
) -> JSONResponse:
    """Handle one delivery; the gateway client is only built for payment events."""
    try:
        payload = parse_payload(body)
        if is_payment_event(payload):
            result = reconcile_payment_notification(db, payload, gateway_factory())
        else:
            logger.info("Ignoring Mercado Pago webhook of type %r", payload.get("type"))
            result = WebhookResult(WebhookOutcome.ignored)
    except InvalidWebhookPayload as exc:
        logger.warning("Rejected Mercado Pago webhook: %s", exc)
        observe_webhook(PROVIDER, "invalid")
        return JSONResponse({"status": "invalid payload", "detail": str(exc)}, status_code=400)
    except MercadoPagoError as exc:
        db.rollback()
        logger.error("Mercado Pago payment lookup failed: %s", exc)
        observe_webhook(PROVIDER, "error")
        return JSONResponse({"status": "error"}, status_code=500)
    except Exception:
        db.rollback()
        logger.exception("Mercado Pago webhook processing error")
        observe_webhook(PROVIDER, "error")
        return JSONResponse({"status": "error"}, status_code=500)

    observe_webhook(PROVIDER, result.outcome.value)
    content = {
        "status": result.outcome.value,
        "payment_id": result.payment_id,
        "invoice_id": result.invoice_id,
    }
    if result.outcome == WebhookOutcome.not_found:
        return JSONResponse(content, status_code=404)
    return JSONResponse(content, status_code=200)
