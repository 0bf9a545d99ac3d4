"""Mercado Pago payment gateway client.

Wraps the two calls billing needs: reading the authoritative state of a
payment (webhook reconciliation) and creating a PIX or boleto payment for
an invoice. No retries happen here; callers decide what to do on failure.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any
from urllib.parse import quote

import httpx

from partner_billing.config import settings
from partner_billing.models.billing import InvoicePaymentMethod

logger = logging.getLogger(__name__)

APPROVED_STATUS = "approved"

PAYMENT_METHOD_IDS = {
    InvoicePaymentMethod.pix: "pix",
    InvoicePaymentMethod.boleto: "bolbradesco",
}


class MercadoPagoError(Exception):
    """Base exception for Mercado Pago client errors."""


class PaymentFetchError(MercadoPagoError):
    """The payment status could not be fetched or understood."""


class PaymentCreateError(MercadoPagoError):
    """The gateway refused or failed to create a payment."""


@dataclass(frozen=True)
class GatewayPayment:
    id: str
    status: str
    status_detail: str | None = None
    transaction_amount: Decimal | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def is_approved(self) -> bool:
        return self.status == APPROVED_STATUS


@dataclass(frozen=True)
class CreatedPayment:
    id: str
    status: str
    payment_data: dict[str, Any] = field(default_factory=dict)


def _to_decimal(value: Any) -> Decimal | None:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def _extract_payment_data(payload: dict[str, Any]) -> dict[str, Any]:
    interaction = payload.get("point_of_interaction") or {}
    transaction_data = interaction.get("transaction_data") or {}
    data = {
        key: transaction_data[key]
        for key in ("qr_code", "qr_code_base64", "ticket_url")
        if transaction_data.get(key)
    }
    details = payload.get("transaction_details") or {}
    if "ticket_url" not in data and details.get("external_resource_url"):
        data["ticket_url"] = details["external_resource_url"]
    return data


class MercadoPagoClient:
    """HTTP client for the Mercado Pago payments API."""

    def __init__(
        self,
        access_token: str,
        base_url: str = "https://api.mercadopago.com",
        timeout: float = 10.0,
    ):
        if not access_token:
            raise ValueError("Mercado Pago access token is not configured")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._access_token = access_token

    @classmethod
    def from_settings(cls) -> "MercadoPagoClient":
        settings.validate_gateway_config()
        return cls(
            settings.mercadopago_access_token,
            base_url=settings.mercadopago_base_url,
            timeout=settings.mercadopago_timeout_seconds,
        )

    def _headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self._access_token}",
            "Content-Type": "application/json",
        }
        if extra:
            headers.update(extra)
        return headers

    def _request(
        self,
        method: str,
        path: str,
        error_cls: type[MercadoPagoError] = MercadoPagoError,
        json_data: dict | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            with httpx.Client(timeout=self.timeout, headers=self._headers(headers)) as client:
                response = client.request(method, url, json=json_data)
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                "Mercado Pago API error: %s - %s", e.response.status_code, e.response.text
            )
            raise error_cls(f"API error: {e.response.status_code}") from e
        except httpx.RequestError as e:
            logger.error("Mercado Pago request error: %s", e)
            raise error_cls(f"Request error: {e}") from e
        except ValueError as e:
            raise error_cls("Malformed response: body is not JSON") from e
        if not isinstance(payload, dict):
            raise error_cls("Malformed response: expected a JSON object")
        return payload

    def get_payment(self, payment_id: str | int) -> GatewayPayment:
        """Fetch the authoritative state of a payment.

        Raises:
            PaymentFetchError: network failure, timeout, non-2xx or a payload
                without ``id``/``status``.
        """
        encoded_id = quote(str(payment_id), safe="")
        payload = self._request("GET", f"/v1/payments/{encoded_id}", PaymentFetchError)
        if payload.get("id") is None or not payload.get("status"):
            raise PaymentFetchError("Malformed response: missing id or status")
        return GatewayPayment(
            id=str(payload["id"]),
            status=str(payload["status"]),
            status_detail=payload.get("status_detail"),
            transaction_amount=_to_decimal(payload.get("transaction_amount")),
            raw=payload,
        )

    def create_payment(
        self,
        *,
        amount: Decimal,
        description: str,
        method: InvoicePaymentMethod,
        payer: dict[str, Any],
        idempotency_key: str,
    ) -> CreatedPayment:
        """Create a PIX or boleto payment.

        Raises:
            PaymentCreateError: on any transport or gateway failure.
        """
        body = {
            "transaction_amount": float(amount),
            "description": description,
            "payment_method_id": PAYMENT_METHOD_IDS[InvoicePaymentMethod(method)],
            "payer": payer,
        }
        payload = self._request(
            "POST",
            "/v1/payments",
            PaymentCreateError,
            json_data=body,
            headers={"X-Idempotency-Key": idempotency_key},
        )
        if payload.get("id") is None:
            raise PaymentCreateError("Malformed response: missing id")
        return CreatedPayment(
            id=str(payload["id"]),
            status=str(payload.get("status") or ""),
            payment_data=_extract_payment_data(payload),
        )
