from typing import Callable

from partner_billing.services.mercadopago import MercadoPagoClient


def get_gateway_client() -> MercadoPagoClient:
    """Build the payment gateway client for a request.

    Overridden in tests through ``app.dependency_overrides``.
    """
    return MercadoPagoClient.from_settings()


def get_gateway_factory() -> Callable[[], MercadoPagoClient]:
    """Defer building the client until a handler actually calls the gateway."""
    return MercadoPagoClient.from_settings
