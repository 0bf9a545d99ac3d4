from __future__ import annotations

import logging

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from partner_billing.services.billing import InvoiceGenerationError
from partner_billing.services.mercadopago import MercadoPagoError

logger = logging.getLogger(__name__)


def _request_id(request: Request) -> str:
    rid = getattr(request.state, "request_id", None)
    return str(rid) if rid else "unknown"


def error_response(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    details: object = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "code": code,
            "message": message,
            "details": details,
            "request_id": _request_id(request),
        },
    )


def _jsonable(value):
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, dict):
        return {key: _jsonable(val) for key, val in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(item) for item in value]
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)


def _from_http_exception(request: Request, status_code: int, detail: object) -> JSONResponse:
    if isinstance(detail, dict):
        return error_response(
            request,
            status_code,
            detail.get("code", f"http_{status_code}"),
            detail.get("message", "Request failed"),
            detail.get("details"),
        )
    if isinstance(detail, str):
        return error_response(request, status_code, f"http_{status_code}", detail)
    return error_response(request, status_code, f"http_{status_code}", "Request failed", detail)


def register_error_handlers(app) -> None:
    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return _from_http_exception(request, exc.status_code, exc.detail)

    @app.exception_handler(StarletteHTTPException)
    async def starlette_http_exception_handler(request: Request, exc: StarletteHTTPException):
        return _from_http_exception(request, exc.status_code, exc.detail or "Request failed")

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = []
        for error in exc.errors():
            item = dict(error)
            for key in ("input", "ctx"):
                if key in item:
                    item[key] = _jsonable(item[key])
            errors.append(item)
        return error_response(request, 422, "validation_error", "Validation error", errors)

    @app.exception_handler(InvoiceGenerationError)
    async def invoice_generation_handler(request: Request, exc: InvoiceGenerationError):
        return error_response(request, 409, "invoice_generation_error", str(exc))

    @app.exception_handler(MercadoPagoError)
    async def gateway_error_handler(request: Request, exc: MercadoPagoError):
        logger.error("Payment gateway error on %s %s: %s", request.method, request.url.path, exc)
        return error_response(request, 502, "payment_gateway_error", "Payment gateway unavailable")

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception(
            "Unhandled exception on %s %s",
            request.method,
            request.url.path,
            extra={"request_id": _request_id(request)},
        )
        return error_response(request, 500, "internal_error", "Internal server error")
