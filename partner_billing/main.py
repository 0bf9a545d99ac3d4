import logging

from fastapi import FastAPI
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from partner_billing.api.billing import router as billing_router
from partner_billing.api.partners import router as partners_router
from partner_billing.errors import register_error_handlers
from partner_billing.logging import configure_logging
from partner_billing.observability import ObservabilityMiddleware

app = FastAPI(title="partner_billing API")
logger = logging.getLogger(__name__)

configure_logging()
app.add_middleware(ObservabilityMiddleware)
register_error_handlers(app)


def _include_api_router(router, dependencies=None):
    app.include_router(router, prefix="/api/v1", dependencies=dependencies)


_include_api_router(billing_router)
_include_api_router(partners_router)


@app.get("/health")
def health_check():
    return {"status": "ok"}


@app.get("/metrics")
def metrics():
    data = generate_latest()
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)
