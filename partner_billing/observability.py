import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from partner_billing.metrics import REQUEST_COUNT, REQUEST_LATENCY

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """Attach a request id and record request count/latency."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        start = time.monotonic()
        status = "500"
        try:
            response = await call_next(request)
            status = str(response.status_code)
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            elapsed = time.monotonic() - start
            route = request.scope.get("route")
            path = getattr(route, "path", request.url.path)
            REQUEST_COUNT.labels(request.method, path, status).inc()
            REQUEST_LATENCY.labels(request.method, path, status).observe(elapsed)
            if elapsed > 0.5:
                logger.warning(
                    "Slow request %s %s took %.2fms - Status: %s",
                    request.method,
                    request.url.path,
                    elapsed * 1000,
                    status,
                )
