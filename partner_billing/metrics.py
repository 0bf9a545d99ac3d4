from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "path", "status"],
)

JOB_DURATION = Histogram(
    "job_duration_seconds",
    "Background job duration",
    ["task", "status"],
)

INVOICES_CREATED = Counter(
    "billing_invoices_created_total",
    "Invoices created by the billing cycle",
)

WEBHOOK_EVENTS = Counter(
    "payment_webhook_events_total",
    "Payment gateway webhook deliveries by outcome",
    ["provider", "outcome"],
)


def observe_job(task_name: str, status: str, duration: float) -> None:
    JOB_DURATION.labels(task=task_name, status=status).observe(duration)


def observe_webhook(provider: str, outcome: str) -> None:
    WEBHOOK_EVENTS.labels(provider=provider, outcome=outcome).inc()
