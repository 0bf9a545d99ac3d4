import logging

from celery.schedules import crontab

from partner_billing.config import settings

logger = logging.getLogger(__name__)


def get_celery_config() -> dict:
    broker = settings.celery_broker_url or "redis://localhost:6379/0"
    backend = settings.celery_result_backend or "redis://localhost:6379/1"
    config: dict[str, object] = {
        "broker_url": broker,
        "result_backend": backend,
        "timezone": settings.billing_timezone,
        "enable_utc": True,
        "task_acks_late": True,
    }
    return config


def build_beat_schedule() -> dict:
    hour = min(max(settings.billing_cron_hour, 0), 23)
    minute = min(max(settings.billing_cron_minute, 0), 59)
    logger.info(
        "Billing cycle scheduled daily at %02d:%02d %s",
        hour,
        minute,
        settings.billing_timezone,
    )
    return {
        "billing_invoice_cycle": {
            "task": "partner_billing.tasks.billing.run_invoice_cycle",
            "schedule": crontab(hour=hour, minute=minute),
        },
    }
