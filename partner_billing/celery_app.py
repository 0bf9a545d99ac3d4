from celery import Celery

from partner_billing.logging import configure_logging
from partner_billing.services.scheduler_config import build_beat_schedule, get_celery_config

configure_logging()

celery_app = Celery("partner_billing")
celery_app.conf.update(get_celery_config())
celery_app.conf.beat_schedule = build_beat_schedule()
celery_app.autodiscover_tasks(["partner_billing.tasks"])
