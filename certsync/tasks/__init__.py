"""Celery configuration"""
from celery import Celery
from celery.schedules import crontab
from certsync.core.config import settings

celery_app = Celery(
    "certsync",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[
        "certsync.tasks.certificate_tasks",
    ]
)

celery_app.conf.task_routes = {
    "certsync.tasks.certificate.*": {"queue": "certificates"},
}

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # one certificate run at a time per worker process
    worker_prefetch_multiplier=1,
)

# Periodic tasks
celery_app.conf.beat_schedule = {
    "check-certificates": {
        "task": "certsync.tasks.certificate.check_certificates",
        "schedule": crontab(minute=f"*/{settings.CHECK_INTERVAL_MINUTES}"),
    },
}
