"""Celery application configuration with ingestion queues and Beat schedule."""
from celery import Celery
from celery.signals import setup_logging as setup_logging_signal, worker_process_init

from tiktok_ingest.config import settings
from tiktok_ingest.observability import init_sentry, setup_logging

celery_app = Celery(
    "tiktok_ingest",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["tiktok_ingest.tasks.ingest_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_routes={
        "tiktok_ingest.tasks.ingest_tasks.sync_profile_posts": {"queue": "ingest"},
        "tiktok_ingest.tasks.ingest_tasks.retry_failed_cache_assets": {"queue": "media"},
    },
    task_default_retry_delay=60,
    task_max_retries=3,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    result_expires=3600,
)

celery_app.conf.beat_schedule = {
    "retry-failed-cache-assets": {
        "task": "tiktok_ingest.tasks.ingest_tasks.retry_failed_cache_assets",
        "schedule": 3600.0,
    },
}


@setup_logging_signal.connect
def _configure_logging(**_kwargs):
    setup_logging(settings.LOG_LEVEL, json_logs=settings.APP_ENV == "production")


@worker_process_init.connect
def _configure_sentry(**_kwargs):
    from sentry_sdk.integrations.celery import CeleryIntegration

    init_sentry(settings, integrations=[CeleryIntegration()])
