"""Celery application configuration"""
from __future__ import annotations

from celery import Celery
from kombu import Queue

from core.config import settings
from core.logging_config import get_logger


# Task modules are listed here so new modules do not need runtime imports elsewhere.
CELERY_IMPORTS = (
    "infrastructure.tasks.payment_tasks",
)


celery_app = Celery("shop_checkout")

celery_app.conf.update(
    broker_url=settings.celery.broker_url,
    result_backend=settings.celery.result_backend,
    # JSON keeps payloads interoperable and avoids arbitrary code execution.
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone=settings.celery.timezone,
    enable_utc=True,
    # Ack after the work is done so a lost worker means a redelivery.
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_track_started=True,
    result_expires=3600,
    worker_prefetch_multiplier=1,
    task_default_queue=settings.celery.default_queue,
    task_default_retry_delay=30,
    task_queues=(
        Queue(settings.celery.default_queue),
        Queue("payments"),
    ),
    task_routes={
        "payments.*": {"queue": "payments"},
    },
    task_always_eager=settings.celery.task_always_eager,
)

celery_app.conf.imports = CELERY_IMPORTS


logger = get_logger(__name__)


@celery_app.on_after_configure.connect
def _log_configuration(sender, **kwargs):
    logger.info("celery_configured", broker=sender.conf.broker_url, result_backend=sender.conf.result_backend)
