"""Background jobs for payment reconciliation.

The API layer only talks to ``TaskDispatcher``; workers load task modules
through ``celery_app.conf.imports``.
"""
from .config.celery import celery_app
from .utils.dispatcher import RECONCILE_ORDER_TASK, TaskDispatcher

__all__ = ["celery_app", "TaskDispatcher", "RECONCILE_ORDER_TASK"]
