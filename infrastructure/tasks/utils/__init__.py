"""Celery helpers: structured-logging task base and the reconcile dispatcher."""
from .base_task import BaseTask
from .dispatcher import RECONCILE_ORDER_TASK, TaskDispatcher

__all__ = ["BaseTask", "TaskDispatcher", "RECONCILE_ORDER_TASK"]
