"""Small dispatching helpers to decouple Celery from callers."""
from __future__ import annotations

from ..config.celery import celery_app


RECONCILE_ORDER_TASK = "payments.reconcile_order"


class TaskDispatcher:
    """Internal facade used by the API layer to schedule tasks."""

    def enqueue_reconcile(self, order_id: int) -> str:
        """Schedule a ledger replay for one order; returns the task id."""
        result = celery_app.send_task(RECONCILE_ORDER_TASK, kwargs={"order_id": order_id})
        return result.id
