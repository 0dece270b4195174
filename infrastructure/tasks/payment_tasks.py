"""
Celery tasks for payment reconciliation.

The reconcile task replays the ledger for one order and repairs a stale
order cache. It is idempotent, so Celery redeliveries are harmless.
"""
from __future__ import annotations

import asyncio

from celery import shared_task
from sqlalchemy.exc import SQLAlchemyError

from application.services.payment_service import PaymentService
from core.logging_config import get_logger
from infrastructure.tasks.utils.base_task import BaseTask
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


logger = get_logger(__name__)


async def reconcile(order_id: int, uow_factory=SQLAlchemyUnitOfWork) -> dict:
    # 对账只读写本地台账与订单，不需要网关
    service = PaymentService(uow_factory)
    outcome = await service.reconcile_order(order_id)
    return outcome.model_dump(mode="json")


@shared_task(name="payments.reconcile_order", bind=True, base=BaseTask, max_retries=3, default_retry_delay=30)
def task_reconcile_order(self, order_id: int):
    try:
        # asyncio.run per task keeps each run on its own loop
        result = asyncio.run(reconcile(order_id))
    except SQLAlchemyError as exc:
        logger.warning("payment_reconcile_retry", order_id=order_id, error=str(exc))
        raise self.retry(exc=exc)
    logger.info("payment_reconciled", order_id=order_id, payment_status=result["payment_status"])
    return result
