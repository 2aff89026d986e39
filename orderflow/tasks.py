"""
Celery Tasks
Background tasks run after an order has been committed.
"""

import logging
import time
from datetime import datetime

from orderflow.celery_worker import celery_app
from orderflow.services.excel_manager import ExcelManager
from orderflow.services.store.base import StoredOrder

logger = logging.getLogger(__name__)


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    autoretry_for=(OSError,),
    retry_backoff=True,
)
def export_order_to_excel(self, order_data: dict) -> dict:
    """
    Export order to Excel file.

    Args:
        order_data: Row produced by ``StoredOrder.to_export_row()``

    Returns:
        dict: Result of the export operation
    """
    task_id = self.request.id
    order_id = order_data.get("order_id", "unknown")

    logger.info(f"Task {task_id}: Processing order #{order_id}")
    start_time = time.time()

    result = ExcelManager.export_order(order_data)

    elapsed = round(time.time() - start_time, 3)
    result["task_id"] = task_id
    result["processing_time_seconds"] = elapsed

    if result["success"]:
        logger.info(f"Task {task_id}: Order #{order_id} completed in {elapsed}s")
    else:
        logger.warning(f"Task {task_id}: Order #{order_id} failed - {result['message']}")

    return result


def queue_order_export(order: StoredOrder) -> None:
    """``on_order_created`` hook: hand the order to the export worker."""
    export_order_to_excel.delay(order.to_export_row())


@celery_app.task
def health_check() -> dict:
    """
    Simple health check task to verify Celery is working.
    """
    return {
        "status": "healthy",
        "worker": "celery",
        "timestamp": datetime.now().isoformat(),
    }


@celery_app.task
def clear_excel_file() -> dict:
    """
    Clear the Excel file (for testing/reset purposes).
    """
    success = ExcelManager.clear_all_orders()
    return {
        "success": success,
        "message": "Excel file cleared" if success else "Failed to clear Excel file",
        "timestamp": datetime.now().isoformat(),
    }
