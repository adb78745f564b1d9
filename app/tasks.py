"""
Celery Tasks
Background tasks for work that should not hold up an API request.
"""

import logging
import time
from datetime import datetime

from app.celery_worker import celery_app
from app.services.excel_manager import ExcelManager

logger = logging.getLogger(__name__)


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    autoretry_for=(OSError,),
    retry_backoff=True
)
def export_sales_report(self, restaurant_id: int, report: dict) -> dict:
    """
    Export a sales report to Excel.
    This task runs asynchronously via Celery worker.

    Args:
        restaurant_id: Tenant the report belongs to
        report: Output of restaurant_service.get_sales_report

    Returns:
        dict: Result of the export operation
    """
    task_id = self.request.id
    logger.info(f"Task {task_id}: exporting report for restaurant #{restaurant_id}")
    start_time = time.time()

    result = ExcelManager.export_report(restaurant_id, report)

    elapsed = round(time.time() - start_time, 3)
    result['task_id'] = task_id
    result['processing_time_seconds'] = elapsed

    if result['success']:
        logger.info(f"Task {task_id}: report for restaurant #{restaurant_id} done in {elapsed}s")
    else:
        logger.warning(f"Task {task_id}: report for restaurant #{restaurant_id} failed - {result['message']}")

    return result


@celery_app.task
def health_check() -> dict:
    """
    Simple health check task to verify Celery is working.
    """
    return {
        'status': 'healthy',
        'worker': 'celery',
        'timestamp': datetime.now().isoformat()
    }
