"""
Celery Worker Configuration
Report exports run here, off the request path, on a Redis broker.

Start a worker with:
    celery -A app.celery_worker worker -Q reports --loglevel=info
"""

from celery import Celery

from app.core.config import get_settings

settings = get_settings()

REPORTS_QUEUE = 'reports'

celery_app = Celery(
    'foodorder_worker',
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=['app.tasks']
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,

    # Every task is a report export; keep them off any shared default queue
    task_default_queue=REPORTS_QUEUE,

    # A workbook build holds a whole report in pandas; one at a time per process
    worker_prefetch_multiplier=1,
    worker_concurrency=settings.report_worker_concurrency,
    worker_max_tasks_per_child=50,

    # The file lock wait is part of the task, so the soft limit sits above it
    task_soft_time_limit=max(settings.report_time_limit_seconds - 10, 1),
    task_time_limit=settings.report_time_limit_seconds,

    # Owners poll for the file shortly after queueing it
    result_expires=3600,

    # Re-running an export overwrites the same file
    task_acks_late=True,
    task_reject_on_worker_lost=True,

    broker_connection_retry_on_startup=True,
)


if __name__ == '__main__':
    celery_app.start()
