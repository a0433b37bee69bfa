"""
Celery application configuration for background metadata generation.
"""

from celery import Celery
from celery.signals import worker_process_init

from catalog.core.config import settings
from catalog.core.logging import setup_logging

# Create Celery instance
celery_app = Celery(
    "dataset_catalog",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "catalog.workers.tasks.metadata_tasks",
    ]
)

# Configure Celery
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    result_expires=3600,  # Results expire after 1 hour
    task_track_started=True,
    task_time_limit=settings.celery_task_time_limit,
    task_soft_time_limit=max(settings.celery_task_time_limit - 30, 1),
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=100,
    broker_connection_retry_on_startup=True,
    result_backend_always_retry=True,
    result_backend_max_retries=10,
)

queue = settings.celery_task_default_queue

# Task routing configuration
celery_app.conf.task_routes = {
    "catalog.workers.tasks.metadata_tasks.*": {"queue": queue},
}

celery_app.conf.task_default_queue = queue
celery_app.conf.task_queues = {
    queue: {
        "exchange": queue,
        "exchange_type": "direct",
        "routing_key": f"{queue}.task",
    },
}

# Logging configuration
celery_app.conf.worker_log_format = "[%(asctime)s: %(levelname)s/%(processName)s] %(message)s"
celery_app.conf.worker_task_log_format = "[%(asctime)s: %(levelname)s/%(processName)s][%(task_name)s(%(task_id)s)] %(message)s"


@worker_process_init.connect
def configure_worker_logging(**kwargs) -> None:
    """Structlog events from shared services render the same way in workers."""
    setup_logging()
