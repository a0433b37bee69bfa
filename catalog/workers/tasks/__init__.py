"""
Celery tasks for async processing.
"""

from catalog.workers.tasks.metadata_tasks import generate_dataset_metadata

__all__ = [
    "generate_dataset_metadata",
]
