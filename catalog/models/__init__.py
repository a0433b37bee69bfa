"""
Database models for the dataset catalog.
"""

from catalog.models.base import Base, TimestampMixin
from catalog.models.dataset import Dataset, DatasetStatus, DataType

__all__ = [
    # Base classes
    "Base",
    "TimestampMixin",

    # Dataset models
    "Dataset",
    "DatasetStatus",
    "DataType",
]
