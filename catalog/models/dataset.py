"""
Dataset model for the bilingual dataset catalog.
"""

from typing import Any, Dict
import uuid
import enum

from sqlalchemy import Column, Integer, String, DateTime, Uuid, Enum as SQLEnum
from sqlalchemy.sql import func

from catalog.models.base import Base, JSONType, TimestampMixin, utcnow


class DatasetStatus(str, enum.Enum):
    """Dataset lifecycle status."""
    UPLOADED = "uploaded"
    PROCESSED = "processed"
    METADATA_GENERATED = "metadata_generated"
    METADATA_FAILED = "metadata_failed"
    UNDER_REVIEW = "under_review"
    CHANGES_REQUESTED = "changes_requested"
    APPROVED = "approved"


class DataType(str, enum.Enum):
    """Inferred column data type."""
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"
    STRING = "string"


class Dataset(Base, TimestampMixin):
    """An uploaded tabular file, its profile, metadata and review trail."""

    __tablename__ = "datasets"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)

    # Current file facts
    filename = Column(String(255), nullable=False)
    original_filename = Column(String(255), nullable=False, index=True)
    file_size = Column(Integer, nullable=False)
    file_type = Column(String(16), nullable=False, index=True)
    upload_date = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    row_count = Column(Integer, default=0, nullable=False)
    columns = Column(JSONType, nullable=False, default=list)
    file_path = Column(String(1024), nullable=False)

    status = Column(
        SQLEnum(DatasetStatus, values_callable=lambda e: [m.value for m in e]),
        default=DatasetStatus.UPLOADED,
        nullable=False,
        index=True,
    )

    # Review state
    meta_data = Column("metadata", JSONType, nullable=False, default=dict)  # Renamed to avoid SQLAlchemy conflict
    metadata_history = Column(JSONType, nullable=False, default=list)

    # Version history
    versions = Column(JSONType, nullable=False, default=list)
    current_version = Column(Integer, nullable=False, default=1)

    # Optimistic concurrency token, bumped by every flush
    lock_version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": lock_version}

    def __repr__(self):
        return (
            f"<Dataset(id={self.id}, file='{self.original_filename}', "
            f"status={self.status}, version={self.current_version})>"
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dictionary."""
        return {
            "id": str(self.id),
            "filename": self.filename,
            "original_filename": self.original_filename,
            "file_size": self.file_size,
            "file_type": self.file_type,
            "upload_date": self.upload_date.isoformat() if self.upload_date else None,
            "row_count": self.row_count,
            "columns": self.columns or [],
            "file_path": self.file_path,
            "status": self.status.value if self.status else None,
            "metadata": self.meta_data or {},
            "metadata_history": self.metadata_history or [],
            "versions": self.versions or [],
            "current_version": self.current_version,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
