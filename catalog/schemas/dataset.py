"""
Dataset schemas for request/response validation.
"""

from typing import List, Optional, Dict, Any
from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator

from catalog.models.dataset import DatasetStatus, DataType


AI_AUTHOR = "AI"


class ReviewRole(str, Enum):
    """Roles that may submit metadata."""
    EDITOR = "editor"
    ADMIN = "admin"


class ReviewStatus(str, Enum):
    """Statuses a human submission may target."""
    UNDER_REVIEW = DatasetStatus.UNDER_REVIEW.value
    APPROVED = DatasetStatus.APPROVED.value
    CHANGES_REQUESTED = DatasetStatus.CHANGES_REQUESTED.value


# ==========================================
# Profile
# ==========================================
class ColumnInfo(BaseModel):
    """Schema for a profiled column."""
    name: str
    data_type: DataType
    sample_values: List[str] = Field(default_factory=list, max_length=5)


class Profile(BaseModel):
    """Structured result of ingesting a file."""
    filename: str = Field(..., description="Internal storage name")
    original_filename: str
    file_size: int = Field(..., ge=0)
    file_type: str
    row_count: int = Field(..., ge=0)
    columns: List[ColumnInfo]
    file_path: str
    preview: List[Dict[str, Any]] = Field(default_factory=list, description="Leading rows of the file")

    def file_fields(self) -> Dict[str, Any]:
        """Column values for the dataset's current-file fields."""
        return {
            "filename": self.filename,
            "original_filename": self.original_filename,
            "file_size": self.file_size,
            "file_type": self.file_type,
            "row_count": self.row_count,
            "columns": [c.model_dump(mode="json") for c in self.columns],
            "file_path": self.file_path,
        }


# ==========================================
# Metadata
# ==========================================
def _dedupe_tags(tags: Optional[List[str]]) -> Optional[List[str]]:
    if tags is None:
        return None
    seen: Dict[str, None] = {}
    for tag in tags:
        tag = tag.strip()
        if tag:
            seen.setdefault(tag, None)
    return list(seen)


class MetadataFields(BaseModel):
    """Bilingual descriptive metadata; every field optional until populated."""
    title_en: Optional[str] = Field(None, max_length=200)
    title_ar: Optional[str] = Field(None, max_length=200)
    description_en: Optional[str] = Field(None, max_length=2000)
    description_ar: Optional[str] = Field(None, max_length=2000)
    tags: Optional[List[str]] = Field(None, max_length=20)
    category_en: Optional[str] = Field(None, max_length=100)
    category_ar: Optional[str] = Field(None, max_length=100)
    subcategory_en: Optional[str] = Field(None, max_length=100)
    subcategory_ar: Optional[str] = Field(None, max_length=100)

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        """Strip and de-duplicate tags, keeping first-seen order."""
        return _dedupe_tags(v)


class GeneratedMetadata(BaseModel):
    """Metadata object returned by the AI collaborator; all nine fields required."""
    model_config = ConfigDict(extra="forbid")

    title_en: str = Field(..., min_length=1)
    title_ar: str = Field(..., min_length=1)
    description_en: str = Field(..., min_length=10)
    description_ar: str = Field(..., min_length=10)
    tags: List[str] = Field(..., min_length=3, max_length=10)
    category_en: str = Field(..., min_length=1)
    category_ar: str = Field(..., min_length=1)
    subcategory_en: str = Field(..., min_length=1)
    subcategory_ar: str = Field(..., min_length=1)


class MetadataSubmission(MetadataFields):
    """Schema for a human metadata submission."""
    role: ReviewRole = Field(..., description="Acting role")
    status: Optional[ReviewStatus] = Field(None, description="Target status")
    comment: Optional[str] = Field(None, max_length=1000)

    @model_validator(mode="after")
    def require_admin_comment(self) -> "MetadataSubmission":
        """Admin actions must carry a comment."""
        if self.role == ReviewRole.ADMIN and self.comment is None:
            raise ValueError("Comment is required for admin actions")
        return self

    def metadata_fields(self) -> Dict[str, Any]:
        """The submitted fields minus role, status and comment."""
        return self.model_dump(mode="json", exclude={"role", "status", "comment"})


class MetadataHistoryEntry(BaseModel):
    """One record of a metadata submission."""
    metadata: Dict[str, Any]
    created_by: str
    created_at: datetime
    comment: Optional[str] = None


class MetadataOutcome(BaseModel):
    """Status-update message produced by a metadata generation job."""
    dataset_id: UUID
    succeeded: bool
    metadata: Optional[GeneratedMetadata] = None
    error: Optional[str] = None
    attempts: int = 1


# ==========================================
# Versions
# ==========================================
class VersionHistoryEntry(BaseModel):
    """Immutable snapshot of a superseded file."""
    version_number: int = Field(..., ge=1)
    file_path: str
    file_size: int
    file_type: str
    original_filename: str
    upload_date: Optional[datetime] = None
    row_count: int
    columns: List[ColumnInfo]


class VersionListResponse(BaseModel):
    """Response schema for a dataset's version history."""
    dataset_id: UUID
    current_version: int
    versions: List[VersionHistoryEntry]


# ==========================================
# Dataset responses
# ==========================================
class DatasetResponse(BaseModel):
    """Response schema for datasets."""
    id: UUID
    filename: str
    original_filename: str
    file_size: int
    file_type: str
    upload_date: Optional[datetime]
    row_count: int
    columns: List[ColumnInfo]
    file_path: str
    status: DatasetStatus
    metadata: MetadataFields = Field(default_factory=MetadataFields)
    metadata_history: List[MetadataHistoryEntry] = Field(default_factory=list)
    versions: List[VersionHistoryEntry] = Field(default_factory=list)
    current_version: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Pagination(BaseModel):
    """Pagination block of list responses."""
    total: int
    page: int
    limit: int
    pages: int


class DatasetListResponse(BaseModel):
    """Response schema for dataset list."""
    datasets: List[DatasetResponse]
    pagination: Pagination


class DatasetFilters(BaseModel):
    """Values available for list filtering."""
    statuses: List[str]
    categories: List[str]


class UploadResult(BaseModel):
    """Response schema for a dataset upload."""
    dataset: DatasetResponse
    preview: List[Dict[str, Any]] = Field(default_factory=list)


class ApiResponse(BaseModel):
    """Envelope used by every endpoint."""
    success: bool = True
    data: Any = None
    message: str = ""


class DatasetQuery(BaseModel):
    """Listing parameters."""
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=100)
    search: Optional[str] = None
    categories: List[str] = Field(default_factory=list)
    status: Optional[DatasetStatus] = None

    @field_validator("categories", mode="before")
    @classmethod
    def split_categories(cls, v: Any) -> Any:
        """Accept both a comma separated string and a list."""
        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        categories: List[str] = []
        for item in v:
            categories.extend(c.strip() for c in str(item).split(",") if c.strip())
        return categories

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

