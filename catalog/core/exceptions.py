"""Exception hierarchy for the dataset catalog.

Each class carries the HTTP status the API layer renders it with.
"""

from typing import Any, Optional


class CatalogError(Exception):
    """Base exception for catalog errors."""

    status_code = 500

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class InvalidInputError(CatalogError):
    """Raised for user-correctable input problems (file type, size, shape, submission)."""

    status_code = 400


class NotFoundError(CatalogError):
    """Raised when a dataset does not exist."""

    status_code = 404


class InvalidStateError(CatalogError):
    """Raised when an operation is not legal for the dataset's current status."""

    status_code = 409


class UpstreamFailureError(CatalogError):
    """Raised when the AI collaborator or the storage backend fails."""

    status_code = 502


class InternalError(CatalogError):
    """Raised for unexpected failures."""

    status_code = 500
