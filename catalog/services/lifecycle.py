"""
Dataset lifecycle state machine.

    processed -> metadata_generated | metadata_failed       (metadata job)
    metadata_generated | metadata_failed
        | under_review | changes_requested -> under_review  (submission)
    under_review -> approved | changes_requested            (admin review)
    changes_requested -> changes_requested                  (admin re-annotation)

``approved`` has no outgoing transition; new versions leave the status as is.
"""

from typing import Dict, FrozenSet, Optional

from catalog.core.exceptions import InvalidInputError, InvalidStateError
from catalog.models.dataset import DatasetStatus
from catalog.schemas.dataset import ReviewRole

S = DatasetStatus

# States a human submission may start from
REVIEWABLE_STATES: FrozenSet[DatasetStatus] = frozenset({
    S.METADATA_GENERATED,
    S.METADATA_FAILED,
    S.UNDER_REVIEW,
    S.CHANGES_REQUESTED,
})

TRANSITIONS: Dict[DatasetStatus, FrozenSet[DatasetStatus]] = {
    S.UPLOADED: frozenset({S.PROCESSED}),
    S.PROCESSED: frozenset({S.METADATA_GENERATED, S.METADATA_FAILED}),
    S.METADATA_GENERATED: frozenset({S.UNDER_REVIEW}),
    S.METADATA_FAILED: frozenset({S.UNDER_REVIEW}),
    S.UNDER_REVIEW: frozenset({S.UNDER_REVIEW, S.APPROVED, S.CHANGES_REQUESTED}),
    S.CHANGES_REQUESTED: frozenset({S.UNDER_REVIEW, S.CHANGES_REQUESTED}),
    S.APPROVED: frozenset(),
}

# Targets only an admin may move a dataset into
ADMIN_ONLY_TARGETS: FrozenSet[DatasetStatus] = frozenset({S.APPROVED, S.CHANGES_REQUESTED})


def all_statuses() -> list:
    """Every declared status, in lifecycle order."""
    return [status.value for status in DatasetStatus]


def can_transition(current: DatasetStatus, target: DatasetStatus) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def ensure_transition(current: DatasetStatus, target: DatasetStatus) -> None:
    """Raise InvalidStateError unless ``current -> target`` is in the graph."""
    if not can_transition(current, target):
        raise InvalidStateError(
            f"Cannot move dataset from '{current.value}' to '{target.value}'",
            details={"current": current.value, "target": target.value},
        )


def resolve_submission_target(
    current: DatasetStatus,
    requested: Optional[DatasetStatus],
    role: ReviewRole,
) -> DatasetStatus:
    """
    Decide the status a human metadata submission moves the dataset into.

    A submission without a status is a metadata-only edit and keeps the
    current status; it is still only accepted in a reviewable state.

    Raises:
        InvalidStateError: If the dataset is not reviewable or the move is not in the graph
        InvalidInputError: If an editor attempts an admin-only move
    """
    if current not in REVIEWABLE_STATES:
        raise InvalidStateError(
            f"Metadata cannot be submitted while dataset is '{current.value}'",
            details={"current": current.value},
        )

    if requested is None:
        return current

    if requested in ADMIN_ONLY_TARGETS and role != ReviewRole.ADMIN:
        raise InvalidInputError(
            f"Only an admin may set status '{requested.value}'",
            details={"role": role.value, "target": requested.value},
        )

    ensure_transition(current, requested)
    return requested


def ensure_versionable(current: DatasetStatus) -> None:
    """New file versions are accepted only for approved datasets."""
    if current != S.APPROVED:
        raise InvalidStateError(
            "New versions can only be uploaded for approved datasets",
            details={"current": current.value},
        )
