"""
Upload Batch State Machine

This module is the SINGLE SOURCE OF TRUTH for all UploadBatch status
transitions. All status changes must go through this module.
"""

from typing import Dict, List, Optional
from datetime import datetime, timezone

from commission_engine.models.upload_batch import UploadBatch, BatchStatus, PipelineStage


class InvalidTransitionError(Exception):
    """Raised when a batch status change is not allowed."""

    def __init__(self, current_status: str, new_status: str):
        self.current_status = current_status
        self.new_status = new_status
        allowed = get_allowed_transitions(current_status)
        if allowed:
            message = (
                f"Cannot change batch from '{current_status}' to '{new_status}'. "
                f"Allowed transitions: {', '.join(allowed)}"
            )
        else:
            message = f"Batch in '{current_status}' status cannot be modified. This is a terminal state."
        super().__init__(message)


# =============================================================================
# TRANSITION RULES
# =============================================================================

BATCH_TRANSITIONS: Dict[str, List[str]] = {
    BatchStatus.PENDING.value: [
        BatchStatus.DOWNLOADING.value,   # Start processing
        BatchStatus.SUPERSEDED.value,    # Newer upload for the period
        BatchStatus.CLEARED.value,       # Discarded before processing
        BatchStatus.FAILED.value,        # Rejected before any writes
    ],
    BatchStatus.DOWNLOADING.value: [
        BatchStatus.PROCESSING.value,
        BatchStatus.FAILED.value,
    ],
    BatchStatus.PROCESSING.value: [
        BatchStatus.CALCULATING.value,
        BatchStatus.FAILED.value,
    ],
    BatchStatus.CALCULATING.value: [
        BatchStatus.COMPLETED.value,
        BatchStatus.FAILED.value,
    ],
    BatchStatus.COMPLETED.value: [
        BatchStatus.SUPERSEDED.value,
        BatchStatus.CLEARED.value,
    ],
    BatchStatus.FAILED.value: [
        BatchStatus.DOWNLOADING.value,   # Explicit re-trigger
        BatchStatus.SUPERSEDED.value,
        BatchStatus.CLEARED.value,
    ],
    BatchStatus.SUPERSEDED.value: [
        BatchStatus.CLEARED.value,
    ],
    BatchStatus.CLEARED.value: [],       # Terminal state
}

# A batch in one of these states is being worked on by a run
LIVE_STATES = frozenset({
    BatchStatus.DOWNLOADING.value,
    BatchStatus.PROCESSING.value,
    BatchStatus.CALCULATING.value,
})

STARTABLE_STATES = frozenset({
    BatchStatus.PENDING.value,
    BatchStatus.FAILED.value,
})

# No longer eligible to become the authoritative batch of its period
RETIRED_STATES = frozenset({
    BatchStatus.SUPERSEDED.value,
    BatchStatus.CLEARED.value,
})

FINISHED_STATES = frozenset({
    BatchStatus.COMPLETED.value,
    BatchStatus.SUPERSEDED.value,
    BatchStatus.CLEARED.value,
})

# Progress reported when a stage is entered
STAGE_PROGRESS: Dict[str, int] = {
    PipelineStage.QUEUED.value: 0,
    PipelineStage.LOADING_ROWS.value: 5,
    PipelineStage.SUPERSEDING.value: 10,
    PipelineStage.WRITING.value: 10,
    PipelineStage.AGGREGATING.value: 85,
    PipelineStage.PROPAGATING.value: 95,
    PipelineStage.DONE.value: 100,
}

WRITE_PROGRESS_START = 10
WRITE_PROGRESS_END = 80


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def can_transition(current_status: str, new_status: str) -> bool:
    return new_status in BATCH_TRANSITIONS.get(current_status, [])


def get_allowed_transitions(current_status: str) -> List[str]:
    return BATCH_TRANSITIONS.get(current_status, [])


def validate_transition(current_status: str, new_status: str) -> None:
    """Raise InvalidTransitionError unless the change is allowed."""
    if current_status == new_status:
        return
    if not can_transition(current_status, new_status):
        raise InvalidTransitionError(current_status, new_status)


def write_progress(chunks_done: int, chunks_total: int) -> int:
    """Progress while writing: 10..80 in proportion to committed chunks."""
    if chunks_total <= 0:
        return WRITE_PROGRESS_END
    span = WRITE_PROGRESS_END - WRITE_PROGRESS_START
    return WRITE_PROGRESS_START + int(span * min(chunks_done, chunks_total) / chunks_total)


def transition_batch(
    batch: UploadBatch,
    new_status: BatchStatus,
    stage: Optional[PipelineStage] = None,
    error: Optional[str] = None,
) -> UploadBatch:
    """
    Apply a validated status change to ``batch`` in place.

    Sets the matching timestamp and, for states that end a run, releases
    ``is_processing``. The caller commits.
    """
    validate_transition(batch.status, new_status.value)
    now = datetime.now(timezone.utc)

    batch.status = new_status.value
    if stage is not None:
        batch.stage = stage.value
        batch.progress = max(batch.progress or 0, STAGE_PROGRESS[stage.value])

    if new_status == BatchStatus.DOWNLOADING:
        batch.started_at = now
        batch.failed_at = None
        batch.error = None
    elif new_status == BatchStatus.COMPLETED:
        batch.completed_at = now
        batch.progress = 100
        batch.stage = PipelineStage.DONE.value
        batch.is_processing = False
    elif new_status == BatchStatus.FAILED:
        batch.failed_at = now
        batch.error = error
        batch.is_processing = False
    elif new_status == BatchStatus.SUPERSEDED:
        batch.superseded_at = now
        batch.is_active = False
        batch.is_processing = False
    elif new_status == BatchStatus.CLEARED:
        batch.cleared_at = now
        batch.is_active = False
        batch.is_processing = False

    return batch
