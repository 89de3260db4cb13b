"""
Job model and lifecycle state machine.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from taskqueue.v1.core.exceptions import InvalidTransitionError


class JobStatus(str, Enum):
    """Job status enumeration."""

    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    COMPENSATED = "COMPENSATED"
    COMPENSATION_FAILED = "COMPENSATION_FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {JobStatus.SUCCEEDED, JobStatus.COMPENSATED, JobStatus.COMPENSATION_FAILED}
)

# FAILED is internal: reached after the last attempt, resolved by compensation.
ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.QUEUED: frozenset({JobStatus.RUNNING}),
    JobStatus.RUNNING: frozenset(
        {JobStatus.SUCCEEDED, JobStatus.QUEUED, JobStatus.FAILED}
    ),
    JobStatus.FAILED: frozenset(
        {JobStatus.COMPENSATED, JobStatus.COMPENSATION_FAILED}
    ),
    JobStatus.SUCCEEDED: frozenset(),
    JobStatus.COMPENSATED: frozenset(),
    JobStatus.COMPENSATION_FAILED: frozenset(),
}


def utcnow() -> datetime:
    return datetime.now(UTC)


class Job(BaseModel):
    """
    Immutable snapshot of a job and its lifecycle.

    Every change goes through transition() or model_copy(), producing a new
    snapshot; the orchestrator persists the result. Identity fields (id,
    type, payload, idempotency_key) never change after creation.
    """

    model_config = ConfigDict(frozen=True)

    # Core fields
    id: str = Field(default_factory=lambda: str(uuid4()))
    type: str
    payload: dict[str, Any] = Field(default_factory=dict)
    idempotency_key: str | None = None

    # Job state
    status: JobStatus = JobStatus.QUEUED
    attempts: int = Field(default=0, ge=0, description="Failed executions so far")
    last_error: str | None = None

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    next_run_at: datetime | None = None

    def is_terminal(self) -> bool:
        """Check if job reached a final status."""
        return self.status.is_terminal

    def can_retry(self, max_attempts: int) -> bool:
        """Check if another execution is allowed after the latest failure."""
        return self.attempts < max_attempts

    def can_transition(self, target: JobStatus) -> bool:
        return target in ALLOWED_TRANSITIONS[self.status]

    def transition(self, target: JobStatus, **changes: Any) -> "Job":
        """
        Return a copy moved to target status with the given field changes.

        started_at is kept if already set, completed_at is stamped on the
        terminal transition, and attempts may only grow.
        """
        if not self.can_transition(target):
            raise InvalidTransitionError(self.id, self.status.value, target.value)

        now = utcnow()
        if "attempts" in changes and changes["attempts"] < self.attempts:
            raise ValueError("attempts cannot decrease")
        if self.started_at is not None:
            changes.pop("started_at", None)
        if target.is_terminal:
            changes.setdefault("completed_at", now)
            changes.setdefault("next_run_at", None)

        return self.model_copy(update={**changes, "status": target, "updated_at": now})

    def last_known_state(self) -> dict[str, Any]:
        """State handed to a handler's compensate()."""
        return {"type": self.type, "payload": self.payload, "job_id": self.id}
