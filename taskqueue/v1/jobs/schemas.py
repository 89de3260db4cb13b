"""
Job Pydantic schemas for the HTTP transport.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from taskqueue.v1.jobs.models import Job


class JobEnqueueRequest(BaseModel):
    """Schema for submitting jobs via API."""

    type: str = Field(..., min_length=1, description="Job type")
    payload: dict[str, Any] = Field(default_factory=dict, description="Job payload")
    idempotency_key: str | None = Field(
        default=None, min_length=1, description="Deduplication key"
    )


class JobEnqueueResponse(BaseModel):
    """Schema for job submit response."""

    job_id: str
    status: str


class JobStatusResponse(BaseModel):
    """Point-in-time status snapshot of a job."""

    job_id: str
    type: str
    status: str
    attempts: int
    last_error: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    next_run_at: datetime | None = None

    @classmethod
    def from_job(cls, job: Job) -> "JobStatusResponse":
        return cls(
            job_id=job.id,
            type=job.type,
            status=job.status.value,
            attempts=job.attempts,
            last_error=job.last_error,
            started_at=job.started_at,
            completed_at=job.completed_at,
            next_run_at=job.next_run_at,
        )


class PoolStats(BaseModel):
    """Occupancy of one worker pool."""

    name: str
    workers: int
    queue_capacity: int
    active: int
    queued: int
    in_flight: int
    saturated: bool


class QueueStatsResponse(BaseModel):
    """Schema for orchestrator statistics."""

    normal_pool: PoolStats
    compensation_pool: PoolStats
    pending_retries: int
    jobs: dict[str, int] = Field(default_factory=dict, description="Job count per status")
