"""
Job API endpoints: submit a job and poll its status.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request, status

from taskqueue.v1.core.exceptions import ValidationError, create_success_response
from taskqueue.v1.core.idempotency import get_idempotency_key
from taskqueue.v1.jobs.schemas import JobEnqueueRequest, JobEnqueueResponse
from taskqueue.v1.jobs.service import JobOrchestrator

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/jobs", tags=["jobs"])


def get_orchestrator(request: Request) -> JobOrchestrator:
    """Dependency injection function for the job orchestrator."""
    return request.app.state.orchestrator


# Convenience type alias for dependency injection
OrchestratorDep = Depends(get_orchestrator)


@router.post("", response_model=dict, status_code=status.HTTP_202_ACCEPTED)
async def submit_job(
    job_request: JobEnqueueRequest,
    header_key: str | None = Depends(get_idempotency_key),
    orchestrator: JobOrchestrator = OrchestratorDep,
) -> dict[str, Any]:
    """Submit a job for asynchronous execution."""

    idempotency_key = job_request.idempotency_key
    if header_key is not None:
        if idempotency_key is not None and idempotency_key != header_key:
            raise ValidationError(
                "Idempotency-Key header does not match idempotency_key in body",
                {"header": header_key, "body": idempotency_key},
            )
        idempotency_key = header_key

    job = orchestrator.submit(job_request.type, job_request.payload, idempotency_key)

    logger.info(
        "Job submitted via API",
        extra={
            "job_id": job.id,
            "type": job.type,
            "idempotency_key": idempotency_key,
        },
    )

    response = JobEnqueueResponse(job_id=job.id, status=job.status.value)
    return create_success_response(data=response.model_dump())


@router.get("/{job_id}", response_model=dict)
async def get_job_status(
    job_id: str,
    orchestrator: JobOrchestrator = OrchestratorDep,
) -> dict[str, Any]:
    """Get the current status snapshot of a job."""

    job_status = orchestrator.get_status(job_id)
    return create_success_response(data=job_status.model_dump(mode="json"))
