from datetime import UTC, datetime

from fastapi import APIRouter
from pydantic import BaseModel

from taskqueue.config.settings import Settings, SettingsDep
from taskqueue.v1.core.exceptions import create_success_response
from taskqueue.v1.jobs.routes import OrchestratorDep
from taskqueue.v1.jobs.schemas import QueueStatsResponse
from taskqueue.v1.jobs.service import JobOrchestrator

router = APIRouter()


class HealthResponse(BaseModel):
    """Health response with worker pool status."""

    ok: bool
    version: str
    environment: str
    timestamp: str
    handlers: list[str]
    queue: QueueStatsResponse


@router.get("/healthz", response_model=dict)
async def health_check(
    settings: Settings = SettingsDep,
    orchestrator: JobOrchestrator = OrchestratorDep,
):
    """Health check endpoint with worker pool and retry scheduler status."""

    queue_stats = QueueStatsResponse.model_validate(orchestrator.stats())

    # Saturation is backpressure, not ill health
    overall_ok = orchestrator.normal_pool.running and orchestrator.compensation_pool.running

    health = HealthResponse(
        ok=overall_ok,
        version=settings.version,
        environment=settings.environment,
        timestamp=datetime.now(UTC).isoformat(),
        handlers=orchestrator.registry.list(),
        queue=queue_stats,
    )

    return create_success_response(data=health.model_dump())
