"""API Endpoint Wrappers"""

import time
from typing import Any

from .base import APIClient, QueueFullError, TaskQueueError

__all__ = ["TaskQueueClient", "TaskQueueError", "QueueFullError", "TERMINAL_STATUSES"]

TERMINAL_STATUSES = {"SUCCEEDED", "COMPENSATED", "COMPENSATION_FAILED"}


class TaskQueueClient:
    """High-level client with typed endpoint methods"""

    def __init__(self, base_url: str = "http://localhost:8080", timeout: int = 30):
        self.api = APIClient(base_url=base_url, timeout=timeout)

    def __enter__(self):
        self.api.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.api.__exit__(exc_type, exc_val, exc_tb)

    # Health Check
    def health_check(self) -> dict[str, Any]:
        """Check API health status"""
        return self.api.get("/healthz")

    # Jobs Endpoints
    def submit_job(
        self,
        type: str,
        payload: dict[str, Any] | None = None,
        idempotency_key: str | None = None,
    ) -> dict[str, Any]:
        """Submit a job; returns {"job_id", "status"}"""
        body: dict[str, Any] = {"type": type, "payload": payload or {}}
        if idempotency_key:
            body["idempotency_key"] = idempotency_key
        return self.api.post("/jobs", json=body)

    def get_job(self, job_id: str) -> dict[str, Any]:
        """Get the status snapshot of a job"""
        return self.api.get(f"/jobs/{job_id}")

    def wait_for_job(
        self, job_id: str, timeout: float = 60.0, interval: float = 0.5
    ) -> dict[str, Any]:
        """Poll a job until it reaches a terminal status or timeout expires"""
        deadline = time.monotonic() + timeout
        while True:
            job = self.get_job(job_id)
            if job.get("status") in TERMINAL_STATUSES:
                return job
            if time.monotonic() >= deadline:
                raise TaskQueueError(
                    f"Timed out waiting for job {job_id} (last status: {job.get('status')})"
                )
            time.sleep(interval)
