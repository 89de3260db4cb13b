import random
import threading
import time
from collections.abc import Generator
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from taskqueue.config.settings import Settings
from taskqueue.main import create_app
from taskqueue.v1.core.registries import JobRegistry
from taskqueue.v1.jobs.models import Job
from taskqueue.v1.jobs.service import JobOrchestrator

ALWAYS = float("inf")


class ScriptedHandler:
    """Fails the first `failures` executions, then succeeds."""

    def __init__(self, failures: float = 0, compensate_error: str | None = None):
        self.failures = failures
        self.compensate_error = compensate_error
        self.executions = 0
        self.payloads: list[dict[str, Any]] = []
        self.compensations: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    def execute(self, payload: dict[str, Any]) -> None:
        with self._lock:
            self.executions += 1
            attempt = self.executions
            self.payloads.append(payload)
        if attempt <= self.failures:
            raise RuntimeError(f"boom {attempt}")

    def compensate(self, last_known_state: dict[str, Any]) -> None:
        with self._lock:
            self.compensations.append(last_known_state)
        if self.compensate_error:
            raise RuntimeError(self.compensate_error)


class BlockingHandler:
    """Holds its worker until the gate opens."""

    def __init__(self, gate: threading.Event):
        self.gate = gate

    def execute(self, payload: dict[str, Any]) -> None:
        self.gate.wait(timeout=10)

    def compensate(self, last_known_state: dict[str, Any]) -> None:
        pass


def _wait_for_terminal(
    orchestrator: JobOrchestrator, job_id: str, timeout: float = 5.0
) -> Job:
    """Poll a job until it reaches a terminal status."""
    deadline = time.monotonic() + timeout
    while True:
        job = orchestrator.get_job(job_id)
        if job.is_terminal():
            return job
        if time.monotonic() >= deadline:
            raise AssertionError(f"Job {job_id} still {job.status.value} after {timeout}s")
        time.sleep(0.01)


@pytest.fixture
def wait_for_terminal():
    """Helper that polls a job until it reaches a terminal status."""
    return _wait_for_terminal


@pytest.fixture
def test_settings() -> Settings:
    """Small pools and millisecond backoff so retries finish quickly."""
    return Settings(
        environment="development",
        enable_demo_handlers=False,
        normal_pool_size=2,
        normal_queue_capacity=2,
        compensation_pool_size=1,
        compensation_queue_capacity=2,
        job_max_attempts=3,
        job_backoff_base_ms=10,
        job_jitter_ms=5,
        job_retry_admission_attempts=3,
        shutdown_timeout_s=5,
    )


@pytest.fixture
def gate() -> threading.Event:
    return threading.Event()


@pytest.fixture
def registry(gate) -> JobRegistry:
    registry = JobRegistry()
    registry.register("ok", ScriptedHandler())
    registry.register("flaky", ScriptedHandler(failures=2))
    registry.register("broken", ScriptedHandler(failures=ALWAYS))
    registry.register(
        "doomed", ScriptedHandler(failures=ALWAYS, compensate_error="undo failed")
    )
    registry.register("block", BlockingHandler(gate))
    return registry


@pytest.fixture
def orchestrator(test_settings, registry, gate) -> Generator[JobOrchestrator, None, None]:
    """Started orchestrator; blocked handlers are released before shutdown."""
    orchestrator = JobOrchestrator(test_settings, registry, rng=random.Random(1234))
    orchestrator.start()
    yield orchestrator
    gate.set()
    orchestrator.shutdown()


@pytest.fixture
def app(test_settings, registry) -> FastAPI:
    """Create test app with the scripted handlers."""
    return create_app(test_settings, registry)


@pytest.fixture
def client(app, gate) -> Generator[TestClient, None, None]:
    """Create test client; entering it runs the lifespan (orchestrator start/stop)."""
    with TestClient(app) as test_client:
        yield test_client
        gate.set()
