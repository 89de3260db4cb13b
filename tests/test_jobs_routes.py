import time

import pytest
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient


def poll_until_terminal(client: TestClient, job_id: str, timeout: float = 5.0) -> dict:
    deadline = time.monotonic() + timeout
    while True:
        response = client.get(f"/v1/jobs/{job_id}")
        assert response.status_code == 200
        data = response.json()["data"]
        if data["status"] in ("SUCCEEDED", "COMPENSATED", "COMPENSATION_FAILED"):
            return data
        assert time.monotonic() < deadline, f"job {job_id} stuck in {data['status']}"
        time.sleep(0.01)


def test_submit_job_accepted(client: TestClient):
    """Test job submission returns 202 with the job id."""
    response = client.post("/v1/jobs", json={"type": "ok", "payload": {"to": "a@b.c"}})

    assert response.status_code == 202
    data = response.json()
    assert data["ok"] is True
    assert data["data"]["status"] == "QUEUED"
    assert data["data"]["job_id"]
    assert "X-Request-ID" in response.headers


def test_job_status_after_completion(client: TestClient):
    job_id = client.post("/v1/jobs", json={"type": "flaky"}).json()["data"]["job_id"]

    data = poll_until_terminal(client, job_id)

    assert data["job_id"] == job_id
    assert data["type"] == "flaky"
    assert data["status"] == "SUCCEEDED"
    assert data["attempts"] == 2
    assert data["last_error"] == "boom 2"
    assert data["started_at"] is not None
    assert data["completed_at"] is not None


def test_compensated_job_status(client: TestClient):
    job_id = client.post("/v1/jobs", json={"type": "doomed"}).json()["data"]["job_id"]

    data = poll_until_terminal(client, job_id)

    assert data["status"] == "COMPENSATION_FAILED"
    assert data["last_error"] == "boom 3 | compensation: undo failed"


def test_unknown_job_type(client: TestClient):
    response = client.post("/v1/jobs", json={"type": "nope", "payload": {}})

    assert response.status_code == 400
    data = response.json()
    assert data["ok"] is False
    assert "nope" in data["error"]["message"]


@pytest.mark.parametrize(
    "body",
    [
        {},
        {"type": ""},
        {"type": "ok", "payload": ["not", "an", "object"]},
        {"type": "ok", "idempotency_key": ""},
    ],
)
def test_malformed_body(client: TestClient, body):
    response = client.post("/v1/jobs", json=body)

    assert response.status_code == 422
    assert response.json()["error"]["message"] == "Request validation failed"


def test_unknown_job_id(client: TestClient):
    response = client.get("/v1/jobs/does-not-exist")

    assert response.status_code == 404
    data = response.json()
    assert data["error"]["message"] == "Job not found"
    assert data["error"]["details"] == {"job_id": "does-not-exist"}


def test_idempotency_key_header(client: TestClient):
    headers = {"Idempotency-Key": "order-42"}
    first = client.post("/v1/jobs", json={"type": "ok"}, headers=headers)
    second = client.post("/v1/jobs", json={"type": "ok"}, headers=headers)

    assert first.status_code == 202
    assert second.status_code == 202
    assert first.json()["data"]["job_id"] == second.json()["data"]["job_id"]


def test_idempotency_key_body_and_header_agree(client: TestClient):
    first = client.post("/v1/jobs", json={"type": "ok", "idempotency_key": "k-1"})
    second = client.post(
        "/v1/jobs",
        json={"type": "ok", "idempotency_key": "k-1"},
        headers={"Idempotency-Key": "k-1"},
    )

    assert first.json()["data"]["job_id"] == second.json()["data"]["job_id"]


def test_idempotency_key_conflict(client: TestClient):
    response = client.post(
        "/v1/jobs",
        json={"type": "ok", "idempotency_key": "body-key"},
        headers={"Idempotency-Key": "header-key"},
    )

    assert response.status_code == 422
    assert response.json()["error"]["details"] == {
        "header": "header-key",
        "body": "body-key",
    }


def test_blank_idempotency_key_header_is_rejected(client: TestClient, app):
    for _ in range(2):
        response = client.post("/v1/jobs", json={"type": "ok"}, headers={"Idempotency-Key": ""})

        assert response.status_code == 422
        assert response.json()["error"]["details"] == {"header": ""}

    assert len(app.state.orchestrator.idempotency) == 0
    assert len(app.state.orchestrator.store) == 0


def test_queue_saturation_returns_429(client: TestClient, app, gate):
    capacity = app.state.orchestrator.normal_pool.capacity
    for _ in range(capacity):
        assert client.post("/v1/jobs", json={"type": "block"}).status_code == 202

    response = client.post("/v1/jobs", json={"type": "block"})

    assert response.status_code == 429
    assert response.headers["Retry-After"] == "1"
    assert response.json()["error"]["message"] == "Job queue is full. Please try again later."

    gate.set()


@pytest.mark.asyncio
async def test_submit_job_async_client(app):
    """Test the jobs API through an async client."""
    orchestrator = app.state.orchestrator
    orchestrator.start()
    try:
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            response = await ac.post("/v1/jobs", json={"type": "ok"})
            assert response.status_code == 202

            job_id = response.json()["data"]["job_id"]
            status_response = await ac.get(f"/v1/jobs/{job_id}")
            assert status_response.status_code == 200
            assert status_response.json()["data"]["job_id"] == job_id
    finally:
        orchestrator.shutdown()
