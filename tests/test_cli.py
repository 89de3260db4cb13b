"""Tests for CLI commands"""

from unittest.mock import Mock, patch

import httpx
import pytest
from typer.testing import CliRunner

from taskqueue_cli.client.base import APIClient, QueueFullError, TaskQueueError
from taskqueue_cli.main import app


# Test fixtures
@pytest.fixture
def runner():
    """CLI test runner"""
    return CliRunner()


@pytest.fixture
def mock_client():
    """Mock API client"""
    client = Mock()
    client.__enter__ = Mock(return_value=client)
    client.__exit__ = Mock(return_value=None)
    return client


JOB_SNAPSHOT = {
    "job_id": "3f2c1e9a-0000-4000-8000-000000000001",
    "type": "sendEmail",
    "status": "SUCCEEDED",
    "attempts": 1,
    "last_error": "SMTP temp failure",
    "started_at": "2026-01-01T00:00:00Z",
    "completed_at": "2026-01-01T00:00:04Z",
    "next_run_at": None,
}


class TestMainCommands:
    """Test main CLI commands"""

    def test_version(self, runner):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "Task Queue CLI" in result.output

    @patch("taskqueue_cli.main.TaskQueueClient")
    def test_status_success(self, mock_client_class, runner, mock_client):
        """Test status command with successful connection"""
        mock_client.health_check.return_value = {
            "version": "1.0.0",
            "environment": "development",
            "handlers": ["sendEmail"],
            "queue": {
                "normal_pool": {"workers": 5, "queue_capacity": 10, "in_flight": 3},
                "compensation_pool": {"workers": 2, "queue_capacity": 5, "in_flight": 0},
                "pending_retries": 1,
            },
        }
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["status"])
        assert result.exit_code == 0
        assert "Connected Successfully" in result.output
        assert "3/15" in result.output

    @patch("taskqueue_cli.main.TaskQueueClient")
    def test_status_failure(self, mock_client_class, runner, mock_client):
        """Test status command with connection failure"""
        mock_client.health_check.side_effect = TaskQueueError("Connection failed")
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["status"])
        assert result.exit_code == 1
        assert "Connection Failed" in result.output

    @patch("taskqueue_cli.main.TaskQueueClient")
    def test_api_url_option(self, mock_client_class, runner, mock_client):
        mock_client.health_check.return_value = {}
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["--api-url", "http://queue:9000", "status"])

        assert result.exit_code == 0
        mock_client_class.assert_called_once_with("http://queue:9000")


class TestJobCommands:
    """Test job submission and status commands"""

    @patch("taskqueue_cli.main.TaskQueueClient")
    def test_submit(self, mock_client_class, runner, mock_client):
        mock_client.submit_job.return_value = {"job_id": "job-1", "status": "QUEUED"}
        mock_client_class.return_value = mock_client

        result = runner.invoke(
            app,
            ["submit", "sendEmail", "--payload", '{"to": "a@b.c"}', "-k", "order-1"],
        )

        assert result.exit_code == 0
        assert "job-1" in result.output
        mock_client.submit_job.assert_called_once_with(
            "sendEmail", {"to": "a@b.c"}, "order-1"
        )

    def test_submit_invalid_payload(self, runner):
        result = runner.invoke(app, ["submit", "sendEmail", "--payload", "{not json"])

        assert result.exit_code == 2
        assert "Invalid JSON payload" in result.output

    def test_submit_payload_must_be_object(self, runner):
        result = runner.invoke(app, ["submit", "sendEmail", "--payload", "[1, 2]"])

        assert result.exit_code == 2

    @patch("taskqueue_cli.main.TaskQueueClient")
    def test_submit_queue_full(self, mock_client_class, runner, mock_client):
        mock_client.submit_job.side_effect = QueueFullError("API Error 429", 429)
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["submit", "sendEmail"])

        assert result.exit_code == 3
        assert "Queue is full" in result.output

    @patch("taskqueue_cli.main.TaskQueueClient")
    def test_job_status(self, mock_client_class, runner, mock_client):
        mock_client.get_job.return_value = JOB_SNAPSHOT
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["job", JOB_SNAPSHOT["job_id"]])

        assert result.exit_code == 0
        assert "SUCCEEDED" in result.output
        assert "SMTP temp failure" in result.output

    @patch("taskqueue_cli.main.TaskQueueClient")
    def test_job_not_found(self, mock_client_class, runner, mock_client):
        mock_client.get_job.side_effect = TaskQueueError("API Error 404: Job not found", 404)
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["job", "missing"])

        assert result.exit_code == 1
        assert "Job not found" in result.output

    @patch("taskqueue_cli.main.TaskQueueClient")
    def test_wait_success(self, mock_client_class, runner, mock_client):
        mock_client.wait_for_job.return_value = JOB_SNAPSHOT
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["wait", "job-1", "--timeout", "5"])

        assert result.exit_code == 0
        mock_client.wait_for_job.assert_called_once_with("job-1", timeout=5.0, interval=0.5)

    @patch("taskqueue_cli.main.TaskQueueClient")
    def test_wait_compensated_job_exits_nonzero(self, mock_client_class, runner, mock_client):
        mock_client.wait_for_job.return_value = {**JOB_SNAPSHOT, "status": "COMPENSATED"}
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["wait", "job-1"])

        assert result.exit_code == 4
        assert "COMPENSATED" in result.output


class TestAPIClient:
    """Test response handling of the HTTP client"""

    def test_unwraps_success_envelope(self):
        client = APIClient()
        response = httpx.Response(200, json={"ok": True, "data": {"job_id": "j"}})

        assert client._handle_response(response) == {"job_id": "j"}

    def test_429_raises_queue_full(self):
        client = APIClient()
        response = httpx.Response(
            429,
            json={"ok": False, "error": {"message": "Job queue is full. Please try again later."}},
        )

        with pytest.raises(QueueFullError) as exc_info:
            client._handle_response(response)

        assert exc_info.value.status_code == 429

    def test_404_raises_task_queue_error(self):
        client = APIClient()
        response = httpx.Response(404, json={"ok": False, "error": {"message": "Job not found"}})

        with pytest.raises(TaskQueueError, match="Job not found") as exc_info:
            client._handle_response(response)

        assert not isinstance(exc_info.value, QueueFullError)

    def test_api_client_against_app(self, client):
        """Round trip through the real API using the ASGI test client transport."""
        api = APIClient()
        api.client = client

        submitted = api.post("/jobs", json={"type": "ok"})
        snapshot = api.get(f"/jobs/{submitted['job_id']}")

        assert submitted["status"] == "QUEUED"
        assert snapshot["job_id"] == submitted["job_id"]
