"""Base HTTP Client for the Task Queue API"""

from typing import Any

import httpx


class TaskQueueError(Exception):
    """Base exception for Task Queue API errors"""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class QueueFullError(TaskQueueError):
    """The API rejected a job with 429; retry later."""


class APIClient:
    """Thin httpx wrapper that unwraps the API's response envelope"""

    def __init__(
        self,
        base_url: str = "http://localhost:8080",
        timeout: int = 30,
        headers: dict[str, str] | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client = httpx.Client(base_url=self.base_url, timeout=timeout, headers=headers)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.client.close()

    def _handle_response(self, response: httpx.Response) -> dict[str, Any]:
        """Return the envelope's data or raise with the API's error message"""
        try:
            body = response.json()
        except ValueError:
            raise TaskQueueError(
                f"Invalid JSON response: {response.status_code}", response.status_code
            ) from None

        if response.status_code >= 400 or body.get("ok") is False:
            message = (body.get("error") or {}).get("message", "Unknown error")
            error_cls = QueueFullError if response.status_code == 429 else TaskQueueError
            raise error_cls(f"API Error {response.status_code}: {message}", response.status_code)

        return body.get("data", {}) if "ok" in body else body

    def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = self.client.request(method, f"/v1{path}", **kwargs)
        except httpx.RequestError as e:
            raise TaskQueueError(f"Connection failed: {e}") from None
        return self._handle_response(response)

    def get(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Make GET request"""
        return self._request("GET", path, params=params)

    def post(
        self,
        path: str,
        json: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Make POST request"""
        return self._request("POST", path, json=json, headers=headers)
