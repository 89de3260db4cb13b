import uuid
from datetime import UTC, datetime
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from taskqueue.config.logging import add_request_context, get_logger

logger = get_logger(__name__)


class TaskQueueException(Exception):
    """Base exception for the task queue service."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(TaskQueueException):
    """Raised when input validation fails."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, status.HTTP_422_UNPROCESSABLE_ENTITY, details)


class NotFoundError(TaskQueueException):
    """Raised when a resource is not found."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, status.HTTP_404_NOT_FOUND, details)


class JobNotFoundError(NotFoundError):
    """Raised when a job identifier is unknown."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__("Job not found", {"job_id": job_id})


class UnknownJobTypeError(TaskQueueException):
    """Raised when no handler is registered for a job type. Never retried."""

    def __init__(self, job_type: str):
        self.job_type = job_type
        super().__init__(
            f"No handler registered for job type: {job_type}",
            status.HTTP_400_BAD_REQUEST,
            {"type": job_type},
        )


class QueueSaturatedError(TaskQueueException):
    """Raised when a worker pool is at capacity. Callers may retry later."""

    def __init__(self, pool: str, capacity: int):
        self.pool = pool
        self.capacity = capacity
        super().__init__(
            "Job queue is full. Please try again later.",
            status.HTTP_429_TOO_MANY_REQUESTS,
            {"pool": pool, "capacity": capacity},
        )


class InvalidTransitionError(TaskQueueException):
    """Raised when a job status change is not allowed by the state machine."""

    def __init__(self, job_id: str, current: str, target: str):
        super().__init__(
            f"Job {job_id} cannot move from {current} to {target}",
            status.HTTP_409_CONFLICT,
            {"job_id": job_id, "from": current, "to": target},
        )


def _now() -> str:
    return datetime.now(UTC).isoformat()


def create_error_response(
    status_code: int,
    message: str,
    details: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> dict[str, Any]:
    """Error envelope: {ok: false, error: {message, code, details}, request_id, timestamp}."""
    error = {"message": message, "code": status_code, "details": details or {}}
    return {"ok": False, "error": error, "request_id": request_id, "timestamp": _now()}


def create_success_response(
    data: Any, message: str | None = None, request_id: str | None = None
) -> dict[str, Any]:
    """Success envelope: {ok: true, data, message, request_id, timestamp}."""
    return {
        "ok": True,
        "data": data,
        "message": message,
        "request_id": request_id,
        "timestamp": _now(),
    }


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())


def _error_json(
    request_id: str,
    status_code: int,
    message: str,
    details: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = create_error_response(status_code, message, details, request_id)
    return JSONResponse(status_code=status_code, content=body, headers=headers)


async def task_queue_exception_handler(
    request: Request, exc: TaskQueueException
) -> JSONResponse:
    """Render TaskQueueException subclasses; saturation adds Retry-After."""
    request_id = _request_id(request)
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "Application exception",
        exception=type(exc).__name__,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details,
        request_id=request_id,
    )

    headers = {"Retry-After": "1"} if isinstance(exc, QueueSaturatedError) else None
    return _error_json(request_id, exc.status_code, exc.message, exc.details, headers)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    request_id = _request_id(request)
    logger.warning(
        "HTTP exception", status_code=exc.status_code, detail=exc.detail, request_id=request_id
    )
    return _error_json(request_id, exc.status_code, str(exc.detail))


async def request_validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed bodies become 422 in the standard envelope."""
    request_id = _request_id(request)
    errors = exc.errors()
    logger.warning("Request validation failed", errors=errors, request_id=request_id)
    return _error_json(
        request_id,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Request validation failed",
        {"errors": [str(error.get("msg")) for error in errors]},
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    request_id = _request_id(request)
    logger.error(
        "Unhandled exception",
        exception=type(exc).__name__,
        request_id=request_id,
        exc_info=exc,
    )
    return _error_json(
        request_id, status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error"
    )


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Binds a fresh request id into the log context and echoes it as X-Request-ID."""

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        add_request_context(request_id=request_id, method=request.method, path=request.url.path)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response
