import threading
from typing import Any, Generic, Protocol, TypeVar

from taskqueue.v1.core.exceptions import UnknownJobTypeError

# Base registry implementation
T = TypeVar("T")


class Registry(Generic[T]):
    """Generic registry for pluggable implementations."""

    def __init__(self, name: str):
        self.name = name
        self._implementations: dict[str, T] = {}
        self._frozen = False
        self._lock = threading.Lock()

    def register(self, name: str, implementation: T) -> None:
        """Register an implementation with a given name."""
        with self._lock:
            if self._frozen:
                raise RuntimeError(
                    f"Cannot register '{name}' in {self.name.lower()} registry: "
                    "registry is frozen in production mode"
                )
            self._implementations[name] = implementation

    def get(self, name: str) -> T:
        """Get an implementation by name."""
        implementation = self._implementations.get(name)
        if implementation is None:
            raise KeyError(
                f"No {self.name.lower()} implementation registered with name: {name}"
            )
        return implementation

    def __contains__(self, name: object) -> bool:
        return name in self._implementations

    def list(self) -> list[str]:
        """List all registered implementation names."""
        return list(self._implementations.keys())

    def freeze(self) -> None:
        """Freeze the registry to prevent further modifications."""
        self._frozen = True

    def is_frozen(self) -> bool:
        """Check if the registry is frozen."""
        return self._frozen


# Job Registry - execute/compensate handlers per job type
class JobHandler(Protocol):
    """Protocol for handlers that run background jobs."""

    def execute(self, payload: dict[str, Any]) -> None:
        """
        Run the job.

        Raise any exception to report a failure; the job is retried with
        backoff until attempts are exhausted.
        """
        ...

    def compensate(self, last_known_state: dict[str, Any]) -> None:
        """
        Undo or mitigate side effects after the final failed attempt.

        Args:
            last_known_state: {"type": str, "payload": dict, "job_id": str}

        Should not raise. If it does, the job ends as COMPENSATION_FAILED.
        """
        ...


class JobRegistry(Registry[JobHandler]):
    """Registry for job handlers (sendEmail, generateReport, ...)."""

    def __init__(self):
        super().__init__("Job")

    def get(self, name: str) -> JobHandler:
        """Get the handler for a job type, or raise UnknownJobTypeError."""
        try:
            return super().get(name)
        except KeyError:
            raise UnknownJobTypeError(name) from None
