import threading
from typing import Protocol

from taskqueue.v1.jobs.models import Job, JobStatus


class JobStore(Protocol):
    """Key-value repository of job snapshots keyed by job id."""

    def get(self, job_id: str) -> Job | None: ...

    def put(self, job: Job) -> None: ...

    def count_by_status(self) -> dict[str, int]: ...


class InMemoryJobStore:
    """
    Process-local job store.

    Jobs are deep-copied on the way in and out so callers never share a
    payload dict with the stored snapshot.
    """

    def __init__(self):
        self._jobs: dict[str, Job] = {}
        self._lock = threading.Lock()

    def get(self, job_id: str) -> Job | None:
        with self._lock:
            job = self._jobs.get(job_id)
        return job.model_copy(deep=True) if job is not None else None

    def put(self, job: Job) -> None:
        snapshot = job.model_copy(deep=True)
        with self._lock:
            self._jobs[job.id] = snapshot

    def count_by_status(self) -> dict[str, int]:
        with self._lock:
            jobs = list(self._jobs.values())
        counts = {status.value: 0 for status in JobStatus}
        for job in jobs:
            counts[job.status.value] += 1
        return counts

    def __len__(self) -> int:
        return len(self._jobs)
