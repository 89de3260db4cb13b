"""
Job orchestrator: submission, dispatch, retries and compensation.
"""

import random
import threading
from datetime import timedelta
from typing import Any

from taskqueue.config.logging import get_logger
from taskqueue.config.settings import Settings
from taskqueue.infra.store import InMemoryJobStore, JobStore
from taskqueue.v1.core.exceptions import (
    JobNotFoundError,
    QueueSaturatedError,
    UnknownJobTypeError,
)
from taskqueue.v1.core.idempotency import IdempotencyIndex
from taskqueue.v1.core.registries import JobRegistry
from taskqueue.v1.jobs.models import Job, JobStatus, utcnow
from taskqueue.v1.jobs.pools import WorkerPool
from taskqueue.v1.jobs.scheduler import RetryScheduler
from taskqueue.v1.jobs.schemas import JobStatusResponse

logger = get_logger(__name__)


class JobOrchestrator:
    """
    Owns the job lifecycle.

    All initial jobs go to the normal pool. Failed jobs with attempts left go
    through the retry scheduler back to the normal pool (backoff with
    jitter). Jobs that fail their last attempt go to the compensation pool.
    The orchestrator is the only component that writes job snapshots.
    """

    def __init__(
        self,
        settings: Settings,
        registry: JobRegistry,
        store: JobStore | None = None,
        idempotency: IdempotencyIndex | None = None,
        normal_pool: WorkerPool | None = None,
        compensation_pool: WorkerPool | None = None,
        retry_scheduler: RetryScheduler | None = None,
        rng: random.Random | None = None,
    ):
        self.settings = settings
        self.registry = registry
        self.store = store if store is not None else InMemoryJobStore()
        self.idempotency = idempotency if idempotency is not None else IdempotencyIndex()
        self.normal_pool = normal_pool or WorkerPool(
            "normal", settings.normal_pool_size, settings.normal_queue_capacity
        )
        self.compensation_pool = compensation_pool or WorkerPool(
            "compensation",
            settings.compensation_pool_size,
            settings.compensation_queue_capacity,
        )
        self.retry_scheduler = retry_scheduler or RetryScheduler()

        self._rng = rng or random.Random()
        self._rng_lock = threading.Lock()
        # Serializes read-modify-write cycles on job snapshots
        self._state_lock = threading.Lock()
        # Held across key lookup, persist, enqueue and key claim so a key maps
        # to exactly one admitted job. Also serializes keyless submissions.
        self._submit_lock = threading.Lock()
        self._compensating: set[str] = set()

    # Lifecycle

    def start(self) -> None:
        """Start worker pools and the retry scheduler."""
        self.normal_pool.start()
        self.compensation_pool.start()
        self.retry_scheduler.start()
        logger.info(
            "Job orchestrator started",
            max_attempts=self.settings.job_max_attempts,
            backoff_base_ms=self.settings.job_backoff_base_ms,
            jitter_ms=self.settings.job_jitter_ms,
            handlers=self.registry.list(),
        )

    def shutdown(self, wait: bool = True) -> None:
        """Stop the scheduler first, then the normal and compensation pools."""
        logger.info("Stopping job orchestrator", drain=self.settings.shutdown_drain)
        timeout = self.settings.shutdown_timeout_s
        self.retry_scheduler.shutdown(wait=wait, timeout=timeout)
        self.normal_pool.shutdown(
            wait=wait, drain=self.settings.shutdown_drain, timeout=timeout
        )
        self.compensation_pool.shutdown(
            wait=wait, drain=self.settings.shutdown_drain, timeout=timeout
        )

    # Submission

    def submit(
        self,
        job_type: str,
        payload: dict[str, Any] | None = None,
        idempotency_key: str | None = None,
    ) -> Job:
        """
        Submit a job for asynchronous execution.

        Args:
            job_type: Registered handler name
            payload: Passed verbatim to the handler
            idempotency_key: Resubmissions with the same key return the
                first job instead of creating a new one

        Returns:
            The new job, or the existing job for a known idempotency key

        Raises:
            UnknownJobTypeError: No handler registered for job_type
            QueueSaturatedError: Normal pool is full; the job is not accepted
        """
        with self._submit_lock:
            if idempotency_key is not None:
                existing_id = self.idempotency.get(idempotency_key)
                if existing_id is not None:
                    logger.info(
                        "Job deduplicated",
                        job_id=existing_id,
                        idempotency_key=idempotency_key,
                        type=job_type,
                    )
                    return self.store.get(existing_id)

            self.registry.get(job_type)

            job = Job(type=job_type, payload=payload or {}, idempotency_key=idempotency_key)
            self.store.put(job)

            try:
                self.normal_pool.submit(self.dispatch, job.id)
            except QueueSaturatedError:
                logger.warning(
                    "Job rejected due to backpressure (queue full)",
                    job_id=job.id,
                    type=job_type,
                )
                raise

            # Claimed only once the job is admitted
            if idempotency_key is not None:
                winner_id = self.idempotency.put_if_absent(idempotency_key, job.id)
                if winner_id != job.id:
                    logger.error(
                        "Idempotency key claimed by another job",
                        job_id=job.id,
                        winner_id=winner_id,
                        idempotency_key=idempotency_key,
                    )
                    return self.store.get(winner_id)

        logger.info(
            "Job submitted",
            job_id=job.id,
            type=job.type,
            idempotency_key=idempotency_key,
        )
        return job

    # Execution

    def dispatch(self, job_id: str) -> None:
        """Run one attempt of a job. Called on a normal-pool worker."""
        job = self._transition(
            job_id,
            (JobStatus.QUEUED,),
            JobStatus.RUNNING,
            started_at=utcnow(),
            next_run_at=None,
        )
        if job is None:
            return

        job_logger = logger.bind(job_id=job_id, job_type=job.type, attempt=job.attempts + 1)
        job_logger.info("Execution started")

        try:
            handler = self.registry.get(job.type)
        except UnknownJobTypeError as e:
            job_logger.error("No handler for job type, not retrying")
            self._transition(job_id, (JobStatus.RUNNING,), JobStatus.FAILED, last_error=e.message)
            self._resolve_compensation_failure(job_id, "skipped, no handler registered")
            return

        try:
            handler.execute(job.payload)
        except Exception as e:
            self._handle_failure(job_id, e)
            return
        except BaseException as e:
            # Record the failed attempt so the job is not stranded in RUNNING
            self._handle_failure(job_id, e)
            raise

        self._transition(job_id, (JobStatus.RUNNING,), JobStatus.SUCCEEDED)
        job_logger.info("Execution SUCCEEDED")

    def _handle_failure(self, job_id: str, error: BaseException) -> None:
        message = str(error) or error.__class__.__name__
        max_attempts = self.settings.job_max_attempts

        with self._state_lock:
            current = self.store.get(job_id)
            failed = current.model_copy(
                update={"attempts": current.attempts + 1, "last_error": message}
            )
            if failed.can_retry(max_attempts):
                delay_ms = self.backoff_with_jitter(failed.attempts)
                job = failed.transition(
                    JobStatus.QUEUED,
                    next_run_at=utcnow() + timedelta(milliseconds=delay_ms),
                )
            else:
                delay_ms = None
                job = failed.transition(JobStatus.FAILED)
            self.store.put(job)

        job_logger = logger.bind(job_id=job_id, job_type=job.type, attempt=job.attempts)
        job_logger.warning("Execution FAILED", error=message)

        if delay_ms is not None:
            job_logger.info("Scheduling retry", delay_ms=delay_ms)
            self._schedule_retry(job_id, delay_ms, admission_attempt=0)
        else:
            job_logger.error("Max attempts reached. Triggering compensation.")
            self._dispatch_compensation(job_id)

    def backoff_with_jitter(self, attempt: int) -> int:
        """
        Delay in milliseconds before retrying after the given failed attempt.

        base * 2^(attempt - 1) plus a uniform jitter in [0, jitter_ms).
        """
        if attempt < 1:
            raise ValueError("attempt must be >= 1")

        exp = self.settings.job_backoff_base_ms * (2 ** (attempt - 1))
        jitter = 0
        if self.settings.job_jitter_ms > 0:
            with self._rng_lock:
                jitter = self._rng.randrange(self.settings.job_jitter_ms)

        logger.debug("Backoff with jitter", attempt=attempt, exp_ms=exp, jitter_ms=jitter)
        return exp + jitter

    # Retries

    def _schedule_retry(self, job_id: str, delay_ms: int, admission_attempt: int) -> None:
        try:
            self.retry_scheduler.schedule(
                delay_ms / 1000, self._retry, job_id, admission_attempt
            )
        except RuntimeError:
            logger.warning("Retry not scheduled, scheduler is shut down", job_id=job_id)

    def _retry(self, job_id: str, admission_attempt: int) -> None:
        """Hand a job back to the normal pool. Runs on the scheduler thread."""
        try:
            self.normal_pool.submit(self.dispatch, job_id)
        except RuntimeError:
            logger.warning("Retry dropped, normal pool is shut down", job_id=job_id)
        except QueueSaturatedError:
            if admission_attempt >= self.settings.job_retry_admission_attempts:
                logger.error(
                    "Retry dropped, normal pool saturated",
                    job_id=job_id,
                    admission_attempts=admission_attempt,
                )
                return

            delay_ms = self.backoff_with_jitter(admission_attempt + 1)
            with self._state_lock:
                job = self.store.get(job_id)
                if job is not None and job.status == JobStatus.QUEUED:
                    self.store.put(
                        job.model_copy(
                            update={
                                "next_run_at": utcnow() + timedelta(milliseconds=delay_ms),
                                "updated_at": utcnow(),
                            }
                        )
                    )
            logger.warning(
                "Retry rejected by saturated pool, re-scheduling",
                job_id=job_id,
                delay_ms=delay_ms,
                admission_attempt=admission_attempt + 1,
            )
            self._schedule_retry(job_id, delay_ms, admission_attempt + 1)

    # Compensation

    def _dispatch_compensation(self, job_id: str) -> None:
        try:
            self.compensation_pool.submit(self.compensate, job_id)
        except QueueSaturatedError:
            logger.error("Compensation rejected (queue full)", job_id=job_id)
            self._resolve_compensation_failure(
                job_id, "rejected, compensation queue saturated"
            )
        except RuntimeError:
            logger.error("Compensation rejected, pool is shut down", job_id=job_id)
            self._resolve_compensation_failure(
                job_id, "rejected, compensation pool is shut down"
            )

    def compensate(self, job_id: str) -> None:
        """Run the handler's compensation once. Called on a compensation worker."""
        with self._state_lock:
            job = self.store.get(job_id)
            if job is None or job.status != JobStatus.FAILED or job_id in self._compensating:
                logger.warning(
                    "Compensation skipped",
                    job_id=job_id,
                    status=job.status.value if job else None,
                )
                return
            self._compensating.add(job_id)

        job_logger = logger.bind(job_id=job_id, job_type=job.type)
        job_logger.info("Compensation started")
        try:
            handler = self.registry.get(job.type)
            handler.compensate(job.last_known_state())
        except Exception as e:
            job_logger.exception(
                "Compensation FAILED", last_known_error=job.last_error or "UNKNOWN"
            )
            self._resolve_compensation_failure(job_id, str(e) or e.__class__.__name__)
        else:
            self._transition(job_id, (JobStatus.FAILED,), JobStatus.COMPENSATED)
            job_logger.info("Job COMPENSATED")
        finally:
            with self._state_lock:
                self._compensating.discard(job_id)

    def _resolve_compensation_failure(self, job_id: str, reason: str) -> None:
        with self._state_lock:
            job = self.store.get(job_id)
            if job is None or job.status != JobStatus.FAILED:
                return
            original = job.last_error or "UNKNOWN"
            self.store.put(
                job.transition(
                    JobStatus.COMPENSATION_FAILED,
                    last_error=f"{original} | compensation: {reason}",
                )
            )
        logger.error("Job final status: COMPENSATION_FAILED", job_id=job_id)

    # Queries

    def get_job(self, job_id: str) -> Job:
        job = self.store.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def get_status(self, job_id: str) -> JobStatusResponse:
        """Best-known status snapshot. Never waits for completion."""
        return JobStatusResponse.from_job(self.get_job(job_id))

    def stats(self) -> dict[str, Any]:
        return {
            "normal_pool": self.normal_pool.stats(),
            "compensation_pool": self.compensation_pool.stats(),
            "pending_retries": self.retry_scheduler.pending,
            "jobs": self.store.count_by_status(),
        }

    def _transition(
        self,
        job_id: str,
        expected: tuple[JobStatus, ...],
        target: JobStatus,
        **changes: Any,
    ) -> Job | None:
        """Move a job to target if its current status is one of expected."""
        with self._state_lock:
            job = self.store.get(job_id)
            if job is None:
                logger.warning("Job not found, skipping transition", job_id=job_id)
                return None
            if job.status not in expected:
                logger.warning(
                    "Skipping transition",
                    job_id=job_id,
                    current=job.status.value,
                    target=target.value,
                )
                return None
            updated = job.transition(target, **changes)
            self.store.put(updated)
            return updated
