import threading

from taskqueue.infra.store import InMemoryJobStore
from taskqueue.v1.core.idempotency import IdempotencyIndex
from taskqueue.v1.jobs.models import Job, JobStatus


def test_put_if_absent_first_insert_wins():
    index = IdempotencyIndex()

    assert index.put_if_absent("k", "job-1") == "job-1"
    assert index.put_if_absent("k", "job-2") == "job-1"
    assert index.get("k") == "job-1"
    assert "k" in index
    assert len(index) == 1


def test_get_unknown_key():
    assert IdempotencyIndex().get("missing") is None


def test_concurrent_put_if_absent_has_single_winner():
    index = IdempotencyIndex()
    barrier = threading.Barrier(16)
    winners: list[str] = []
    lock = threading.Lock()

    def claim(job_id: str):
        barrier.wait()
        winner = index.put_if_absent("shared", job_id)
        with lock:
            winners.append(winner)

    threads = [threading.Thread(target=claim, args=(f"job-{i}",)) for i in range(16)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(set(winners)) == 1
    assert index.get("shared") == winners[0]


def test_store_returns_copies():
    store = InMemoryJobStore()
    job = Job(type="x", payload={"items": [1]})
    store.put(job)

    fetched = store.get(job.id)
    fetched.payload["items"].append(2)

    assert store.get(job.id).payload == {"items": [1]}
    assert store.get("missing") is None
    assert len(store) == 1


def test_store_counts_by_status():
    store = InMemoryJobStore()
    store.put(Job(type="x"))
    store.put(Job(type="x").transition(JobStatus.RUNNING))

    counts = store.count_by_status()

    assert counts["QUEUED"] == 1
    assert counts["RUNNING"] == 1
    assert counts["SUCCEEDED"] == 0
