"""
Idempotency support for deduplicating job submissions.
"""

import threading

from fastapi import Header

from taskqueue.v1.core.exceptions import ValidationError


class IdempotencyIndex:
    """
    In-memory mapping from idempotency key to job id.

    Each key is written at most once; the first successful insert wins and
    entries are never removed.
    """

    def __init__(self):
        self._entries: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        """Return the job id mapped to key, if any."""
        return self._entries.get(key)

    def put_if_absent(self, key: str, job_id: str) -> str:
        """
        Map key to job_id unless the key is already taken.

        Returns:
            The job id that owns the key after the call. Equal to job_id when
            this call won the insert.
        """
        with self._lock:
            return self._entries.setdefault(key, job_id)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


def get_idempotency_key(
    idempotency_key: str | None = Header(None, alias="Idempotency-Key"),
) -> str | None:
    """Extract idempotency key from request headers. A blank key is rejected."""
    if idempotency_key is not None and not idempotency_key.strip():
        raise ValidationError(
            "Idempotency-Key header must not be blank",
            {"header": idempotency_key},
        )
    return idempotency_key
