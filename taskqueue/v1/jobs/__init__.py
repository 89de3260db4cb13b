"""
Job orchestration for asynchronous background work.

This package provides:
- Bounded worker pools that reject work when full (backpressure)
- Registry-based pluggable execute/compensate handlers
- Idempotent submission with deduplication keys
- Retries with exponential backoff and jitter, then compensation
"""
