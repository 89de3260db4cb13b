"""Asynchronous job queue with retries, backoff and compensation."""

__version__ = "1.0.0"
