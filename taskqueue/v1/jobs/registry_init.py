"""
Job registry initialization.

Registers the built-in job handlers with a job registry at startup.
"""

import logging

from taskqueue.config.settings import Settings
from taskqueue.v1.core.registries import JobRegistry
from taskqueue.v1.jobs.handlers import GenerateReportHandler, SendEmailHandler

logger = logging.getLogger(__name__)


def register_job_handlers(registry: JobRegistry, settings: Settings) -> JobRegistry:
    """Register all built-in job handlers with the job registry."""

    if not settings.enable_demo_handlers:
        logger.info("Demo job handlers disabled")
        return registry

    logger.info("Registering job handlers")

    registry.register("sendEmail", SendEmailHandler(settings))
    registry.register("generateReport", GenerateReportHandler(settings))

    logger.info(
        "Job handlers registered", extra={"registered_handlers": registry.list()}
    )
    return registry
