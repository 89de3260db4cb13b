"""
Demo job handlers.

These implement the JobHandler protocol and simulate slow, flaky side
effects so retries and compensation can be exercised end to end.
"""

import logging
import random
import time
from typing import Any

from taskqueue.config.settings import Settings

logger = logging.getLogger(__name__)


class SendEmailHandler:
    """
    Simulates sending an email: a side effect that needs compensation.

    Payload expected:
    {
        "to": "user@example.com",
        "subject": "Welcome"  # optional
    }
    """

    def __init__(self, settings: Settings, rng: random.Random | None = None):
        self.settings = settings
        self.rng = rng or random.Random()

    def execute(self, payload: dict[str, Any]) -> None:
        time.sleep(self.settings.demo_latency_ms / 1000)

        to = payload.get("to", "unknown@acme.com")
        subject = payload.get("subject", "<no-subject>")
        logger.info("Executing email job", extra={"to": to, "subject": subject})

        if self.rng.random() < self.settings.demo_email_failure_rate:
            logger.warning("Simulated SMTP temp failure", extra={"to": to})
            raise RuntimeError("SMTP temp failure")

        logger.info("Email sent successfully", extra={"to": to})

    def compensate(self, last_known_state: dict[str, Any]) -> None:
        payload = last_known_state.get("payload") or {}
        to = payload.get("to", "unknown@acme.com")

        # A real implementation would send a "please ignore" follow-up
        logger.info(
            "Compensating email job, undoing side effects",
            extra={"to": to, "job_id": last_known_state.get("job_id")},
        )


class GenerateReportHandler:
    """
    Simulates report generation: no side effects to undo.

    Payload expected:
    {
        "reportName": "monthly-sales"
    }
    """

    def __init__(self, settings: Settings, rng: random.Random | None = None):
        self.settings = settings
        self.rng = rng or random.Random()

    def execute(self, payload: dict[str, Any]) -> None:
        time.sleep(self.settings.demo_latency_ms / 1000)

        report_name = payload.get("reportName", "default-report")
        logger.info("Executing report job", extra={"report_name": report_name})

        if self.rng.random() < self.settings.demo_report_failure_rate:
            logger.warning(
                "Simulated report generation failure",
                extra={"report_name": report_name},
            )
            raise RuntimeError("Report generation temporary failure")

        logger.info("Report generated successfully", extra={"report_name": report_name})

    def compensate(self, last_known_state: dict[str, Any]) -> None:
        payload = last_known_state.get("payload") or {}
        report_name = payload.get("reportName", "unknown-report")

        logger.info(
            "Compensation for report job called, nothing to undo",
            extra={"report_name": report_name},
        )
