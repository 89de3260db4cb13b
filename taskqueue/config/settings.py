from typing import Literal

from fastapi import Depends
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="Async Task Queue", description="Application name")
    version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment")
    debug: bool = Field(default=True, description="Debug mode")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Logging level"
    )

    # Server
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8080, description="Server port")

    # Worker pools
    normal_pool_size: int = Field(
        default=5, ge=1, description="Worker threads executing jobs"
    )
    normal_queue_capacity: int = Field(
        default=10, ge=0, description="Pending jobs held before rejecting"
    )
    compensation_pool_size: int = Field(
        default=2, ge=1, description="Worker threads running compensation"
    )
    compensation_queue_capacity: int = Field(
        default=5, ge=0, description="Pending compensations held before rejecting"
    )

    # Retries
    job_max_attempts: int = Field(
        default=3, ge=1, description="Failed executions before compensation"
    )
    job_backoff_base_ms: int = Field(
        default=500, ge=0, description="Base retry delay, doubled per attempt"
    )
    job_jitter_ms: int = Field(
        default=250, ge=0, description="Upper bound (exclusive) of random jitter"
    )
    job_retry_admission_attempts: int = Field(
        default=3,
        ge=0,
        description="Times a retry rejected by a saturated pool is re-scheduled",
    )

    # Shutdown
    shutdown_drain: bool = Field(
        default=True, description="Run queued work before stopping the pools"
    )
    shutdown_timeout_s: float = Field(
        default=30.0, ge=0, description="Max seconds to wait for each pool on shutdown"
    )

    # Demo handlers
    enable_demo_handlers: bool = Field(
        default=True, description="Register the sendEmail/generateReport handlers"
    )
    demo_latency_ms: int = Field(
        default=3000, ge=0, description="Simulated handler latency"
    )
    demo_email_failure_rate: float = Field(
        default=0.4, ge=0.0, le=1.0, description="Simulated SMTP failure probability"
    )
    demo_report_failure_rate: float = Field(
        default=0.3, ge=0.0, le=1.0, description="Simulated report failure probability"
    )

    def model_post_init(self, __context) -> None:
        """Validate settings after initialization."""
        # Simulated handlers sleep and fail on purpose
        if self.environment == "production" and self.enable_demo_handlers:
            raise ValueError(
                "ENABLE_DEMO_HANDLERS=true is not allowed in production environment. "
                "Register real job handlers for production deployments."
            )


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Dependency injection function for settings."""
    return settings


# Convenience type alias for dependency injection
SettingsDep = Depends(get_settings)
