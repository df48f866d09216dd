"""
Application configuration using Pydantic Settings.
Loads configuration from environment variables with sensible defaults.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Store
    store_backend: str = "redis"  # redis or memory
    redis_url: str = "redis://localhost:6379/0"
    redis_socket_timeout_seconds: float | None = None

    # Key layout
    job_key_prefix: str = "job:"
    worker_key_prefix: str = "worker:"
    lease_key_prefix: str = "lease:"
    high_priority_lane: str = "high_priority_jobs"
    normal_lane: str = "normal_jobs"
    dead_letter_queue: str = "dead_letter_queue"
    blocked_set: str = "blocked_jobs"
    job_index_set: str = "job_index"
    processing_set: str = "processing_jobs"

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Job execution
    max_attempts: int = Field(default=3, ge=1)
    progress_step: int = Field(default=10, ge=1, le=100)
    progress_step_delay_seconds: float = 1.0

    # Worker Configuration
    worker_lanes: list[str] | None = None  # defaults to high lane, then normal lane
    worker_dequeue_timeout_seconds: float = 1.0
    worker_poll_interval_seconds: float = 1.0
    heartbeat_interval_seconds: float = 5.0
    heartbeat_ttl_seconds: float = 10.0
    worker_record_retention_seconds: int = 60
    lease_ttl_seconds: int = 30

    # Reaper Configuration
    reaper_interval_seconds: int = 10

    # Autoscaler Configuration
    autoscaler_interval_seconds: float = 10.0
    scale_up_threshold: int = 50
    scale_down_threshold: int = 10
    min_workers: int = Field(default=1, ge=0)
    max_workers: int = Field(default=10, ge=1)
    max_scale_step: int | None = None

    # Fleet (AWS EC2)
    aws_region: str = "ap-southeast-1"
    launch_template_id: str = "lt-12345678"
    worker_role_tag: str = "worker"

    # Observability
    otel_exporter_otlp_endpoint: str = "http://localhost:4317"
    otel_service_name: str = "jobqueue"
    tracing_enabled: bool = True
    log_level: str = "INFO"
    log_format: str = "json"  # json or console


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
