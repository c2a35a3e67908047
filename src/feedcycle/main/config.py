import logging
import os
import sys
from typing import Optional

from pydantic import computed_field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="allow")

    # Directory service (source of user-submitted feed URLs)
    directory_url: str
    directory_timeout_seconds: float = 30.0

    # Service-to-service token, minted per outbound directory call
    service_token_secret: str
    service_token_algorithm: str = "HS256"
    service_token_audience: str = "directory"
    service_token_issuer: str = "feedcycle"
    service_token_subject: str = "feed-parser"
    service_token_expiry_seconds: int = 300

    # Infrastructure dependencies
    postgres_user: str
    postgres_host: str
    postgres_password: str
    postgres_port: int
    postgres_db: str
    redis_host: str
    redis_port: int
    redis_db: Optional[int] = None

    # Redis connection resilience
    redis_conn_timeout: int = 5
    redis_conn_retries: int = 5
    redis_conn_retry_delay: int = 1
    redis_retry_on_timeout: bool = True
    redis_socket_keepalive: bool = True
    redis_health_check_interval: int = 30
    redis_max_connections: Optional[int] = None

    # Feed queue
    queue_name: str = "arq:queue"
    queue_key_prefix: str = "feedcycle"
    queue_events_channel: str = "feedcycle:queue-events"
    feed_enqueue_concurrency: int = 10

    # Cycle control. After a pass, start the next one after this many seconds
    # if no drained event has done so (0 disables).
    cycle_retry_delay_seconds: float = 60

    # Background worker configuration
    worker_max_jobs: int = 20
    worker_job_timeout_seconds: int = 300

    # Dev
    testing: bool = False
    dev: bool = False

    @field_validator("directory_url")
    @classmethod
    def strip_directory_url(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("directory_url cannot be an empty string")
        return value.rstrip("/")

    @model_validator(mode="after")
    def validate_cycle_settings(self):
        """Ensure queue and directory configuration values are sane."""
        if self.feed_enqueue_concurrency <= 0:
            logging.error(
                "FEED_ENQUEUE_CONCURRENCY must be greater than zero. Current value: %s",
                self.feed_enqueue_concurrency,
            )
            sys.exit(1)

        if self.directory_timeout_seconds <= 0:
            logging.error(
                "DIRECTORY_TIMEOUT_SECONDS must be greater than zero. Current value: %s",
                self.directory_timeout_seconds,
            )
            sys.exit(1)

        if self.cycle_retry_delay_seconds < 0:
            logging.error(
                "CYCLE_RETRY_DELAY_SECONDS cannot be negative. Current value: %s",
                self.cycle_retry_delay_seconds,
            )
            sys.exit(1)

        if self.worker_max_jobs <= 0:
            logging.error(
                "WORKER_MAX_JOBS must be greater than zero. Current value: %s",
                self.worker_max_jobs,
            )
            sys.exit(1)

        return self

    @model_validator(mode="after")
    def validate_service_token(self):
        if not self.service_token_secret or not self.service_token_secret.strip():
            logging.error(
                "SERVICE_TOKEN_SECRET is required to authenticate against the directory service."
            )
            sys.exit(1)

        if self.service_token_expiry_seconds <= 0:
            logging.error(
                "SERVICE_TOKEN_EXPIRY_SECONDS must be greater than zero. Current value: %s",
                self.service_token_expiry_seconds,
            )
            sys.exit(1)

        return self

    @computed_field
    @property
    def database_url(self) -> str:
        return (
            f"postgresql+asyncpg://{self.postgres_user}:"
            f"{self.postgres_password}@{self.postgres_host}:"
            f"{self.postgres_port}/{self.postgres_db}"
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get settings singleton, creating it if needed.

    Returns:
        Settings: The application settings instance.
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def set_settings(settings: Settings) -> None:
    """Override settings (primarily for testing).

    Args:
        settings: The Settings instance to use.
    """
    global _settings
    _settings = settings


def reset_settings() -> None:
    """Reset settings to None (for test cleanup)."""
    global _settings
    _settings = None


def get_loglevel():
    loglevel = os.getenv("LOGLEVEL", "INFO")

    match loglevel:
        case "INFO":
            return logging.INFO
        case "WARNING":
            return logging.WARNING
        case "ERROR":
            return logging.ERROR
        case "CRITICAL":
            return logging.CRITICAL
        case "DEBUG":
            return logging.DEBUG
        case _:
            return logging.INFO
