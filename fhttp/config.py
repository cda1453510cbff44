"""Configuration management using pydantic-settings."""

from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Client settings loaded from FHTTP_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="FHTTP_",
        case_sensitive=False,
        extra="ignore",
    )

    broker: str = Field(default="https://fhttp.dev", description="URI of the message broker")
    consumer: str = Field(default="http://127.0.0.1", description="URI of the consumer receiving payloads")
    port: int = Field(default=0, ge=0, le=65535, description="Consumer port, used when the URI has none")
    debug: bool = Field(default=False, description="Enable debug logs")
    log_level: str = Field(default="INFO", description="Logging level when debug is off")
    log_dir: str = Field(default="logs", description="Directory for the error/info log files")

    request_timeout: float = Field(default=5.0, gt=0, description="Consumer request timeout in seconds")
    bootstrap_timeout: float = Field(default=5.0, gt=0, description="Session bootstrap timeout in seconds")
    keepalive_interval: float = Field(default=5.0, gt=0, description="Seconds between keepalive pings")
    write_timeout: float = Field(default=5.0, gt=0, description="Write deadline for control frames")
    close_grace_period: float = Field(default=1.0, ge=0, description="Delay between close frame and teardown")
    body_preview_length: int = Field(default=80, ge=0, description="Response body characters shown per request")


@lru_cache
def get_settings() -> Settings:
    """Get the application settings instance."""
    return Settings()
