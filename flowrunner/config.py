"""Configuration management for the flowrunner execution engine."""

import os
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class EngineConfig(BaseModel):
    """Execution engine configuration settings."""

    # Logging settings
    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    log_format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log message format"
    )
    log_file: Optional[str] = Field(default=None, description="Log file path")
    log_max_size: int = Field(default=10485760, description="Maximum log file size in bytes")  # 10MB
    log_backup_count: int = Field(default=5, description="Number of log backup files to keep")
    structured_logging: bool = Field(default=False, description="Emit JSON log records")

    # HTTP step settings
    http_timeout: float = Field(default=30.0, description="Default HTTP request timeout in seconds")
    http_max_attempts: int = Field(default=3, description="Attempts per HTTP request, including the first")
    http_backoff_base: float = Field(default=0.5, description="First retry delay in seconds")
    http_backoff_max: float = Field(default=10.0, description="Upper bound on a single retry delay")
    http_backoff_jitter: bool = Field(default=True, description="Randomize retry delays")

    # Orchestrator settings
    node_timeout: Optional[float] = Field(
        default=None,
        description="Upper bound in seconds on a single step; unset means unbounded"
    )
    max_delay_seconds: Optional[float] = Field(
        default=None,
        description="Cap applied to delay steps; unset means no cap"
    )
    max_concurrent_steps: int = Field(
        default=10,
        description="Maximum number of steps executing at the same time"
    )

    @field_validator("http_timeout")
    @classmethod
    def validate_http_timeout(cls, v):
        if v <= 0:
            raise ValueError("HTTP timeout must be positive")
        return v

    @field_validator("http_max_attempts", "max_concurrent_steps")
    @classmethod
    def validate_at_least_one(cls, v):
        if v < 1:
            raise ValueError("Value must be at least 1")
        return v

    @field_validator("http_backoff_base", "http_backoff_max")
    @classmethod
    def validate_backoff(cls, v):
        if v < 0:
            raise ValueError("Backoff delays cannot be negative")
        return v

    @field_validator("node_timeout", "max_delay_seconds")
    @classmethod
    def validate_optional_positive(cls, v):
        if v is not None and v <= 0:
            raise ValueError("Value must be positive when set")
        return v

    def http_retry_config(self):
        """Retry policy for http-request steps."""
        from .core.error_recovery import RetryConfig

        return RetryConfig(
            max_attempts=self.http_max_attempts,
            base_delay=self.http_backoff_base,
            max_delay=self.http_backoff_max,
            jitter=self.http_backoff_jitter,
        )

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Create configuration from environment variables."""
        from .core.exceptions import ConfigurationError

        def get_env(key: str, default=None, type_func=str):
            """Get environment variable with type conversion."""
            value = os.getenv(f"FLOWRUNNER_{key}")
            if value is None or value == "":
                return default
            if type_func == bool:
                return str(value).lower() in ("true", "1", "yes", "on")
            try:
                return type_func(value)
            except ValueError as e:
                raise ConfigurationError(
                    f"Invalid value for FLOWRUNNER_{key}: {value!r}", config_key=f"FLOWRUNNER_{key}"
                ) from e

        return cls(
            log_level=get_env("LOG_LEVEL", "INFO", lambda v: LogLevel(v.upper())),
            log_format=get_env("LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"),
            log_file=get_env("LOG_FILE", None),
            log_max_size=get_env("LOG_MAX_SIZE", 10485760, int),
            log_backup_count=get_env("LOG_BACKUP_COUNT", 5, int),
            structured_logging=get_env("STRUCTURED_LOGGING", False, bool),
            http_timeout=get_env("HTTP_TIMEOUT", 30.0, float),
            http_max_attempts=get_env("HTTP_MAX_ATTEMPTS", 3, int),
            http_backoff_base=get_env("HTTP_BACKOFF_BASE", 0.5, float),
            http_backoff_max=get_env("HTTP_BACKOFF_MAX", 10.0, float),
            http_backoff_jitter=get_env("HTTP_BACKOFF_JITTER", True, bool),
            node_timeout=get_env("NODE_TIMEOUT", None, float),
            max_delay_seconds=get_env("MAX_DELAY_SECONDS", None, float),
            max_concurrent_steps=get_env("MAX_CONCURRENT_STEPS", 10, int),
        )


# Global configuration instance
_config: Optional[EngineConfig] = None


def get_config() -> EngineConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = EngineConfig.from_env()
    return _config


def load_config(config_file: Optional[str] = None) -> EngineConfig:
    """Load configuration from a .env file (if present) and the environment."""
    global _config
    from dotenv import load_dotenv

    if config_file and os.path.exists(config_file):
        load_dotenv(config_file)
    elif os.path.exists(".env"):
        load_dotenv(".env")

    _config = EngineConfig.from_env()
    return _config


def reset_config():
    """Reset the global configuration instance (mainly for testing)."""
    global _config
    _config = None


def get_testing_config() -> EngineConfig:
    """Fast settings: no real waiting, no backoff jitter."""
    return EngineConfig(
        log_level=LogLevel.WARNING,
        http_timeout=5.0,
        http_max_attempts=3,
        http_backoff_base=0.0,
        http_backoff_max=0.0,
        http_backoff_jitter=False,
        node_timeout=5.0,
        max_delay_seconds=0.01,
        max_concurrent_steps=4,
    )
