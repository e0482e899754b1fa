"""Configuration management for the execution sandbox service.

A single flat Settings class reads everything from the environment, and
grouped read-only views organize it by concern.

Usage:
    from exe_service.config import settings

    # Grouped access
    settings.sandbox.sandbox_image
    settings.api.api_port

    # Flat access
    settings.sandbox_image
    settings.api_port
"""

from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .api import APIConfig
from .logging import LoggingConfig
from .sandbox import SandboxConfig


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # API Configuration
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=4004, ge=1, le=65535)
    api_debug: bool = Field(default=False)
    api_reload: bool = Field(default=False)
    enable_docs: bool = Field(default=True)
    enable_cors: bool = Field(default=False)
    cors_origins: List[str] = Field(default_factory=list)
    max_code_bytes: int = Field(
        default=64 * 1024,
        ge=1,
        description="Largest code payload accepted by the exec endpoint",
    )

    # Container runtime
    docker_base_url: Optional[str] = Field(
        default=None,
        description="Docker daemon URL; unset means use the environment (DOCKER_HOST)",
    )
    docker_timeout_seconds: int = Field(default=60, ge=1, le=600)

    # Sandbox environment policy
    sandbox_image: str = Field(
        default="python:3.11-slim",
        description="Base guest runtime image for every room",
    )
    sandbox_memory_mb: int = Field(default=128, ge=16, le=4096)
    sandbox_cpu_shares: int = Field(default=512, ge=2, le=1024)
    sandbox_network_mode: str = Field(default="none")
    sandbox_pull_missing_image: bool = Field(default=True)
    sandbox_stop_grace_seconds: int = Field(
        default=1,
        ge=0,
        le=30,
        description="Seconds docker waits after SIGTERM before SIGKILL on stop",
    )
    sandbox_stop_wait_seconds: float = Field(
        default=3.0,
        gt=0,
        le=60,
        description="Wait for the graceful stop before racing a forceful kill",
    )
    sandbox_remove_on_stop: bool = Field(default=True)
    sandbox_ready_timeout_seconds: float = Field(
        default=5.0,
        ge=0,
        le=60,
        description="Time to wait for the guest ready marker in stateful mode",
    )

    # Execution protocols
    stateful_mode: bool = Field(
        default=False,
        description="Run a persistent agent per room instead of an idle guest",
    )
    agent_socket_path: str = Field(default="/tmp/exe-agent.sock")
    agent_traceback_max_chars: int = Field(default=2000, ge=100)
    primary_interpreter: str = Field(default="python3")
    secondary_interpreter: str = Field(default="python")
    exec_timeout_seconds: Optional[int] = Field(
        default=None,
        ge=1,
        description="Optional bound on a single exec call; unset means unbounded",
    )

    # Idle reclamation
    idle_timeout_seconds: int = Field(default=300, ge=1)
    reaper_interval_seconds: float = Field(default=30.0, gt=0)

    # Logging Configuration
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")
    enable_access_logs: bool = Field(default=True)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Normalize and validate the log level name."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("sandbox_network_mode")
    @classmethod
    def validate_network_mode(cls, v):
        """Room sandboxes never get a network interface."""
        if v != "none":
            raise ValueError("sandbox_network_mode must be 'none'")
        return v

    # ========================================================================
    # GROUPED CONFIG ACCESS
    # ========================================================================

    @property
    def api(self) -> APIConfig:
        """Access API configuration group."""
        return APIConfig(
            api_host=self.api_host,
            api_port=self.api_port,
            api_debug=self.api_debug,
            api_reload=self.api_reload,
            enable_docs=self.enable_docs,
            enable_cors=self.enable_cors,
            cors_origins=self.cors_origins,
            max_code_bytes=self.max_code_bytes,
        )

    @property
    def sandbox(self) -> SandboxConfig:
        """Access sandbox configuration group."""
        return SandboxConfig(
            docker_base_url=self.docker_base_url,
            docker_timeout_seconds=self.docker_timeout_seconds,
            sandbox_image=self.sandbox_image,
            sandbox_memory_mb=self.sandbox_memory_mb,
            sandbox_cpu_shares=self.sandbox_cpu_shares,
            sandbox_network_mode=self.sandbox_network_mode,
            sandbox_pull_missing_image=self.sandbox_pull_missing_image,
            sandbox_stop_grace_seconds=self.sandbox_stop_grace_seconds,
            sandbox_stop_wait_seconds=self.sandbox_stop_wait_seconds,
            sandbox_remove_on_stop=self.sandbox_remove_on_stop,
            sandbox_ready_timeout_seconds=self.sandbox_ready_timeout_seconds,
            stateful_mode=self.stateful_mode,
            agent_socket_path=self.agent_socket_path,
            agent_traceback_max_chars=self.agent_traceback_max_chars,
            primary_interpreter=self.primary_interpreter,
            secondary_interpreter=self.secondary_interpreter,
            idle_timeout_seconds=self.idle_timeout_seconds,
            reaper_interval_seconds=self.reaper_interval_seconds,
            exec_timeout_seconds=self.exec_timeout_seconds,
        )

    @property
    def logging(self) -> LoggingConfig:
        """Access logging configuration group."""
        return LoggingConfig(
            log_level=self.log_level,
            log_format=self.log_format,
            enable_access_logs=self.enable_access_logs,
        )


# Global settings instance
settings = Settings()

__all__ = [
    "Settings",
    "settings",
    "APIConfig",
    "LoggingConfig",
    "SandboxConfig",
]
