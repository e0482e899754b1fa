"""Sandbox (container) configuration."""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SandboxConfig(BaseSettings):
    """Per-room container environment settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    docker_base_url: Optional[str] = Field(default=None)
    docker_timeout_seconds: int = Field(default=60, ge=1, le=600)

    sandbox_image: str = Field(default="python:3.11-slim")
    sandbox_memory_mb: int = Field(default=128, ge=16, le=4096)
    sandbox_cpu_shares: int = Field(default=512, ge=2, le=1024)
    sandbox_network_mode: str = Field(default="none")
    sandbox_pull_missing_image: bool = Field(default=True)
    sandbox_stop_grace_seconds: int = Field(default=1, ge=0, le=30)
    sandbox_stop_wait_seconds: float = Field(default=3.0, gt=0, le=60)
    sandbox_remove_on_stop: bool = Field(default=True)
    sandbox_ready_timeout_seconds: float = Field(default=5.0, ge=0, le=60)

    stateful_mode: bool = Field(default=False)
    agent_socket_path: str = Field(default="/tmp/exe-agent.sock")
    agent_traceback_max_chars: int = Field(default=2000, ge=100)
    primary_interpreter: str = Field(default="python3")
    secondary_interpreter: str = Field(default="python")

    idle_timeout_seconds: int = Field(default=300, ge=1)
    reaper_interval_seconds: float = Field(default=30.0, gt=0)
    exec_timeout_seconds: Optional[int] = Field(default=None, ge=1)

    @property
    def memory_limit(self) -> str:
        """Memory ceiling in the format the docker SDK expects."""
        return f"{self.sandbox_memory_mb}m"

    @property
    def interpreters(self) -> tuple:
        """Interpreter binaries in the order they are tried."""
        return (self.primary_interpreter, self.secondary_interpreter)
