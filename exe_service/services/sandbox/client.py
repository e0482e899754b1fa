"""Docker client factory and initialization."""

from typing import Optional

import docker
import structlog

from ...config import SandboxConfig, settings
from ...models.errors import ConfigurationError
from .utils import RUNTIME_ERRORS

logger = structlog.get_logger(__name__)


class DockerClientFactory:
    """Creates the docker client lazily and retries on every request.

    A daemon that is down at process start does not stop the service;
    the next call that needs the runtime tries to connect again.
    """

    def __init__(self, config: Optional[SandboxConfig] = None, client=None):
        self._config = config or settings.sandbox
        self._client = client
        self._last_error: Optional[str] = None

    def get_client(self) -> docker.DockerClient:
        """Return a connected client, creating it on first use.

        Raises:
            ConfigurationError: If the daemon cannot be reached
        """
        if self._client is not None:
            return self._client

        try:
            if self._config.docker_base_url:
                client = docker.DockerClient(
                    base_url=self._config.docker_base_url,
                    timeout=self._config.docker_timeout_seconds,
                )
            else:
                client = docker.from_env(timeout=self._config.docker_timeout_seconds)
        except RUNTIME_ERRORS as e:
            self._last_error = str(e)
            logger.warning("Docker client initialization failed", error=str(e))
            raise ConfigurationError(f"Container runtime unreachable: {e}") from e

        self._client = client
        self._last_error = None
        logger.info("Docker client initialized")
        return client

    def ping(self) -> bool:
        """Check whether the daemon answers right now."""
        try:
            return bool(self.get_client().ping())
        except ConfigurationError:
            return False
        except RUNTIME_ERRORS as e:
            self._last_error = str(e)
            return False

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    def close(self) -> None:
        if self._client is not None:
            try:
                self._client.close()
            except RUNTIME_ERRORS as e:
                logger.debug("Error closing docker client", error=str(e))
            self._client = None
