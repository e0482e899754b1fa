"""Room sandbox lifecycle management using docker containers.

Each room gets one container named after the room. The name lets a
restarted service find and reattach containers left over from a crash.
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Optional, Set

import structlog
from docker.errors import APIError, ImageNotFound, NotFound
from docker.models.containers import Container

from ...config import SandboxConfig, settings
from ...models.errors import (
    ConfigurationError,
    CreationError,
    ErrorDetail,
    ExecutionError,
    NotRunningError,
    StopError,
)
from ...models.sandbox import RoomStatus, SandboxHandle, SandboxMode, SandboxState
from . import agent_server
from .agent_client import build_serve_command
from .client import DockerClientFactory
from .registry import SandboxRegistry
from .utils import RUNTIME_ERRORS, is_container_running, run_in_executor, wait_for_log_marker

logger = structlog.get_logger(__name__)

IDLE_READY_MARKER = "container-ready"
LABEL_PREFIX = "com.exe-service"


def build_idle_command(interpreter: str) -> list:
    """Guest command that keeps a stateless sandbox alive."""
    return [
        interpreter,
        "-c",
        f"import time,sys;\nprint('{IDLE_READY_MARKER}', flush=True);\ntime.sleep(10**8)",
    ]


class SandboxManager:
    """Creates, reattaches, restarts and destroys room sandboxes.

    Public ``start`` and ``stop`` take the room's lifecycle lock. The
    ``*_locked`` variants and ``ensure_running`` expect the caller to hold it.
    """

    def __init__(
        self,
        registry: SandboxRegistry,
        client_factory: Optional[DockerClientFactory] = None,
        config: Optional[SandboxConfig] = None,
    ):
        self._config = config or settings.sandbox
        self._registry = registry
        self._client_factory = client_factory or DockerClientFactory(self._config)
        self._creating: Set[str] = set()

    @property
    def registry(self) -> SandboxRegistry:
        return self._registry

    @property
    def mode(self) -> SandboxMode:
        """Mode new sandboxes are created in."""
        return SandboxMode.STATEFUL if self._config.stateful_mode else SandboxMode.STATELESS

    async def is_ready(self) -> bool:
        """Check if the container runtime is reachable."""
        return await run_in_executor(self._client_factory.ping)

    def get_initialization_error(self) -> Optional[str]:
        """Last error seen while connecting to the runtime, if any."""
        return self._client_factory.last_error

    def is_creating(self, room_id: str) -> bool:
        return room_id in self._creating

    # =========================================================================
    # start
    # =========================================================================

    async def start(self, room_id: str) -> SandboxHandle:
        """Ensure the room has a running sandbox.

        Raises:
            CreationError: If the runtime is unreachable or refused the container
        """
        async with self._registry.lock(room_id):
            return await self.start_locked(room_id)

    async def start_locked(self, room_id: str) -> SandboxHandle:
        handle = self._registry.get(room_id)
        if handle is not None:
            self._registry.touch(room_id)
            return handle

        self._creating.add(room_id)
        try:
            client = self._get_client(room_id)
            leftover = await self._find_leftover(client, room_id)
            if leftover is not None:
                handle = await self._reattach(room_id, leftover)
            else:
                handle = await self._create(client, room_id)
        finally:
            self._creating.discard(room_id)

        self._registry.put(room_id, handle)
        self._registry.touch(room_id)
        return handle

    def _get_client(self, room_id: str):
        try:
            return self._client_factory.get_client()
        except ConfigurationError as e:
            raise CreationError(room_id, e.message) from e

    async def _find_leftover(self, client, room_id: str) -> Optional[Container]:
        """Find a container named after the room, e.g. from before a crash."""
        try:
            containers = await run_in_executor(
                client.containers.list, all=True, filters={"name": room_id}
            )
        except RUNTIME_ERRORS as e:
            logger.warning(
                "Listing containers failed while searching for leftover",
                room_id=room_id,
                error=str(e),
            )
            return None

        # The name filter matches substrings
        for container in containers:
            if container.name == room_id:
                return container
        return None

    async def _reattach(self, room_id: str, container: Container) -> SandboxHandle:
        labels = container.labels or {}
        try:
            mode = SandboxMode(labels.get(f"{LABEL_PREFIX}.mode", self.mode.value))
        except ValueError:
            mode = self.mode

        try:
            running = await is_container_running(container)
        except RUNTIME_ERRORS as e:
            logger.warning("Inspect of leftover container failed", room_id=room_id, error=str(e))
            running = False

        state = SandboxState.RUNNING
        if running:
            logger.info("Reusing running container", room_id=room_id)
        else:
            try:
                since = int(time.time())
                await run_in_executor(container.start)
                await self._wait_until_ready(container, mode, since)
                logger.info("Re-started existing container", room_id=room_id)
            except RUNTIME_ERRORS as e:
                state = SandboxState.STOPPED
                logger.warning(
                    "Failed to start existing container",
                    room_id=room_id,
                    error=str(e),
                )

        return SandboxHandle(
            room_id=room_id,
            environment_ref=container,
            mode=mode,
            created_at=self._parse_created_at(labels),
            state=state,
        )

    async def _create(self, client, room_id: str) -> SandboxHandle:
        """Create and start a fresh container for the room."""
        mode = self.mode
        created_at = datetime.now(timezone.utc)
        if mode == SandboxMode.STATEFUL:
            command = build_serve_command(
                self._config.primary_interpreter, self._config.agent_socket_path
            )
        else:
            command = build_idle_command(self._config.primary_interpreter)

        create_kwargs = dict(
            image=self._config.sandbox_image,
            command=command,
            name=room_id,
            detach=True,
            tty=False,
            stdin_open=False,
            auto_remove=False,
            network_mode=self._config.sandbox_network_mode,
            mem_limit=self._config.memory_limit,
            cpu_shares=self._config.sandbox_cpu_shares,
            labels={
                f"{LABEL_PREFIX}.managed": "true",
                f"{LABEL_PREFIX}.room-id": room_id,
                f"{LABEL_PREFIX}.mode": mode.value,
                f"{LABEL_PREFIX}.created-at": created_at.isoformat(),
            },
        )

        logger.info(
            "Creating container",
            room_id=room_id,
            image=self._config.sandbox_image,
            mode=mode.value,
        )
        container = await self._create_container(client, room_id, create_kwargs)

        try:
            since = int(time.time())
            await run_in_executor(container.start)
        except RUNTIME_ERRORS as e:
            logger.error("Failed to start container", room_id=room_id, error=str(e))
            await self._discard(container, room_id)
            raise CreationError(room_id, str(e)) from e

        await self._wait_until_ready(container, mode, since)
        logger.info("Started container", room_id=room_id, mode=mode.value)

        return SandboxHandle(
            room_id=room_id,
            environment_ref=container,
            mode=mode,
            created_at=created_at,
        )

    async def _create_container(self, client, room_id: str, create_kwargs: dict) -> Container:
        try:
            return await run_in_executor(client.containers.create, **create_kwargs)
        except ImageNotFound as e:
            if not self._config.sandbox_pull_missing_image:
                raise CreationError(room_id, str(e)) from e
            logger.info("Pulling sandbox image", image=self._config.sandbox_image)
        except RUNTIME_ERRORS as e:
            logger.error("Failed to create container", room_id=room_id, error=str(e))
            raise CreationError(room_id, str(e)) from e

        try:
            await run_in_executor(client.images.pull, self._config.sandbox_image)
            return await run_in_executor(client.containers.create, **create_kwargs)
        except RUNTIME_ERRORS as e:
            logger.error("Failed to create container after pull", room_id=room_id, error=str(e))
            raise CreationError(room_id, str(e)) from e

    async def _wait_until_ready(self, container: Container, mode: SandboxMode, since: int) -> None:
        """Wait for the agent to bind its socket before the first request."""
        if mode != SandboxMode.STATEFUL or self._config.sandbox_ready_timeout_seconds <= 0:
            return
        ready = await wait_for_log_marker(
            container,
            agent_server.READY_MARKER,
            max_wait=self._config.sandbox_ready_timeout_seconds,
            since=since,
        )
        if not ready:
            logger.warning(
                "Agent ready marker not seen",
                container_id=(container.id or "")[:12],
                timeout=self._config.sandbox_ready_timeout_seconds,
            )

    def _parse_created_at(self, labels: dict) -> datetime:
        raw = labels.get(f"{LABEL_PREFIX}.created-at")
        if raw:
            try:
                return datetime.fromisoformat(raw)
            except ValueError:
                pass
        return datetime.now(timezone.utc)

    # =========================================================================
    # self-healing before exec
    # =========================================================================

    async def ensure_running(self, room_id: str) -> SandboxHandle:
        """Make sure the room's container runs, restarting or recreating it.

        Raises:
            NotRunningError: If the room has no sandbox
            ExecutionError: If neither restart nor recreation worked
        """
        handle = self._registry.get(room_id)
        if handle is None:
            raise NotRunningError(room_id)

        container = handle.environment_ref
        try:
            running = await is_container_running(container)
        except NotFound:
            # Removed behind our back; restart fails and falls through to recreate
            running = False
        except RUNTIME_ERRORS as e:
            logger.warning("inspect failed before exec", room_id=room_id, error=str(e))
            return handle

        if running:
            handle.state = SandboxState.RUNNING
            return handle

        handle.state = SandboxState.STOPPED
        logger.warning(
            "Container not running; attempting restart",
            room_id=room_id,
            status=getattr(container, "status", "unknown"),
        )
        try:
            since = int(time.time())
            await run_in_executor(container.start)
            await self._wait_until_ready(container, handle.mode, since)
            handle.state = SandboxState.RUNNING
            self._registry.touch(room_id)
            logger.info("Restarted container", room_id=room_id)
            return handle
        except RUNTIME_ERRORS as e:
            restart_error = str(e)
            logger.warning("Restart failed; recreating container", room_id=room_id, error=restart_error)

        await self._discard(container, room_id)
        try:
            new_handle = await self._create(self._get_client(room_id), room_id)
        except CreationError as e:
            self._registry.remove(room_id)
            handle.state = SandboxState.DESTROYED
            raise ExecutionError(
                message=f"Sandbox for room {room_id} could not be recovered",
                attempts=[
                    ErrorDetail(field="restart", message=restart_error, code="restart_failed"),
                    ErrorDetail(field="recreate", message=e.message, code="creation_failed"),
                ],
            ) from e

        self._registry.put(room_id, new_handle)
        self._registry.touch(room_id)
        logger.info("Recreated container", room_id=room_id)
        return new_handle

    # =========================================================================
    # stop
    # =========================================================================

    async def stop(self, room_id: str) -> bool:
        """Destroy the room's sandbox. No-op when the room has none.

        Returns:
            True if a sandbox was registered for the room
        """
        async with self._registry.lock(room_id):
            return await self.stop_locked(room_id)

    async def stop_locked(self, room_id: str) -> bool:
        handle = self._registry.get(room_id)
        if handle is None:
            return False

        container = handle.environment_ref
        try:
            if await is_container_running(container):
                await self.halt(handle)
                logger.info("Stopped container", room_id=room_id)
            else:
                logger.info("Stop requested but container not running", room_id=room_id)
        except StopError as e:
            logger.error("Error stopping container", room_id=room_id, error=e.message)
        except RUNTIME_ERRORS as e:
            logger.error("Error stopping container", room_id=room_id, error=str(e))

        if self._config.sandbox_remove_on_stop:
            await self._discard(container, room_id)

        handle.state = SandboxState.DESTROYED
        self._registry.remove(room_id)
        return True

    async def halt(self, handle: SandboxHandle) -> None:
        """Stop gracefully, racing a kill if the stop does not finish in time.

        Whichever completes first wins; the other becomes a no-op.

        Raises:
            StopError: If both the stop and the kill failed
        """
        container = handle.environment_ref
        loop = asyncio.get_running_loop()
        stop_future = loop.run_in_executor(
            None, lambda: container.stop(timeout=self._config.sandbox_stop_grace_seconds)
        )

        try:
            await asyncio.wait_for(
                asyncio.shield(stop_future),
                timeout=self._config.sandbox_stop_wait_seconds,
            )
            return
        except asyncio.TimeoutError:
            stop_reason = (
                f"graceful stop did not finish within {self._config.sandbox_stop_wait_seconds}s"
            )
        except RUNTIME_ERRORS as e:
            stop_reason = str(e)
            logger.warning(
                "Graceful stop failed, will fall back to kill",
                room_id=handle.room_id,
                error=stop_reason,
            )

        try:
            await run_in_executor(container.kill)
            logger.info("kill fallback executed", room_id=handle.room_id)
        except RUNTIME_ERRORS as e:
            if self._stop_completed(stop_future) or self._already_gone(e):
                return
            raise StopError(handle.room_id, stop_reason, str(e)) from e

    async def kill(self, handle: SandboxHandle) -> None:
        """Forcefully terminate the room's container, best effort."""
        try:
            await run_in_executor(handle.environment_ref.kill)
            handle.state = SandboxState.STOPPED
        except RUNTIME_ERRORS as e:
            logger.warning("Kill failed", room_id=handle.room_id, error=str(e))

    @staticmethod
    def _stop_completed(stop_future: asyncio.Future) -> bool:
        return (
            stop_future.done()
            and not stop_future.cancelled()
            and stop_future.exception() is None
        )

    @staticmethod
    def _already_gone(error: Exception) -> bool:
        """Kill lost the race: the container is already stopped or removed."""
        if isinstance(error, NotFound):
            return True
        return isinstance(error, APIError) and error.status_code == 409

    async def _discard(self, container: Container, room_id: str) -> None:
        """Remove a container, best effort."""
        try:
            await run_in_executor(container.remove, force=True)
        except NotFound:
            pass
        except RUNTIME_ERRORS as e:
            logger.warning("Failed to remove container", room_id=room_id, error=str(e))

    # =========================================================================
    # status
    # =========================================================================

    async def status(self, room_id: str) -> RoomStatus:
        """Inspect the room's sandbox without changing it."""
        if self.is_creating(room_id):
            return RoomStatus(room_id=room_id, state=SandboxState.CREATING, mode=self.mode)

        handle = self._registry.get(room_id)
        if handle is None:
            return RoomStatus(room_id=room_id, state=SandboxState.ABSENT)

        try:
            running = await is_container_running(handle.environment_ref)
            handle.state = SandboxState.RUNNING if running else SandboxState.STOPPED
        except RUNTIME_ERRORS as e:
            logger.warning("Status inspect failed", room_id=room_id, error=str(e))

        return RoomStatus(
            room_id=room_id,
            state=handle.state,
            mode=handle.mode,
            created_at=handle.created_at,
            last_active_at=self._registry.last_active(room_id),
        )

    def close(self) -> None:
        self._client_factory.close()
