"""Room service: the entry point the API uses for room sandboxes.

Wires one registry into the lifecycle manager, the orchestrator and the
idle reaper so all of them see the same rooms.
"""

from typing import Optional

import structlog

from ..config import SandboxConfig, settings
from ..models.sandbox import ExecutionResult, RoomStatus, SandboxHandle
from .sandbox import (
    DockerClientFactory,
    FallbackOrchestrator,
    IdleReaper,
    SandboxManager,
    SandboxRegistry,
)

logger = structlog.get_logger(__name__)


class RoomService:
    """Start, exec, stop and inspect room sandboxes."""

    def __init__(
        self,
        config: Optional[SandboxConfig] = None,
        client_factory: Optional[DockerClientFactory] = None,
        registry: Optional[SandboxRegistry] = None,
    ):
        self._config = config or settings.sandbox
        self.registry = registry or SandboxRegistry()
        self.manager = SandboxManager(
            self.registry,
            client_factory=client_factory or DockerClientFactory(self._config),
            config=self._config,
        )
        self.orchestrator = FallbackOrchestrator(
            self.registry, self.manager, config=self._config
        )
        self.reaper = IdleReaper(self.registry, self.manager, config=self._config)

    async def start(self, room_id: str) -> SandboxHandle:
        handle = await self.manager.start(room_id)
        logger.info("Room started", room_id=room_id, mode=handle.mode.value)
        return handle

    async def exec(self, room_id: str, code: str) -> ExecutionResult:
        return await self.orchestrator.exec(room_id, code)

    async def stop(self, room_id: str) -> bool:
        stopped = await self.manager.stop(room_id)
        if stopped:
            logger.info("Room stopped", room_id=room_id)
        return stopped

    async def status(self, room_id: str) -> RoomStatus:
        return await self.manager.status(room_id)

    async def is_ready(self) -> bool:
        return await self.manager.is_ready()

    def get_initialization_error(self) -> Optional[str]:
        return self.manager.get_initialization_error()

    def start_reaper(self) -> None:
        self.reaper.start()

    async def shutdown(self) -> None:
        """Stop the reaper and release the runtime client.

        Sandboxes are left running so a restarted service can reattach them.
        """
        await self.reaper.stop()
        self.manager.close()
