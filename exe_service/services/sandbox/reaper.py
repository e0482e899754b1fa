"""Background reclamation of idle room sandboxes."""

import asyncio
from typing import List, Optional

import structlog

from ...config import SandboxConfig, settings
from .manager import SandboxManager
from .registry import SandboxRegistry

logger = structlog.get_logger(__name__)


class IdleReaper:
    """Stops sandboxes whose room has been idle longer than the timeout.

    Rooms with an exec in progress or queued are skipped, and idleness is
    checked again under the room's lock before stopping.
    """

    def __init__(
        self,
        registry: SandboxRegistry,
        manager: SandboxManager,
        config: Optional[SandboxConfig] = None,
    ):
        config = config or settings.sandbox
        self._registry = registry
        self._manager = manager
        self.interval = config.reaper_interval_seconds
        self.idle_timeout = config.idle_timeout_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the periodic sweep task."""
        if self.running:
            return
        self._task = asyncio.create_task(self._loop())
        logger.info(
            "Idle reaper started",
            interval=self.interval,
            idle_timeout=self.idle_timeout,
        )

    async def stop(self) -> None:
        """Cancel the sweep task and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Idle reaper stopped")

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.sweep()
            except Exception as e:
                logger.error("Idle sweep failed", error=str(e))

    def _is_idle(self, room_id: str, now: float) -> bool:
        last_active = self._registry.last_active(room_id)
        return last_active is not None and now - last_active > self.idle_timeout

    async def sweep(self) -> List[str]:
        """Stop every idle sandbox once.

        Returns:
            Room ids that were evicted
        """
        evicted = []
        for entry in self._registry.all_entries():
            room_id = entry.room_id
            if not self._is_idle(room_id, self._registry.now()):
                continue
            if self._registry.is_busy(room_id):
                continue

            async with self._registry.lock(room_id):
                # Touched or replaced while waiting for the lock
                if self._registry.get(room_id) is not entry.handle:
                    continue
                if not self._is_idle(room_id, self._registry.now()):
                    continue
                if self._registry.is_busy(room_id):
                    continue

                logger.info("Idle timeout reached; stopping room", room_id=room_id)
                try:
                    await self._manager.stop_locked(room_id)
                except Exception as e:
                    logger.warning("Idle stop failed", room_id=room_id, error=str(e))
                    continue
                evicted.append(room_id)

        if evicted:
            logger.info("Idle sweep evicted rooms", rooms=evicted)
        return evicted
