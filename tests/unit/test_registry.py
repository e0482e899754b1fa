"""Unit tests for SandboxRegistry."""

import asyncio

import pytest

from exe_service.models.sandbox import SandboxHandle, SandboxMode
from exe_service.services.sandbox.registry import SandboxRegistry


def make_handle(room_id="room-1", ref=None):
    return SandboxHandle(room_id=room_id, environment_ref=ref or object(), mode=SandboxMode.STATELESS)


class TestRegistryEntries:
    """Test handle and activity bookkeeping."""

    def test_put_and_get(self, registry, clock):
        """Test a registered handle can be looked up with its activity."""
        handle = make_handle()
        registry.put("room-1", handle)

        assert registry.get("room-1") is handle
        assert registry.last_active("room-1") == clock.now
        assert "room-1" in registry
        assert len(registry) == 1

    def test_get_unknown_room(self, registry):
        """Test unknown rooms have no handle or activity."""
        assert registry.get("nope") is None
        assert registry.last_active("nope") is None
        assert registry.touch("nope") is None

    def test_put_replaces_handle_keeps_activity(self, registry, clock):
        """Test re-registering a room keeps its activity record."""
        registry.put("room-1", make_handle())
        first_seen = registry.last_active("room-1")

        clock.advance(50)
        replacement = make_handle()
        registry.put("room-1", replacement)

        assert registry.get("room-1") is replacement
        assert registry.last_active("room-1") == first_seen
        assert len(registry) == 1

    def test_remove(self, registry):
        """Test removal drops handle and activity together."""
        handle = make_handle()
        registry.put("room-1", handle)

        assert registry.remove("room-1") is handle
        assert registry.get("room-1") is None
        assert registry.last_active("room-1") is None
        assert registry.remove("room-1") is None

    def test_all_entries_is_snapshot(self, registry):
        """Test the entry list can be iterated while the registry changes."""
        registry.put("a", make_handle("a"))
        registry.put("b", make_handle("b"))

        entries = registry.all_entries()
        for entry in entries:
            registry.remove(entry.room_id)

        assert sorted(e.room_id for e in entries) == ["a", "b"]
        assert len(registry) == 0


class TestActivity:
    """Test activity timestamps."""

    def test_touch_moves_forward(self, registry, clock):
        """Test touch records the current time."""
        registry.put("room-1", make_handle())
        clock.advance(10)

        assert registry.touch("room-1") == clock.now
        assert registry.last_active("room-1") == clock.now

    def test_touch_never_moves_backwards(self, registry, clock):
        """Test a clock going backwards does not rewind activity."""
        registry.put("room-1", make_handle())
        clock.advance(100)
        registry.touch("room-1")
        latest = registry.last_active("room-1")

        clock.advance(-60)
        registry.touch("room-1")

        assert registry.last_active("room-1") == latest

    def test_default_clock_is_wall_time(self):
        """Test the registry uses wall-clock seconds by default."""
        import time

        registry = SandboxRegistry()
        before = time.time()
        registry.put("room-1", make_handle())

        assert registry.last_active("room-1") >= before


class TestLocks:
    """Test per-room locks."""

    @pytest.mark.asyncio
    async def test_rooms_do_not_block_each_other(self, registry):
        """Test holding one room's locks leaves other rooms free."""
        async with registry.lock("a"), registry.exec_lock("a"):
            await asyncio.wait_for(self._enter(registry.lock("b")), timeout=1)
            await asyncio.wait_for(self._enter(registry.exec_lock("b")), timeout=1)

    @staticmethod
    async def _enter(lock):
        async with lock:
            pass

    @pytest.mark.asyncio
    async def test_locks_dropped_when_released(self, registry):
        """Test lock bookkeeping is released once nobody uses the room."""
        async with registry.exec_lock("room-1"):
            async with registry.lock("room-1"):
                assert registry.lock_count() == 2

        assert registry.lock_count() == 0

    @pytest.mark.asyncio
    async def test_lock_table_stays_bounded(self, registry):
        """Test naming many distinct rooms does not accumulate locks."""
        for i in range(500):
            async with registry.exec_lock(f"ghost-{i}"):
                async with registry.lock(f"ghost-{i}"):
                    pass

        assert registry.lock_count() == 0
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_waiter_keeps_lock_alive(self, registry):
        """Test a queued task still excludes later arrivals after the holder leaves."""
        order = []
        release = asyncio.Event()

        async def holder():
            async with registry.lock("room-1"):
                order.append("holder")
                await release.wait()

        async def waiter(name):
            async with registry.lock("room-1"):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        first = asyncio.create_task(holder())
        await asyncio.sleep(0)
        second = asyncio.create_task(waiter("b"))
        third = asyncio.create_task(waiter("c"))
        await asyncio.sleep(0)
        release.set()
        await asyncio.gather(first, second, third)

        assert order == ["holder", "b-in", "b-out", "c-in", "c-out"]
        assert registry.lock_count() == 0

    @pytest.mark.asyncio
    async def test_cancelled_waiter_releases_bookkeeping(self, registry):
        """Test a waiter cancelled before acquiring leaves nothing behind."""
        async with registry.lock("room-1"):
            waiter = asyncio.create_task(self._enter(registry.lock("room-1")))
            await asyncio.sleep(0)
            waiter.cancel()
            with pytest.raises(asyncio.CancelledError):
                await waiter

        assert registry.lock_count() == 0

    @pytest.mark.asyncio
    async def test_is_busy_while_exec_lock_held(self, registry):
        """Test a room is busy while its exec queue is held."""
        assert registry.is_busy("room-1") is False

        async with registry.exec_lock("room-1"):
            assert registry.is_busy("room-1") is True

        assert registry.is_busy("room-1") is False

    @pytest.mark.asyncio
    async def test_lock_serializes_same_room(self, registry):
        """Test holders of one room's lock run one after another."""
        order = []

        async def worker(name):
            async with registry.lock("room-1"):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))

        assert order == ["a-in", "a-out", "b-in", "b-out"]
