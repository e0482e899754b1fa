"""In-memory registry of room sandboxes.

One instance is created per process and passed to every component that
needs it. Handles and activity records live in the same entry so they are
created and removed together.
"""

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncContextManager, AsyncIterator, Callable, Dict, List, Optional

from ...models.sandbox import ActivityRecord, SandboxHandle


@dataclass
class RegistryEntry:
    """A room's sandbox handle paired with its activity record."""

    handle: SandboxHandle
    activity: ActivityRecord

    @property
    def room_id(self) -> str:
        return self.handle.room_id


class RoomLocks:
    """asyncio locks keyed by room id.

    A room's lock exists only while some task holds it or waits on it, so
    the table never outgrows the set of rooms in active use.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, room_id: str) -> AsyncIterator[None]:
        lock = self._locks.get(room_id)
        if lock is None:
            lock = self._locks[room_id] = asyncio.Lock()
        self._users[room_id] = self._users.get(room_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[room_id] -= 1
            if self._users[room_id] == 0:
                del self._users[room_id]
                del self._locks[room_id]

    def in_use(self, room_id: str) -> bool:
        """True while a task holds or waits on the room's lock."""
        return room_id in self._users

    def __len__(self) -> int:
        return len(self._locks)


class SandboxRegistry:
    """Maps room id to sandbox handle and last-activity timestamp.

    Two locks exist per room. ``lock(room_id)`` guards lifecycle changes
    (start, stop, restart, eviction). ``exec_lock(room_id)`` queues exec
    calls for the room so one runs at a time, in arrival order.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._entries: Dict[str, RegistryEntry] = {}
        self._locks = RoomLocks()
        self._exec_locks = RoomLocks()

    def now(self) -> float:
        return self._clock()

    def lock(self, room_id: str) -> AsyncContextManager[None]:
        """Lifecycle critical section for one room."""
        return self._locks.hold(room_id)

    def exec_lock(self, room_id: str) -> AsyncContextManager[None]:
        """Per-room exec queue."""
        return self._exec_locks.hold(room_id)

    def is_busy(self, room_id: str) -> bool:
        """True while an exec call holds or waits on the room."""
        return self._exec_locks.in_use(room_id)

    def lock_count(self) -> int:
        """Number of rooms with a lifecycle or exec lock in use."""
        return len(self._locks) + len(self._exec_locks)

    def get(self, room_id: str) -> Optional[SandboxHandle]:
        entry = self._entries.get(room_id)
        return entry.handle if entry else None

    def put(self, room_id: str, handle: SandboxHandle) -> RegistryEntry:
        """Register a handle, keeping the existing activity record if any."""
        existing = self._entries.get(room_id)
        if existing is not None:
            existing.handle = handle
            return existing
        entry = RegistryEntry(
            handle=handle,
            activity=ActivityRecord(room_id=room_id, last_active_at=self._clock()),
        )
        self._entries[room_id] = entry
        return entry

    def remove(self, room_id: str) -> Optional[SandboxHandle]:
        entry = self._entries.pop(room_id, None)
        return entry.handle if entry else None

    def touch(self, room_id: str) -> Optional[float]:
        """Bump the room's activity timestamp. Never moves it backwards."""
        entry = self._entries.get(room_id)
        if entry is None:
            return None
        entry.activity.last_active_at = max(entry.activity.last_active_at, self._clock())
        return entry.activity.last_active_at

    def last_active(self, room_id: str) -> Optional[float]:
        entry = self._entries.get(room_id)
        return entry.activity.last_active_at if entry else None

    def all_entries(self) -> List[RegistryEntry]:
        """Snapshot of the current entries, safe to iterate while mutating."""
        return list(self._entries.values())

    def __contains__(self, room_id: str) -> bool:
        return room_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)
