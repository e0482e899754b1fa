"""Sandbox data models.

A room owns at most one sandbox. The handle is opaque to everything but
the lifecycle controller; other components only read its mode and room.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class SandboxMode(str, Enum):
    """Execution protocol a sandbox was created for."""

    STATEFUL = "stateful"
    STATELESS = "stateless"


class SandboxState(str, Enum):
    """Lifecycle states of a room sandbox.

    ABSENT -> CREATING -> RUNNING <-> STOPPED -> DESTROYED
    """

    ABSENT = "absent"
    CREATING = "creating"
    RUNNING = "running"
    STOPPED = "stopped"
    DESTROYED = "destroyed"


@dataclass
class SandboxHandle:
    """Handle to the isolated environment bound to one room."""

    room_id: str
    environment_ref: Any
    mode: SandboxMode
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    state: SandboxState = SandboxState.RUNNING

    @property
    def environment_id(self) -> Optional[str]:
        """Runtime identifier of the environment, if it has one."""
        return getattr(self.environment_ref, "id", None)

    @property
    def is_stateful(self) -> bool:
        return self.mode == SandboxMode.STATEFUL


@dataclass
class ActivityRecord:
    """Last time a room's sandbox was used."""

    room_id: str
    last_active_at: float


@dataclass
class ExecutionResult:
    """Combined output of one execution."""

    combined_output: str
    exit_code: Optional[int] = None
    strategy: Optional[str] = None


@dataclass
class RoomStatus:
    """Point-in-time view of a room's sandbox."""

    room_id: str
    state: SandboxState
    mode: Optional[SandboxMode] = None
    created_at: Optional[datetime] = None
    last_active_at: Optional[float] = None
