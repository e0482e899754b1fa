"""Room sandbox services using docker containers.

This package provides per-room sandbox management:
- registry.py: In-memory room -> sandbox mapping with per-room locks
- manager.py: Sandbox lifecycle (create, reattach, restart, stop)
- executor.py: Stateless interpreter execution with binary fallback
- agent_server.py: Persistent agent that runs inside stateful sandboxes
- agent_client.py: Host side of the agent protocol
- orchestrator.py: Strategy selection and fallback for exec calls
- reaper.py: Background eviction of idle sandboxes
"""

from .agent_client import AgentClient
from .client import DockerClientFactory
from .executor import SandboxExecutor
from .manager import SandboxManager
from .orchestrator import FallbackOrchestrator
from .reaper import IdleReaper
from .registry import SandboxRegistry

__all__ = [
    "AgentClient",
    "DockerClientFactory",
    "SandboxExecutor",
    "SandboxManager",
    "FallbackOrchestrator",
    "IdleReaper",
    "SandboxRegistry",
]
