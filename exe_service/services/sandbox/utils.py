"""Shared utilities for container operations."""

import asyncio
import functools
import time
from typing import Optional

import requests
import structlog
from docker.errors import DockerException
from docker.models.containers import Container

logger = structlog.get_logger(__name__)

# Failures the docker SDK surfaces when the daemon or the container misbehaves
RUNTIME_ERRORS = (DockerException, requests.exceptions.RequestException)


async def run_in_executor(func, *args, **kwargs):
    """
    Run a blocking docker SDK call in the default thread pool executor.

    Args:
        func: Blocking function to run
        *args: Positional arguments to pass to the function
        **kwargs: Keyword arguments to pass to the function

    Returns:
        Result of the function
    """
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))


async def is_container_running(container: Container) -> bool:
    """Refresh container state from the daemon and report whether it runs."""
    await run_in_executor(container.reload)
    state = (container.attrs or {}).get("State") or {}
    if "Running" in state:
        return bool(state["Running"])
    return getattr(container, "status", "") == "running"


async def wait_for_log_marker(
    container: Container,
    marker: str,
    max_wait: float = 5.0,
    interval: float = 0.05,
    since: Optional[int] = None,
) -> bool:
    """
    Wait until the guest prints its ready marker.

    Args:
        container: Container to watch
        marker: Text the guest prints once it is ready
        max_wait: Maximum time to wait in seconds
        interval: Polling interval in seconds
        since: Only consider log lines after this epoch second

    Returns:
        True if the marker was seen, False otherwise
    """
    deadline = time.monotonic() + max_wait
    expected = marker.encode("utf-8")

    while True:
        try:
            logs = await run_in_executor(
                container.logs, stdout=True, stderr=False, since=since
            )
            if expected in (logs or b""):
                return True
        except RUNTIME_ERRORS as e:
            logger.debug("Reading container logs failed", error=str(e))
        if time.monotonic() >= deadline:
            return False
        await asyncio.sleep(interval)


def preview(text: str, limit: int) -> str:
    """Shorten text for log lines."""
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."
