"""Service dependency injection for the execution sandbox service."""

# Standard library imports
from functools import lru_cache
from typing import Annotated

# Third-party imports
from fastapi import Depends
import structlog

# Local application imports
from ..services import RoomService

logger = structlog.get_logger(__name__)


@lru_cache()
def get_room_service() -> RoomService:
    """Get the process-wide room service.

    One instance owns the registry, so every request sees the same rooms.
    """
    service = RoomService()
    logger.info("Room service initialized")
    return service


# Type aliases for dependency injection
RoomServiceDep = Annotated[RoomService, Depends(get_room_service)]
