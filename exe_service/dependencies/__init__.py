"""Dependencies package for the execution sandbox service."""

from .services import RoomServiceDep, get_room_service

__all__ = [
    "get_room_service",
    "RoomServiceDep",
]
