"""Service layer for the execution sandbox service."""

from .rooms import RoomService

__all__ = ["RoomService"]
