"""Request and response models for the room execution endpoints."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class ExecRequest(BaseModel):
    """Body of the exec endpoint."""

    code: Optional[str] = Field(None, description="Python source to run in the room")


class ExecResponse(BaseModel):
    """Output of a successful exec call."""

    output: str = Field(..., description="Combined stdout and stderr")


class RoomActionResponse(BaseModel):
    """Result of a start or stop call."""

    status: str


class RoomStatusResponse(BaseModel):
    """Current lifecycle state of a room sandbox."""

    room_id: str
    state: str
    mode: Optional[str] = None
    created_at: Optional[datetime] = None
    last_active_at: Optional[datetime] = None


class ReadinessResponse(BaseModel):
    """Whether the container runtime can be reached."""

    ready: bool
