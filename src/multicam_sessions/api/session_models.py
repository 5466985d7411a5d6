"""Pydantic models for the multi-cam session RPC payloads."""

from typing import Annotated, Literal
from uuid import UUID

from pydantic import BaseModel, Field


class CreateSessionAction(BaseModel):
    """Create a session; the caller's device becomes master."""

    action: Literal["create"]
    device_id: str = Field(min_length=1)
    device_name: str | None = None
    capabilities: dict[str, object] = Field(default_factory=dict)
    connection_type: str = "internet"
    metadata: dict[str, object] = Field(default_factory=dict)


class JoinSessionAction(BaseModel):
    """Join a session by typed code or scanned QR payload."""

    action: Literal["join"]
    session_code: str = Field(min_length=1)
    device_id: str = Field(min_length=1)
    device_name: str = Field(min_length=1)
    angle_name: str | None = None
    capabilities: dict[str, object] = Field(default_factory=dict)


class LeaveSessionAction(BaseModel):
    """Mark the caller's device disconnected."""

    action: Literal["leave"]
    session_id: UUID
    device_id: str


class SessionStatusAction(BaseModel):
    """Read the session with its devices."""

    action: Literal["status"]
    session_id: UUID


class UpdateStatusAction(BaseModel):
    """Master-only recording start/stop command."""

    action: Literal["update_status"]
    session_id: UUID
    device_id: str
    status: str = Field(min_length=1)


class HeartbeatAction(BaseModel):
    """Periodic liveness signal from a device."""

    action: Literal["heartbeat"]
    session_id: UUID
    device_id: str


class DeviceStatusAction(BaseModel):
    """Device-reported capture state."""

    action: Literal["device_status"]
    session_id: UUID
    device_id: str
    status: str = Field(min_length=1)


class RecordingCompleteAction(BaseModel):
    """Report an uploaded take."""

    action: Literal["recording_complete"]
    session_id: UUID
    device_id: str
    recording_url: str = Field(min_length=1)
    sync_offset_ms: int = 0


SessionAction = Annotated[
    CreateSessionAction
    | JoinSessionAction
    | LeaveSessionAction
    | SessionStatusAction
    | UpdateStatusAction
    | HeartbeatAction
    | DeviceStatusAction
    | RecordingCompleteAction,
    Field(discriminator="action"),
]
