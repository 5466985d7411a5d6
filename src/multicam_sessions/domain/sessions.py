"""Domain models for multi-camera recording sessions."""

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

SESSION_WAITING = "waiting"
SESSION_READY = "ready"
SESSION_RECORDING = "recording"
SESSION_STOPPED = "stopped"
SESSION_COMPLETED = "completed"

SESSION_STATUSES = frozenset(
    {
        SESSION_WAITING,
        SESSION_READY,
        SESSION_RECORDING,
        SESSION_STOPPED,
        SESSION_COMPLETED,
    }
)
JOINABLE_STATUSES = frozenset({SESSION_WAITING, SESSION_READY})
TERMINAL_STATUSES = frozenset({SESSION_STOPPED, SESSION_COMPLETED})
OPEN_STATUSES = SESSION_STATUSES - TERMINAL_STATUSES

# Target status -> statuses it may be entered from.
STATUS_TRANSITIONS: dict[str, frozenset[str]] = {
    SESSION_RECORDING: frozenset({SESSION_WAITING, SESSION_READY}),
    SESSION_STOPPED: frozenset({SESSION_RECORDING}),
}

ROLE_MASTER = "master"
ROLE_CAMERA = "camera"

DEVICE_CONNECTED = "connected"
DEVICE_READY = "ready"
DEVICE_RECORDING = "recording"
DEVICE_DISCONNECTED = "disconnected"

DEVICE_STATUSES = frozenset(
    {DEVICE_CONNECTED, DEVICE_READY, DEVICE_RECORDING, DEVICE_DISCONNECTED}
)
REPORTABLE_DEVICE_STATUSES = frozenset(
    {DEVICE_CONNECTED, DEVICE_READY, DEVICE_RECORDING}
)

DEFAULT_MASTER_NAME = "Master Device"
DEFAULT_ANGLE_LABEL = "Camera"


@dataclass(frozen=True)
class SessionRecord:
    """Represents a persisted recording session."""

    id: UUID
    code: str
    owner_id: UUID
    status: str
    master_device_id: UUID | None
    created_at: datetime
    started_at: datetime | None = None
    ended_at: datetime | None = None
    connection_type: str = "internet"
    metadata: dict[str, object] = field(default_factory=dict)

    @property
    def is_joinable(self) -> bool:
        return self.status in JOINABLE_STATUSES

    def to_dict(self) -> dict[str, object]:
        """Serialize the session row for API responses and change events."""
        return {
            "id": str(self.id),
            "session_code": self.code,
            "user_id": str(self.owner_id),
            "status": self.status,
            "master_device_id": (
                str(self.master_device_id) if self.master_device_id else None
            ),
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "connection_type": self.connection_type,
            "metadata": self.metadata,
        }


@dataclass(frozen=True)
class DeviceRecord:
    """Represents a device that joined a session."""

    id: UUID
    session_id: UUID
    external_device_id: str
    owner_id: UUID
    display_name: str
    role: str
    status: str
    created_at: datetime
    angle_label: str | None = None
    capabilities: dict[str, object] = field(default_factory=dict)
    last_seen: datetime | None = None

    @property
    def is_master(self) -> bool:
        return self.role == ROLE_MASTER

    def is_stale(self, cutoff: datetime) -> bool:
        """Return true when the last liveness signal predates the cutoff."""
        if self.status == DEVICE_DISCONNECTED:
            return False
        seen = self.last_seen or self.created_at
        return seen < cutoff

    def to_dict(self) -> dict[str, object]:
        """Serialize the device row for API responses and change events."""
        return {
            "id": str(self.id),
            "session_id": str(self.session_id),
            "device_id": self.external_device_id,
            "user_id": str(self.owner_id),
            "device_name": self.display_name,
            "role": self.role,
            "angle_name": self.angle_label,
            "status": self.status,
            "capabilities": self.capabilities,
            "last_heartbeat": self.last_seen.isoformat() if self.last_seen else None,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class SessionRecordingRecord:
    """A recording take uploaded by one device of a session."""

    id: UUID
    session_id: UUID
    device_id: UUID
    recording_url: str
    created_at: datetime
    angle_label: str | None = None
    sync_offset_ms: int = 0
    is_primary_angle: bool = False

    def to_dict(self) -> dict[str, object]:
        return {
            "id": str(self.id),
            "session_id": str(self.session_id),
            "device_id": str(self.device_id),
            "recording_url": self.recording_url,
            "angle_name": self.angle_label,
            "sync_offset_ms": self.sync_offset_ms,
            "is_primary_angle": self.is_primary_angle,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class SessionSnapshot:
    """Full state of a session as seen by a freshly (re)connected device."""

    session: SessionRecord
    devices: list[DeviceRecord]
    recordings: list[SessionRecordingRecord] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        payload = self.session.to_dict()
        payload["session_devices"] = [device.to_dict() for device in self.devices]
        payload["session_recordings"] = [
            recording.to_dict() for recording in self.recordings
        ]
        return payload
