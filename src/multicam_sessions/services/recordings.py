"""Recording takes reported by capture devices after upload."""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol
from uuid import UUID

from multicam_sessions.domain.errors import (
    DeviceNotFoundError,
    InvalidTransitionError,
    SessionNotFoundError,
)
from multicam_sessions.domain.sessions import (
    SESSION_COMPLETED,
    SESSION_RECORDING,
    SESSION_STOPPED,
    SessionRecordingRecord,
)

if TYPE_CHECKING:
    from multicam_sessions.services.membership import DeviceRepository
    from multicam_sessions.services.registry import SessionRepository

_logger = logging.getLogger(__name__)

_REPORTABLE_SESSION_STATUSES = {SESSION_RECORDING, SESSION_STOPPED, SESSION_COMPLETED}


class RecordingRepository(Protocol):
    """Persistence interface for uploaded session takes."""

    def create_recording(  # noqa: PLR0913
        self,
        session_id: UUID,
        device_id: UUID,
        recording_url: str,
        angle_label: str | None,
        sync_offset_ms: int,
        is_primary_angle: bool,
    ) -> SessionRecordingRecord:
        """Insert a recording take and return it."""

    def list_recordings(self, session_id: UUID) -> list[SessionRecordingRecord]:
        """Return the takes of a session in report order."""


@dataclass
class SessionRecordingService:
    """Registers the uploaded take of each device."""

    session_repository: "SessionRepository"
    device_repository: "DeviceRepository"
    recording_repository: RecordingRepository

    def report_recording(  # noqa: PLR0913
        self,
        session_id: UUID,
        external_device_id: str,
        owner_id: UUID | None,
        recording_url: str,
        sync_offset_ms: int = 0,
    ) -> SessionRecordingRecord:
        """Attach an uploaded take to the session it was captured in."""
        session = self.session_repository.get_session(session_id)
        if session is None:
            raise SessionNotFoundError("Session not found")
        if session.status not in _REPORTABLE_SESSION_STATUSES:
            raise InvalidTransitionError("Session has not started recording")
        device = self.device_repository.get_device(
            session_id, external_device_id, owner_id
        )
        if device is None:
            raise DeviceNotFoundError()
        recording = self.recording_repository.create_recording(
            session_id=session_id,
            device_id=device.id,
            recording_url=recording_url,
            angle_label=device.angle_label,
            sync_offset_ms=sync_offset_ms,
            is_primary_angle=device.id == session.master_device_id,
        )
        _logger.info(
            "Recording reported",
            extra={"session_id": str(session_id), "device_id": str(device.id)},
        )
        return recording

    def list_recordings(self, session_id: UUID) -> list[SessionRecordingRecord]:
        return self.recording_repository.list_recordings(session_id)
