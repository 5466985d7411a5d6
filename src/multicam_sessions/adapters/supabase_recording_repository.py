"""Supabase-backed repository for session recording takes."""

from dataclasses import dataclass
from uuid import UUID

from supabase import Client

from multicam_sessions.adapters.supabase_errors import parse_timestamp, run_query
from multicam_sessions.domain.errors import StorageError
from multicam_sessions.domain.sessions import SessionRecordingRecord
from multicam_sessions.services.recordings import RecordingRepository

_TABLE = "session_recordings"


@dataclass
class SupabaseRecordingRepository(RecordingRepository):
    """Supabase implementation for session recordings."""

    client: Client

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
        response = run_query(
            lambda: self.client.table(_TABLE)
            .insert(
                {
                    "session_id": str(session_id),
                    "device_id": str(device_id),
                    "recording_url": recording_url,
                    "angle_name": angle_label,
                    "sync_offset_ms": sync_offset_ms,
                    "is_primary_angle": is_primary_angle,
                }
            )
            .execute(),
            "save recording",
        )
        if not response.data:
            raise StorageError("Failed to save recording")
        return _to_record(response.data[0])

    def list_recordings(self, session_id: UUID) -> list[SessionRecordingRecord]:
        """Return the takes of a session in report order."""
        response = run_query(
            lambda: self.client.table(_TABLE)
            .select(
                "id, session_id, device_id, recording_url, angle_name, "
                "sync_offset_ms, is_primary_angle, created_at"
            )
            .eq("session_id", str(session_id))
            .order("created_at")
            .execute(),
            "list recordings",
        )
        return [_to_record(row) for row in response.data or []]


def _to_record(row: dict[str, object]) -> SessionRecordingRecord:
    return SessionRecordingRecord(
        id=UUID(str(row["id"])),
        session_id=UUID(str(row["session_id"])),
        device_id=UUID(str(row["device_id"])),
        recording_url=str(row["recording_url"]),
        created_at=parse_timestamp(row["created_at"]),
        angle_label=row.get("angle_name"),
        sync_offset_ms=int(row.get("sync_offset_ms") or 0),
        is_primary_angle=bool(row.get("is_primary_angle")),
    )
