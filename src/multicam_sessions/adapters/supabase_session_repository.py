"""Supabase-backed session repository."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from supabase import Client

from multicam_sessions.adapters.supabase_errors import parse_timestamp, run_query
from multicam_sessions.domain.errors import StorageError
from multicam_sessions.domain.sessions import SESSION_WAITING, SessionRecord
from multicam_sessions.services.registry import SessionRepository

_TABLE = "recording_sessions"
_COLUMNS = (
    "id, session_code, user_id, status, master_device_id, created_at, "
    "started_at, ended_at, connection_type, metadata"
)


@dataclass
class SupabaseSessionRepository(SessionRepository):
    """Supabase implementation for recording sessions."""

    client: Client

    def create_session(
        self,
        owner_id: UUID,
        code: str,
        connection_type: str,
        metadata: dict[str, object],
    ) -> SessionRecord:
        """Insert a waiting session row and return it."""
        response = run_query(
            lambda: self.client.table(_TABLE)
            .insert(
                {
                    "session_code": code,
                    "user_id": str(owner_id),
                    "status": SESSION_WAITING,
                    "connection_type": connection_type,
                    "metadata": metadata,
                }
            )
            .execute(),
            "create session",
        )
        if not response.data:
            raise StorageError("Failed to create session")
        return _to_record(response.data[0])

    def get_session(self, session_id: UUID) -> SessionRecord | None:
        """Return a session by id, if present."""
        response = run_query(
            lambda: self.client.table(_TABLE)
            .select(_COLUMNS)
            .eq("id", str(session_id))
            .limit(1)
            .execute(),
            "load session",
        )
        if not response.data:
            return None
        return _to_record(response.data[0])

    def find_by_code(
        self, code: str, statuses: frozenset[str] | None = None
    ) -> SessionRecord | None:
        """Return the most recent session with the code."""

        def query():  # type: ignore[no-untyped-def]
            builder = self.client.table(_TABLE).select(_COLUMNS).eq("session_code", code)
            if statuses is not None:
                builder = builder.in_("status", sorted(statuses))
            return builder.order("created_at", desc=True).limit(1).execute()

        response = run_query(query, "look up session code")
        if not response.data:
            return None
        return _to_record(response.data[0])

    def list_sessions(self, statuses: frozenset[str], limit: int) -> list[SessionRecord]:
        """Return recent sessions in the given statuses."""
        response = run_query(
            lambda: self.client.table(_TABLE)
            .select(_COLUMNS)
            .in_("status", sorted(statuses))
            .order("created_at", desc=True)
            .limit(limit)
            .execute(),
            "list sessions",
        )
        return [_to_record(row) for row in response.data or []]

    def link_master_device(self, session_id: UUID, device_id: UUID) -> SessionRecord:
        """Point the session at its master device row."""
        response = run_query(
            lambda: self.client.table(_TABLE)
            .update({"master_device_id": str(device_id)})
            .eq("id", str(session_id))
            .is_("master_device_id", "null")
            .execute(),
            "link master device",
        )
        if not response.data:
            raise StorageError("Failed to link master device")
        return _to_record(response.data[0])

    def transition_status(  # noqa: PLR0913
        self,
        session_id: UUID,
        *,
        from_statuses: frozenset[str],
        to_status: str,
        master_device_id: UUID,
        changes: dict[str, datetime],
    ) -> SessionRecord | None:
        """Update status only while the row is still in an allowed source state."""
        payload: dict[str, object] = {"status": to_status}
        payload.update({column: value.isoformat() for column, value in changes.items()})
        response = run_query(
            lambda: self.client.table(_TABLE)
            .update(payload)
            .eq("id", str(session_id))
            .eq("master_device_id", str(master_device_id))
            .in_("status", sorted(from_statuses))
            .execute(),
            "update session status",
        )
        if not response.data:
            return None
        return _to_record(response.data[0])

    def delete_session(self, session_id: UUID) -> None:
        """Delete a session row."""
        run_query(
            lambda: self.client.table(_TABLE)
            .delete()
            .eq("id", str(session_id))
            .execute(),
            "delete session",
        )


def _to_record(row: dict[str, object]) -> SessionRecord:
    master_device_id = row.get("master_device_id")
    return SessionRecord(
        id=UUID(str(row["id"])),
        code=str(row["session_code"]),
        owner_id=UUID(str(row["user_id"])),
        status=str(row["status"]),
        master_device_id=UUID(str(master_device_id)) if master_device_id else None,
        created_at=parse_timestamp(row["created_at"]),
        started_at=parse_timestamp(row.get("started_at")),
        ended_at=parse_timestamp(row.get("ended_at")),
        connection_type=str(row.get("connection_type") or "internet"),
        metadata=row.get("metadata") or {},
    )
