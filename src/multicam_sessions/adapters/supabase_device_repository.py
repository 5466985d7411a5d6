"""Supabase-backed session device repository."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from supabase import Client

from multicam_sessions.adapters.supabase_errors import parse_timestamp, run_query
from multicam_sessions.domain.errors import StorageError
from multicam_sessions.domain.sessions import (
    DEVICE_CONNECTED,
    DEVICE_DISCONNECTED,
    DeviceRecord,
)
from multicam_sessions.services.membership import DeviceRepository

_TABLE = "session_devices"
_COLUMNS = (
    "id, session_id, device_id, user_id, device_name, role, angle_name, status, "
    "capabilities, last_heartbeat, created_at"
)


@dataclass
class SupabaseDeviceRepository(DeviceRepository):
    """Supabase implementation for session devices."""

    client: Client

    def create_device(  # noqa: PLR0913
        self,
        session_id: UUID,
        owner_id: UUID,
        external_device_id: str,
        display_name: str,
        role: str,
        angle_label: str | None,
        capabilities: dict[str, object],
        seen_at: datetime,
    ) -> DeviceRecord:
        """Insert a connected device row and return it."""
        response = run_query(
            lambda: self.client.table(_TABLE)
            .insert(
                {
                    "session_id": str(session_id),
                    "user_id": str(owner_id),
                    "device_id": external_device_id,
                    "device_name": display_name,
                    "role": role,
                    "angle_name": angle_label,
                    "status": DEVICE_CONNECTED,
                    "capabilities": capabilities,
                    "last_heartbeat": seen_at.isoformat(),
                }
            )
            .execute(),
            "register device",
        )
        if not response.data:
            raise StorageError("Failed to register device")
        return _to_record(response.data[0])

    def get_device(
        self, session_id: UUID, external_device_id: str, owner_id: UUID | None = None
    ) -> DeviceRecord | None:
        """Return a session member by its client-supplied id."""

        def query():  # type: ignore[no-untyped-def]
            builder = (
                self.client.table(_TABLE)
                .select(_COLUMNS)
                .eq("session_id", str(session_id))
                .eq("device_id", external_device_id)
            )
            if owner_id is not None:
                builder = builder.eq("user_id", str(owner_id))
            return builder.limit(1).execute()

        response = run_query(query, "load device")
        if not response.data:
            return None
        return _to_record(response.data[0])

    def list_devices(self, session_id: UUID) -> list[DeviceRecord]:
        """Return the devices of a session in join order."""
        response = run_query(
            lambda: self.client.table(_TABLE)
            .select(_COLUMNS)
            .eq("session_id", str(session_id))
            .order("created_at")
            .execute(),
            "list devices",
        )
        return [_to_record(row) for row in response.data or []]

    def reconnect_device(  # noqa: PLR0913
        self,
        device_id: UUID,
        display_name: str,
        angle_label: str | None,
        capabilities: dict[str, object],
        seen_at: datetime,
    ) -> DeviceRecord:
        """Mark an existing member connected again."""
        response = run_query(
            lambda: self.client.table(_TABLE)
            .update(
                {
                    "device_name": display_name,
                    "angle_name": angle_label,
                    "capabilities": capabilities,
                    "status": DEVICE_CONNECTED,
                    "last_heartbeat": seen_at.isoformat(),
                }
            )
            .eq("id", str(device_id))
            .execute(),
            "reconnect device",
        )
        if not response.data:
            raise StorageError("Failed to reconnect device")
        return _to_record(response.data[0])

    def touch_device(
        self,
        session_id: UUID,
        external_device_id: str,
        owner_id: UUID | None,
        seen_at: datetime,
    ) -> DeviceRecord | None:
        """Refresh last_heartbeat for a device."""
        return self._update_one(
            session_id,
            external_device_id,
            owner_id,
            {"last_heartbeat": seen_at.isoformat()},
            "record heartbeat",
        )

    def set_device_status(
        self,
        session_id: UUID,
        external_device_id: str,
        owner_id: UUID | None,
        status: str,
    ) -> DeviceRecord | None:
        """Update the status of a device."""
        return self._update_one(
            session_id,
            external_device_id,
            owner_id,
            {"status": status},
            "update device status",
        )

    def disconnect_stale_devices(
        self, session_id: UUID, cutoff: datetime
    ) -> list[DeviceRecord]:
        """Disconnect live devices whose last heartbeat predates the cutoff."""
        response = run_query(
            lambda: self.client.table(_TABLE)
            .update({"status": DEVICE_DISCONNECTED})
            .eq("session_id", str(session_id))
            .neq("status", DEVICE_DISCONNECTED)
            .lt("last_heartbeat", cutoff.isoformat())
            .execute(),
            "expire stale devices",
        )
        return [_to_record(row) for row in response.data or []]

    def delete_device(self, device_id: UUID) -> None:
        """Delete a device row."""
        run_query(
            lambda: self.client.table(_TABLE).delete().eq("id", str(device_id)).execute(),
            "delete device",
        )

    def _update_one(
        self,
        session_id: UUID,
        external_device_id: str,
        owner_id: UUID | None,
        payload: dict[str, object],
        action: str,
    ) -> DeviceRecord | None:
        def query():  # type: ignore[no-untyped-def]
            builder = (
                self.client.table(_TABLE)
                .update(payload)
                .eq("session_id", str(session_id))
                .eq("device_id", external_device_id)
            )
            if owner_id is not None:
                builder = builder.eq("user_id", str(owner_id))
            return builder.execute()

        response = run_query(query, action)
        if not response.data:
            return None
        return _to_record(response.data[0])


def _to_record(row: dict[str, object]) -> DeviceRecord:
    return DeviceRecord(
        id=UUID(str(row["id"])),
        session_id=UUID(str(row["session_id"])),
        external_device_id=str(row["device_id"]),
        owner_id=UUID(str(row["user_id"])),
        display_name=str(row["device_name"]),
        role=str(row["role"]),
        status=str(row["status"]),
        created_at=parse_timestamp(row["created_at"]),
        angle_label=row.get("angle_name"),
        capabilities=row.get("capabilities") or {},
        last_seen=parse_timestamp(row.get("last_heartbeat")),
    )
