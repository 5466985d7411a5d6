"""Device membership: admit, track and retire the devices of a session."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Protocol
from uuid import UUID

from multicam_sessions.domain.errors import (
    DeviceNotFoundError,
    ForbiddenError,
    InvalidTransitionError,
    NotJoinableError,
    SessionNotFoundError,
)
from multicam_sessions.domain.events import MembershipChanged
from multicam_sessions.domain.sessions import (
    DEFAULT_ANGLE_LABEL,
    DEVICE_DISCONNECTED,
    REPORTABLE_DEVICE_STATUSES,
    ROLE_CAMERA,
    DeviceRecord,
    SessionRecord,
)
from multicam_sessions.services.events import ChangePublisher

if TYPE_CHECKING:
    from multicam_sessions.services.registry import SessionRepository

_logger = logging.getLogger(__name__)


class DeviceRepository(Protocol):
    """Persistence interface for session devices."""

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

    def get_device(
        self, session_id: UUID, external_device_id: str, owner_id: UUID | None = None
    ) -> DeviceRecord | None:
        """Return a session member by its client-supplied id."""

    def list_devices(self, session_id: UUID) -> list[DeviceRecord]:
        """Return the devices of a session in join order."""

    def reconnect_device(  # noqa: PLR0913
        self,
        device_id: UUID,
        display_name: str,
        angle_label: str | None,
        capabilities: dict[str, object],
        seen_at: datetime,
    ) -> DeviceRecord:
        """Mark an existing member connected again with refreshed details."""

    def touch_device(
        self,
        session_id: UUID,
        external_device_id: str,
        owner_id: UUID | None,
        seen_at: datetime,
    ) -> DeviceRecord | None:
        """Refresh last_seen; return None when no row matched."""

    def set_device_status(
        self,
        session_id: UUID,
        external_device_id: str,
        owner_id: UUID | None,
        status: str,
    ) -> DeviceRecord | None:
        """Update a device status; return None when no row matched."""

    def disconnect_stale_devices(
        self, session_id: UUID, cutoff: datetime
    ) -> list[DeviceRecord]:
        """Disconnect live devices last seen before the cutoff and return them."""

    def delete_device(self, device_id: UUID) -> None:
        """Remove a device row left behind by a failed create."""


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class MembershipService:
    """Admits devices into sessions and tracks their liveness."""

    session_repository: "SessionRepository"
    device_repository: DeviceRepository
    publisher: ChangePublisher
    heartbeat_timeout_seconds: int = 30
    clock: Callable[[], datetime] = field(default=_utc_now)

    def join(  # noqa: PLR0913
        self,
        session_id: UUID,
        owner_id: UUID,
        external_device_id: str,
        display_name: str,
        angle_label: str | None = None,
        capabilities: dict[str, object] | None = None,
    ) -> DeviceRecord:
        """Admit a camera device, or reconnect an existing member."""
        session = self._load_session(session_id)
        if not session.is_joinable:
            raise NotJoinableError()

        now = self.clock()
        existing = self.device_repository.get_device(session.id, external_device_id)
        if existing is not None and existing.owner_id != owner_id:
            _logger.warning(
                "Rejected join with a device id owned by another user",
                extra={"session_id": str(session.id), "device_id": str(existing.id)},
            )
            raise ForbiddenError()
        if existing is not None:
            device = self.device_repository.reconnect_device(
                device_id=existing.id,
                display_name=display_name or existing.display_name,
                angle_label=angle_label or existing.angle_label,
                capabilities=capabilities or existing.capabilities,
                seen_at=now,
            )
            _logger.info(
                "Device reconnected",
                extra={"session_id": str(session.id), "device_id": str(device.id)},
            )
        else:
            device = self.device_repository.create_device(
                session_id=session.id,
                owner_id=owner_id,
                external_device_id=external_device_id,
                display_name=display_name,
                role=ROLE_CAMERA,
                angle_label=angle_label or DEFAULT_ANGLE_LABEL,
                capabilities=capabilities or {},
                seen_at=now,
            )
            _logger.info(
                "Device joined",
                extra={"session_id": str(session.id), "device_id": str(device.id)},
            )
        self.publisher.publish(MembershipChanged(device))
        return device

    def heartbeat(
        self, session_id: UUID, external_device_id: str, owner_id: UUID | None = None
    ) -> bool:
        """Refresh a device's last_seen; unknown devices are ignored."""
        device = self.device_repository.touch_device(
            session_id, external_device_id, owner_id, self.clock()
        )
        if device is None:
            _logger.info(
                "Heartbeat for unknown device ignored",
                extra={"session_id": str(session_id)},
            )
            return False
        return True

    def leave(
        self, session_id: UUID, external_device_id: str, owner_id: UUID | None = None
    ) -> bool:
        """Mark a device disconnected; the row is retained."""
        device = self.device_repository.set_device_status(
            session_id, external_device_id, owner_id, DEVICE_DISCONNECTED
        )
        if device is None:
            _logger.info(
                "Leave for unknown device ignored",
                extra={"session_id": str(session_id)},
            )
            return False
        _logger.info(
            "Device left",
            extra={"session_id": str(session_id), "device_id": str(device.id)},
        )
        self.publisher.publish(MembershipChanged(device))
        return True

    def report_status(
        self,
        session_id: UUID,
        external_device_id: str,
        owner_id: UUID | None,
        status: str,
    ) -> DeviceRecord:
        """Record a device-reported capture state for the roster."""
        if status not in REPORTABLE_DEVICE_STATUSES:
            raise InvalidTransitionError(f"Devices cannot report status {status!r}")
        current = self.device_repository.get_device(
            session_id, external_device_id, owner_id
        )
        if current is None:
            raise DeviceNotFoundError()
        if current.status == DEVICE_DISCONNECTED:
            raise InvalidTransitionError("Disconnected devices must join again")
        device = self.device_repository.set_device_status(
            session_id, external_device_id, owner_id, status
        )
        if device is None:
            raise DeviceNotFoundError()
        self.publisher.publish(MembershipChanged(device))
        return device

    def list_devices(self, session_id: UUID) -> list[DeviceRecord]:
        """Return a roster snapshot in join order."""
        return self.device_repository.list_devices(session_id)

    def get_member(
        self, session_id: UUID, external_device_id: str, owner_id: UUID | None = None
    ) -> DeviceRecord:
        device = self.device_repository.get_device(
            session_id, external_device_id, owner_id
        )
        if device is None:
            raise DeviceNotFoundError()
        return device

    def expire_stale_devices(self, session_id: UUID) -> list[DeviceRecord]:
        """Disconnect devices silent for longer than the heartbeat timeout."""
        cutoff = self.clock() - timedelta(seconds=self.heartbeat_timeout_seconds)
        expired = self.device_repository.disconnect_stale_devices(session_id, cutoff)
        for device in expired:
            self.publisher.publish(MembershipChanged(device))
        if expired:
            _logger.warning(
                "Expired %s stale devices",
                len(expired),
                extra={"session_id": str(session_id)},
            )
        return expired

    def live_cameras(self, session_id: UUID) -> list[DeviceRecord]:
        """Return camera devices that are connected and not stale."""
        cutoff = self.clock() - timedelta(seconds=self.heartbeat_timeout_seconds)
        return [
            device
            for device in self.device_repository.list_devices(session_id)
            if device.role == ROLE_CAMERA
            and device.status != DEVICE_DISCONNECTED
            and not device.is_stale(cutoff)
        ]

    def _load_session(self, session_id: UUID) -> SessionRecord:
        session = self.session_repository.get_session(session_id)
        if session is None:
            raise SessionNotFoundError("Session not found")
        return session

