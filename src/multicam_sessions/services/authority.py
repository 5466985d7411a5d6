"""Command authority: master-only session status transitions."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import UUID

from multicam_sessions.domain.errors import (
    ForbiddenError,
    InvalidTransitionError,
    SessionNotFoundError,
)
from multicam_sessions.domain.events import SessionStatusChanged
from multicam_sessions.domain.sessions import (
    SESSION_RECORDING,
    SESSION_STOPPED,
    STATUS_TRANSITIONS,
    SessionRecord,
)
from multicam_sessions.services.events import ChangePublisher
from multicam_sessions.services.membership import MembershipService
from multicam_sessions.services.registry import SessionRepository

_logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class CommandAuthority:
    """Validates and applies session-wide recording commands."""

    session_repository: SessionRepository
    membership_service: MembershipService
    publisher: ChangePublisher
    require_camera_to_record: bool = False
    clock: Callable[[], datetime] = field(default=_utc_now)

    def request_status_change(
        self,
        session_id: UUID,
        external_device_id: str,
        target_status: str,
        owner_id: UUID | None = None,
    ) -> SessionRecord:
        """Apply a master-issued transition with a compare-and-swap write."""
        session = self.session_repository.get_session(session_id)
        if session is None:
            raise SessionNotFoundError("Session not found")

        device = self.membership_service.device_repository.get_device(
            session_id, external_device_id, owner_id
        )
        if device is None or device.id != session.master_device_id:
            _logger.warning(
                "Rejected status change from non-master device",
                extra={"session_id": str(session_id), "status": target_status},
            )
            raise ForbiddenError()

        allowed_sources = STATUS_TRANSITIONS.get(target_status)
        if allowed_sources is None or session.status not in allowed_sources:
            raise InvalidTransitionError(
                f"Cannot change session from {session.status!r} to {target_status!r}"
            )
        if (
            target_status == SESSION_RECORDING
            and self.require_camera_to_record
            and not self.membership_service.live_cameras(session_id)
        ):
            raise InvalidTransitionError("No camera devices are connected")

        now = self.clock()
        changes: dict[str, datetime] = {}
        if target_status == SESSION_RECORDING:
            changes["started_at"] = now
        elif target_status == SESSION_STOPPED:
            changes["ended_at"] = now

        updated = self.session_repository.transition_status(
            session_id,
            from_statuses=allowed_sources,
            to_status=target_status,
            master_device_id=device.id,
            changes=changes,
        )
        if updated is None:
            raise InvalidTransitionError("Session status changed concurrently")

        _logger.info(
            "Session status changed",
            extra={
                "session_id": str(session_id),
                "from_status": session.status,
                "to_status": target_status,
            },
        )
        self.publisher.publish(SessionStatusChanged(updated))
        return updated
