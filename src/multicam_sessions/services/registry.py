"""Session registry: session creation and join-code resolution."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol
from uuid import UUID

from multicam_sessions.domain.codes import generate_code, join_url, normalize_code
from multicam_sessions.domain.errors import (
    DuplicateCodeError,
    NotJoinableError,
    SessionNotFoundError,
    StorageError,
)
from multicam_sessions.domain.events import MembershipChanged, SessionStatusChanged
from multicam_sessions.domain.sessions import (
    DEFAULT_MASTER_NAME,
    OPEN_STATUSES,
    ROLE_MASTER,
    DeviceRecord,
    SessionRecord,
    SessionSnapshot,
)
from multicam_sessions.services.events import ChangePublisher
from multicam_sessions.services.membership import DeviceRepository
from multicam_sessions.services.recordings import RecordingRepository

_logger = logging.getLogger(__name__)


class SessionRepository(Protocol):
    """Persistence interface for recording sessions."""

    def create_session(
        self,
        owner_id: UUID,
        code: str,
        connection_type: str,
        metadata: dict[str, object],
    ) -> SessionRecord:
        """Insert a session in the waiting state; raise DuplicateCodeError on a clash."""

    def get_session(self, session_id: UUID) -> SessionRecord | None:
        """Return a session by id, if present."""

    def find_by_code(
        self, code: str, statuses: frozenset[str] | None = None
    ) -> SessionRecord | None:
        """Return the most recent session with the code, optionally by status."""

    def list_sessions(self, statuses: frozenset[str], limit: int) -> list[SessionRecord]:
        """Return recent sessions in the given statuses."""

    def link_master_device(self, session_id: UUID, device_id: UUID) -> SessionRecord:
        """Point the session at its master device row."""

    def transition_status(  # noqa: PLR0913
        self,
        session_id: UUID,
        *,
        from_statuses: frozenset[str],
        to_status: str,
        master_device_id: UUID,
        changes: dict[str, datetime],
    ) -> SessionRecord | None:
        """Conditionally update status; return None when no row matched."""

    def delete_session(self, session_id: UUID) -> None:
        """Remove a session row left behind by a failed create."""


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class SessionRegistry:
    """Creates sessions and resolves join codes to sessions."""

    session_repository: SessionRepository
    device_repository: DeviceRepository
    recording_repository: RecordingRepository
    publisher: ChangePublisher
    public_base_url: str = "http://localhost:5173"
    code_attempts: int = 5
    code_factory: Callable[[], str] = generate_code
    clock: Callable[[], datetime] = field(default=_utc_now)

    def create_session(  # noqa: PLR0913
        self,
        owner_id: UUID,
        external_device_id: str,
        display_name: str | None = None,
        capabilities: dict[str, object] | None = None,
        connection_type: str = "internet",
        metadata: dict[str, object] | None = None,
    ) -> tuple[SessionRecord, DeviceRecord]:
        """Create a session with the caller's device as master."""
        session = self._insert_with_fresh_code(
            owner_id, connection_type, metadata or {}
        )
        try:
            device = self.device_repository.create_device(
                session_id=session.id,
                owner_id=owner_id,
                external_device_id=external_device_id,
                display_name=display_name or DEFAULT_MASTER_NAME,
                role=ROLE_MASTER,
                angle_label=None,
                capabilities=capabilities or {},
                seen_at=self.clock(),
            )
        except StorageError:
            self._compensate(session.id)
            raise
        try:
            session = self.session_repository.link_master_device(session.id, device.id)
        except StorageError:
            self._compensate(session.id, device.id)
            raise

        _logger.info(
            "Session created",
            extra={"session_id": str(session.id), "code": session.code},
        )
        self.publisher.publish(MembershipChanged(device))
        self.publisher.publish(SessionStatusChanged(session))
        return session, device

    def resolve_code(self, raw_code: str) -> SessionRecord:
        """Return the joinable session for a typed or scanned code."""
        code = normalize_code(raw_code)
        session = self.session_repository.find_by_code(code, OPEN_STATUSES)
        if session is None:
            session = self.session_repository.find_by_code(code)
        if session is None:
            raise SessionNotFoundError()
        if not session.is_joinable:
            raise NotJoinableError()
        return session

    def get_session(self, session_id: UUID) -> SessionRecord:
        session = self.session_repository.get_session(session_id)
        if session is None:
            raise SessionNotFoundError("Session not found")
        return session

    def get_snapshot(self, session_id: UUID) -> SessionSnapshot:
        """Return the session with its roster in join order and its takes."""
        session = self.get_session(session_id)
        return SessionSnapshot(
            session=session,
            devices=self.device_repository.list_devices(session_id),
            recordings=self.recording_repository.list_recordings(session_id),
        )

    def list_open_sessions(self, limit: int = 50) -> list[SessionRecord]:
        return self.session_repository.list_sessions(OPEN_STATUSES, limit)

    def join_url(self, session: SessionRecord) -> str:
        return join_url(self.public_base_url, session.code)

    def _insert_with_fresh_code(
        self,
        owner_id: UUID,
        connection_type: str,
        metadata: dict[str, object],
    ) -> SessionRecord:
        for attempt in range(1, self.code_attempts + 1):
            code = self.code_factory()
            try:
                return self.session_repository.create_session(
                    owner_id=owner_id,
                    code=code,
                    connection_type=connection_type,
                    metadata=metadata,
                )
            except DuplicateCodeError:
                _logger.warning(
                    "Session code collision (attempt %s/%s)",
                    attempt,
                    self.code_attempts,
                )
        raise StorageError("Could not allocate a unique session code")

    def _compensate(self, session_id: UUID, device_id: UUID | None = None) -> None:
        _logger.warning(
            "Rolling back partially created session",
            extra={"session_id": str(session_id)},
        )
        try:
            if device_id is not None:
                self.device_repository.delete_device(device_id)
            self.session_repository.delete_session(session_id)
        except StorageError:
            # The caller re-raises the failure that triggered the rollback.
            _logger.exception(
                "Rollback of partially created session failed",
                extra={"session_id": str(session_id)},
            )
