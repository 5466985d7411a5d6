"""Shared test fixtures."""

from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

import pytest

from multicam_sessions.config import Settings
from multicam_sessions.containers import AppContainer
from multicam_sessions.domain.errors import DuplicateCodeError, StorageError
from multicam_sessions.domain.events import SessionEvent
from multicam_sessions.domain.sessions import (
    DEVICE_CONNECTED,
    DEVICE_DISCONNECTED,
    ROLE_MASTER,
    SESSION_WAITING,
    TERMINAL_STATUSES,
    DeviceRecord,
    SessionRecord,
    SessionRecordingRecord,
)
from multicam_sessions.services.authority import CommandAuthority
from multicam_sessions.services.events import ChangePublisher, InMemoryChangeFeed
from multicam_sessions.services.identity import AuthService, IdentityProvider
from multicam_sessions.services.membership import DeviceRepository, MembershipService
from multicam_sessions.services.recordings import (
    RecordingRepository,
    SessionRecordingService,
)
from multicam_sessions.services.registry import SessionRegistry, SessionRepository


@dataclass
class FakeClock:
    """Manually advanced clock."""

    now: datetime = field(
        default_factory=lambda: datetime(2026, 1, 1, 12, 0, tzinfo=UTC)
    )

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@dataclass
class InMemorySessionRepository(SessionRepository):
    """In-memory session repository for tests."""

    clock: Callable[[], datetime] = field(default=lambda: datetime.now(tz=UTC))
    sessions: dict[UUID, SessionRecord] = field(default_factory=dict)
    deleted: list[UUID] = field(default_factory=list)
    fail_link: bool = False
    fail_delete: bool = False

    def create_session(
        self,
        owner_id: UUID,
        code: str,
        connection_type: str,
        metadata: dict[str, object],
    ) -> SessionRecord:
        for existing in self.sessions.values():
            if existing.code == code and existing.status not in TERMINAL_STATUSES:
                raise DuplicateCodeError()
        session = SessionRecord(
            id=uuid4(),
            code=code,
            owner_id=owner_id,
            status=SESSION_WAITING,
            master_device_id=None,
            created_at=self.clock(),
            connection_type=connection_type,
            metadata=metadata,
        )
        self.sessions[session.id] = session
        return session

    def get_session(self, session_id: UUID) -> SessionRecord | None:
        return self.sessions.get(session_id)

    def find_by_code(
        self, code: str, statuses: frozenset[str] | None = None
    ) -> SessionRecord | None:
        matches = [
            session
            for session in self.sessions.values()
            if session.code == code and (statuses is None or session.status in statuses)
        ]
        if not matches:
            return None
        return max(matches, key=lambda session: session.created_at)

    def list_sessions(self, statuses: frozenset[str], limit: int) -> list[SessionRecord]:
        matches = [s for s in self.sessions.values() if s.status in statuses]
        return sorted(matches, key=lambda s: s.created_at, reverse=True)[:limit]

    def link_master_device(self, session_id: UUID, device_id: UUID) -> SessionRecord:
        if self.fail_link:
            raise StorageError("link failed")
        session = replace(self.sessions[session_id], master_device_id=device_id)
        self.sessions[session_id] = session
        return session

    def transition_status(  # noqa: PLR0913
        self,
        session_id: UUID,
        *,
        from_statuses: frozenset[str],
        to_status: str,
        master_device_id: UUID,
        changes: dict[str, datetime],
    ) -> SessionRecord | None:
        session = self.sessions.get(session_id)
        if (
            session is None
            or session.status not in from_statuses
            or session.master_device_id != master_device_id
        ):
            return None
        updated = replace(session, status=to_status, **changes)
        self.sessions[session_id] = updated
        return updated

    def delete_session(self, session_id: UUID) -> None:
        if self.fail_delete:
            raise StorageError("delete failed")
        self.sessions.pop(session_id, None)
        self.deleted.append(session_id)

    def force_status(self, session_id: UUID, status: str) -> None:
        self.sessions[session_id] = replace(self.sessions[session_id], status=status)


@dataclass
class InMemoryDeviceRepository(DeviceRepository):
    """In-memory device repository for tests."""

    clock: Callable[[], datetime] = field(default=lambda: datetime.now(tz=UTC))
    devices: dict[UUID, DeviceRecord] = field(default_factory=dict)
    fail_create: bool = False

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
        if self.fail_create:
            raise StorageError("insert failed")
        for existing in self.devices.values():
            if existing.session_id != session_id:
                continue
            if existing.external_device_id == external_device_id:
                raise StorageError("duplicate device")
            if role == ROLE_MASTER and existing.role == ROLE_MASTER:
                raise StorageError("session already has a master")
        device = DeviceRecord(
            id=uuid4(),
            session_id=session_id,
            external_device_id=external_device_id,
            owner_id=owner_id,
            display_name=display_name,
            role=role,
            status=DEVICE_CONNECTED,
            created_at=self.clock(),
            angle_label=angle_label,
            capabilities=capabilities,
            last_seen=seen_at,
        )
        self.devices[device.id] = device
        return device

    def get_device(
        self, session_id: UUID, external_device_id: str, owner_id: UUID | None = None
    ) -> DeviceRecord | None:
        for device in self.devices.values():
            if (
                device.session_id == session_id
                and device.external_device_id == external_device_id
                and (owner_id is None or device.owner_id == owner_id)
            ):
                return device
        return None

    def list_devices(self, session_id: UUID) -> list[DeviceRecord]:
        return [d for d in self.devices.values() if d.session_id == session_id]

    def reconnect_device(  # noqa: PLR0913
        self,
        device_id: UUID,
        display_name: str,
        angle_label: str | None,
        capabilities: dict[str, object],
        seen_at: datetime,
    ) -> DeviceRecord:
        device = replace(
            self.devices[device_id],
            display_name=display_name,
            angle_label=angle_label,
            capabilities=capabilities,
            status=DEVICE_CONNECTED,
            last_seen=seen_at,
        )
        self.devices[device_id] = device
        return device

    def touch_device(
        self,
        session_id: UUID,
        external_device_id: str,
        owner_id: UUID | None,
        seen_at: datetime,
    ) -> DeviceRecord | None:
        device = self.get_device(session_id, external_device_id, owner_id)
        if device is None:
            return None
        updated = replace(device, last_seen=seen_at)
        self.devices[device.id] = updated
        return updated

    def set_device_status(
        self,
        session_id: UUID,
        external_device_id: str,
        owner_id: UUID | None,
        status: str,
    ) -> DeviceRecord | None:
        device = self.get_device(session_id, external_device_id, owner_id)
        if device is None:
            return None
        updated = replace(device, status=status)
        self.devices[device.id] = updated
        return updated

    def disconnect_stale_devices(
        self, session_id: UUID, cutoff: datetime
    ) -> list[DeviceRecord]:
        expired = []
        for device in self.list_devices(session_id):
            if device.is_stale(cutoff):
                updated = replace(device, status=DEVICE_DISCONNECTED)
                self.devices[device.id] = updated
                expired.append(updated)
        return expired

    def delete_device(self, device_id: UUID) -> None:
        self.devices.pop(device_id, None)


@dataclass
class InMemoryRecordingRepository(RecordingRepository):
    """In-memory recording repository for tests."""

    recordings: list[SessionRecordingRecord] = field(default_factory=list)

    def create_recording(  # noqa: PLR0913
        self,
        session_id: UUID,
        device_id: UUID,
        recording_url: str,
        angle_label: str | None,
        sync_offset_ms: int,
        is_primary_angle: bool,
    ) -> SessionRecordingRecord:
        recording = SessionRecordingRecord(
            id=uuid4(),
            session_id=session_id,
            device_id=device_id,
            recording_url=recording_url,
            created_at=datetime.now(tz=UTC),
            angle_label=angle_label,
            sync_offset_ms=sync_offset_ms,
            is_primary_angle=is_primary_angle,
        )
        self.recordings.append(recording)
        return recording

    def list_recordings(self, session_id: UUID) -> list[SessionRecordingRecord]:
        return [r for r in self.recordings if r.session_id == session_id]


@dataclass
class RecordingPublisher(ChangePublisher):
    """Publisher that keeps every event for assertions."""

    events: list[SessionEvent] = field(default_factory=list)

    def publish(self, event: SessionEvent) -> None:
        self.events.append(event)


@dataclass
class FakeIdentityProvider(IdentityProvider):
    """Maps fixed tokens to user ids."""

    users: dict[str, UUID] = field(default_factory=dict)

    def get_user_id(self, access_token: str) -> UUID | None:
        return self.users.get(access_token)


@dataclass
class SessionServices:
    """Services wired over shared in-memory repositories."""

    sessions: InMemorySessionRepository
    devices: InMemoryDeviceRepository
    recordings: InMemoryRecordingRepository
    publisher: RecordingPublisher
    clock: FakeClock
    registry: SessionRegistry
    membership: MembershipService
    authority: CommandAuthority
    recording_service: SessionRecordingService


def build_services(
    require_camera_to_record: bool = False, codes: list[str] | None = None
) -> SessionServices:
    clock = FakeClock()
    sessions = InMemorySessionRepository(clock=clock)
    devices = InMemoryDeviceRepository(clock=clock)
    recordings = InMemoryRecordingRepository()
    publisher = RecordingPublisher()
    registry = SessionRegistry(
        session_repository=sessions,
        device_repository=devices,
        recording_repository=recordings,
        publisher=publisher,
        public_base_url="https://studio.example.com",
        clock=clock,
    )
    if codes is not None:
        pending = list(codes)
        registry.code_factory = lambda: pending.pop(0)
    membership = MembershipService(
        session_repository=sessions,
        device_repository=devices,
        publisher=publisher,
        heartbeat_timeout_seconds=30,
        clock=clock,
    )
    authority = CommandAuthority(
        session_repository=sessions,
        membership_service=membership,
        publisher=publisher,
        require_camera_to_record=require_camera_to_record,
        clock=clock,
    )
    recording_service = SessionRecordingService(
        session_repository=sessions,
        device_repository=devices,
        recording_repository=recordings,
    )
    return SessionServices(
        sessions=sessions,
        devices=devices,
        recordings=recordings,
        publisher=publisher,
        clock=clock,
        registry=registry,
        membership=membership,
        authority=authority,
        recording_service=recording_service,
    )


@pytest.fixture
def services() -> SessionServices:
    return build_services()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_service_key=(
            "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9."
            "eyJyb2xlIjoic2VydmljZV9yb2xlIn0."
            "c2lnbmF0dXJlLXBsYWNlaG9sZGVy"
        ),
        admin_token="admin-token",
        public_base_url="https://studio.example.com",
    )


@pytest.fixture
def master_user() -> UUID:
    return uuid4()


@pytest.fixture
def camera_user() -> UUID:
    return uuid4()


@pytest.fixture
def identity_provider(master_user: UUID, camera_user: UUID) -> FakeIdentityProvider:
    return FakeIdentityProvider(
        users={"master-token": master_user, "camera-token": camera_user}
    )


@pytest.fixture
def container(
    settings: Settings, identity_provider: FakeIdentityProvider
) -> AppContainer:
    sessions = InMemorySessionRepository()
    devices = InMemoryDeviceRepository()
    recordings = InMemoryRecordingRepository()
    change_feed = InMemoryChangeFeed(max_queue_size=settings.change_feed_queue_size)
    session_registry = SessionRegistry(
        session_repository=sessions,
        device_repository=devices,
        recording_repository=recordings,
        publisher=change_feed,
        public_base_url=settings.public_base_url,
        code_attempts=settings.session_code_attempts,
    )
    membership_service = MembershipService(
        session_repository=sessions,
        device_repository=devices,
        publisher=change_feed,
        heartbeat_timeout_seconds=settings.heartbeat_timeout_seconds,
    )
    command_authority = CommandAuthority(
        session_repository=sessions,
        membership_service=membership_service,
        publisher=change_feed,
        require_camera_to_record=settings.require_camera_to_record,
    )
    recording_service = SessionRecordingService(
        session_repository=sessions,
        device_repository=devices,
        recording_repository=recordings,
    )

    async def close_resources() -> None:
        change_feed.close()

    return AppContainer(
        settings=settings,
        auth_service=AuthService(identity_provider),
        change_feed=change_feed,
        session_registry=session_registry,
        membership_service=membership_service,
        command_authority=command_authority,
        recording_service=recording_service,
        close_resources=close_resources,
    )
