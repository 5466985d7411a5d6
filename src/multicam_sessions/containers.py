"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import create_client

from multicam_sessions.adapters.supabase_device_repository import (
    SupabaseDeviceRepository,
)
from multicam_sessions.adapters.supabase_identity_provider import (
    SupabaseIdentityProvider,
)
from multicam_sessions.adapters.supabase_recording_repository import (
    SupabaseRecordingRepository,
)
from multicam_sessions.adapters.supabase_session_repository import (
    SupabaseSessionRepository,
)
from multicam_sessions.config import Settings
from multicam_sessions.services.authority import CommandAuthority
from multicam_sessions.services.events import InMemoryChangeFeed
from multicam_sessions.services.identity import AuthService
from multicam_sessions.services.membership import MembershipService
from multicam_sessions.services.recordings import SessionRecordingService
from multicam_sessions.services.registry import SessionRegistry


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    auth_service: AuthService
    change_feed: InMemoryChangeFeed
    session_registry: SessionRegistry
    membership_service: MembershipService
    command_authority: CommandAuthority
    recording_service: SessionRecordingService
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    session_repository = SupabaseSessionRepository(supabase_client)
    device_repository = SupabaseDeviceRepository(supabase_client)
    recording_repository = SupabaseRecordingRepository(supabase_client)
    change_feed = InMemoryChangeFeed(
        max_queue_size=resolved_settings.change_feed_queue_size
    )
    session_registry = SessionRegistry(
        session_repository=session_repository,
        device_repository=device_repository,
        recording_repository=recording_repository,
        publisher=change_feed,
        public_base_url=resolved_settings.public_base_url,
        code_attempts=resolved_settings.session_code_attempts,
    )
    membership_service = MembershipService(
        session_repository=session_repository,
        device_repository=device_repository,
        publisher=change_feed,
        heartbeat_timeout_seconds=resolved_settings.heartbeat_timeout_seconds,
    )
    command_authority = CommandAuthority(
        session_repository=session_repository,
        membership_service=membership_service,
        publisher=change_feed,
        require_camera_to_record=resolved_settings.require_camera_to_record,
    )
    recording_service = SessionRecordingService(
        session_repository=session_repository,
        device_repository=device_repository,
        recording_repository=recording_repository,
    )
    auth_service = AuthService(SupabaseIdentityProvider(supabase_client))

    async def close_resources() -> None:
        change_feed.close()

    return AppContainer(
        settings=resolved_settings,
        auth_service=auth_service,
        change_feed=change_feed,
        session_registry=session_registry,
        membership_service=membership_service,
        command_authority=command_authority,
        recording_service=recording_service,
        close_resources=close_resources,
    )
