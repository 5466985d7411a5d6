"""FastAPI application factory."""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import UUID

from fastapi import Body, FastAPI, Header, Request, WebSocket
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import TypeAdapter, ValidationError

from multicam_sessions.api.admin import router as admin_router
from multicam_sessions.api.session_models import (
    CreateSessionAction,
    DeviceStatusAction,
    HeartbeatAction,
    JoinSessionAction,
    LeaveSessionAction,
    SessionAction,
    SessionStatusAction,
    UpdateStatusAction,
)
from multicam_sessions.app_logging import configure_logging
from multicam_sessions.containers import AppContainer
from multicam_sessions.domain.errors import (
    DeviceNotFoundError,
    ForbiddenError,
    InvalidTransitionError,
    NotJoinableError,
    SessionError,
    SessionNotFoundError,
    StorageError,
    UnauthenticatedError,
)
from multicam_sessions.services.events import Subscription

_ACTION_ADAPTER: TypeAdapter[SessionAction] = TypeAdapter(SessionAction)

_HTTP_STATUS_BY_ERROR: list[tuple[type[SessionError], int]] = [
    (UnauthenticatedError, 401),
    (ForbiddenError, 403),
    (SessionNotFoundError, 404),
    (DeviceNotFoundError, 404),
    (NotJoinableError, 409),
    (InvalidTransitionError, 409),
    (StorageError, 503),
]

_CORS_ALLOWED_HEADERS = ("authorization", "x-client-info", "apikey", "content-type")

# Application-defined close codes (4000-4999) mirror the HTTP statuses.
_WS_CLOSE_UNAUTHORIZED = 4401
_WS_CLOSE_NOT_FOUND = 4404


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container
    app.add_middleware(
        CORSMiddleware,
        allow_origins=container.settings.cors_origins(),
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=list(_CORS_ALLOWED_HEADERS),
    )

    app.include_router(admin_router)

    @app.exception_handler(SessionError)
    async def session_error_handler(
        request: Request, exc: SessionError
    ) -> JSONResponse:
        status_code = _http_status_for(exc)
        message = str(exc)
        if isinstance(exc, StorageError):
            logger.warning("Storage failure: %s", exc, extra={"path": request.url.path})
            message = _format_storage_error(request.app.state.container, exc)
        return JSONResponse(
            status_code=status_code,
            content={"error": message, "code": exc.code},
        )

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.post("/multi-cam-session")
    async def multi_cam_session(  # noqa: PLR0911
        request: Request,
        body: dict[str, object] = Body(...),
        authorization: str | None = Header(default=None),
    ) -> dict[str, object]:
        """Handle a session coordination action."""
        state_container: AppContainer = request.app.state.container
        user_id = state_container.auth_service.authenticate(authorization)
        try:
            action = _ACTION_ADAPTER.validate_python(body)
        except ValidationError as exc:
            raise RequestValidationError(
                exc.errors(include_url=False, include_context=False)
            ) from exc

        registry = state_container.session_registry
        membership = state_container.membership_service

        if isinstance(action, CreateSessionAction):
            session, device = registry.create_session(
                owner_id=user_id,
                external_device_id=action.device_id,
                display_name=action.device_name,
                capabilities=action.capabilities,
                connection_type=action.connection_type,
                metadata=action.metadata,
            )
            return {
                "session": session.to_dict(),
                "device": device.to_dict(),
                "join_url": registry.join_url(session),
            }

        if isinstance(action, JoinSessionAction):
            session = registry.resolve_code(action.session_code)
            device = membership.join(
                session_id=session.id,
                owner_id=user_id,
                external_device_id=action.device_id,
                display_name=action.device_name,
                angle_label=action.angle_name,
                capabilities=action.capabilities,
            )
            return {"session": session.to_dict(), "device": device.to_dict()}

        if isinstance(action, LeaveSessionAction):
            membership.leave(action.session_id, action.device_id, user_id)
            return {"success": True}

        if isinstance(action, SessionStatusAction):
            return registry.get_snapshot(action.session_id).to_dict()

        if isinstance(action, UpdateStatusAction):
            session = state_container.command_authority.request_status_change(
                action.session_id, action.device_id, action.status, user_id
            )
            return session.to_dict()

        if isinstance(action, HeartbeatAction):
            membership.heartbeat(action.session_id, action.device_id, user_id)
            return {"success": True}

        if isinstance(action, DeviceStatusAction):
            device = membership.report_status(
                action.session_id, action.device_id, user_id, action.status
            )
            return {"device": device.to_dict()}

        recording = state_container.recording_service.report_recording(
            session_id=action.session_id,
            external_device_id=action.device_id,
            owner_id=user_id,
            recording_url=action.recording_url,
            sync_offset_ms=action.sync_offset_ms,
        )
        return {"recording": recording.to_dict()}

    @app.websocket("/sessions/{session_id}/events")
    async def session_events(
        websocket: WebSocket, session_id: UUID, token: str | None = None
    ) -> None:
        """Stream membership and status changes for one session."""
        state_container: AppContainer = websocket.app.state.container
        try:
            state_container.auth_service.authenticate_token(token)
        except UnauthenticatedError as exc:
            await websocket.close(code=_WS_CLOSE_UNAUTHORIZED, reason=str(exc))
            return
        # Subscribe before reading the snapshot so no change falls between them.
        with state_container.change_feed.subscribe(session_id) as subscription:
            try:
                snapshot = state_container.session_registry.get_snapshot(session_id)
            except SessionNotFoundError as exc:
                await websocket.close(code=_WS_CLOSE_NOT_FOUND, reason=str(exc))
                return
            await websocket.accept()
            await websocket.send_json({"type": "snapshot", "record": snapshot.to_dict()})
            await _forward_events(websocket, subscription, state_container)

    return app


async def _forward_events(
    websocket: WebSocket, subscription: Subscription, container: AppContainer
) -> None:
    """Relay feed events until the client disconnects."""
    receive_task = asyncio.ensure_future(websocket.receive())
    try:
        while True:
            event_task = asyncio.ensure_future(subscription.next_event())
            done, _ = await asyncio.wait(
                {receive_task, event_task}, return_when=asyncio.FIRST_COMPLETED
            )
            if event_task in done:
                event = event_task.result()
                if subscription.take_resync():
                    subscription.drain()
                    snapshot = container.session_registry.get_snapshot(
                        subscription.session_id
                    )
                    await websocket.send_json(
                        {"type": "snapshot", "record": snapshot.to_dict()}
                    )
                elif event is not None:
                    await websocket.send_json(event.to_payload())
            else:
                event_task.cancel()
            if receive_task in done:
                message = receive_task.result()
                if message["type"] == "websocket.disconnect":
                    return
                receive_task = asyncio.ensure_future(websocket.receive())
    finally:
        receive_task.cancel()


def _http_status_for(exc: SessionError) -> int:
    for error_type, status_code in _HTTP_STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 400


def _format_storage_error(state_container: AppContainer, exc: StorageError) -> str:
    """Return the storage error message with local debug info."""
    cause = exc.__cause__
    if state_container.settings.environment == "local" and cause is not None:
        return f"{exc} (debug: {type(cause).__name__}: {cause})"
    return str(exc)
