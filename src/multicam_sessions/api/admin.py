"""Admin API endpoints with simple token auth."""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID  # noqa: TC003

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

if TYPE_CHECKING:
    from multicam_sessions.containers import AppContainer

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_admin_token(request: Request) -> str:
    container: AppContainer = request.app.state.container
    return container.settings.admin_token


async def require_admin(
    x_admin_token: str | None = Header(default=None),
    admin_token: str = Depends(_get_admin_token),
) -> None:
    """Ensure requests include a valid admin token."""
    if not x_admin_token or x_admin_token != admin_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


@router.get("/health", dependencies=[Depends(require_admin)])
async def admin_health() -> dict[str, str]:
    """Admin health check endpoint."""
    return {"status": "ok"}


@router.get("/sessions", dependencies=[Depends(require_admin)])
async def list_sessions(request: Request, limit: int = 20) -> dict[str, object]:
    """Return recent sessions that have not reached a terminal state."""
    container: AppContainer = request.app.state.container
    sessions = container.session_registry.list_open_sessions(limit)
    return {"sessions": [session.to_dict() for session in sessions]}


@router.get("/sessions/{session_id}", dependencies=[Depends(require_admin)])
async def session_detail(session_id: UUID, request: Request) -> dict[str, object]:
    """Return a session with its devices and recordings."""
    container: AppContainer = request.app.state.container
    return container.session_registry.get_snapshot(session_id).to_dict()


@router.post(
    "/sessions/{session_id}/expire-stale", dependencies=[Depends(require_admin)]
)
async def expire_session_devices(
    session_id: UUID, request: Request
) -> dict[str, object]:
    """Disconnect devices of one session that stopped sending heartbeats."""
    container: AppContainer = request.app.state.container
    container.session_registry.get_session(session_id)
    expired = container.membership_service.expire_stale_devices(session_id)
    return {"expired": [device.to_dict() for device in expired]}


@router.post("/expire-stale", dependencies=[Depends(require_admin)])
async def expire_all_devices(request: Request, limit: int = 100) -> dict[str, object]:
    """Run the liveness policy across open sessions."""
    container: AppContainer = request.app.state.container
    expired: list[dict[str, object]] = []
    for session in container.session_registry.list_open_sessions(limit):
        expired.extend(
            device.to_dict()
            for device in container.membership_service.expire_stale_devices(
                session.id
            )
        )
    return {"expired": expired}
