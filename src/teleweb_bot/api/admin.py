"""Admin API endpoints with simple token auth."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

if TYPE_CHECKING:
    from teleweb_bot.containers import AppContainer

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
async def admin_health(request: Request) -> dict[str, object]:
    """Admin health check, including the user directory."""
    container: AppContainer = request.app.state.container
    user_directory = container.user_service.is_healthy()
    return {
        "status": "ok" if user_directory else "degraded",
        "user_directory": user_directory,
        "relay_available": container.acquisition.relay_available,
    }


@router.get("/sessions", dependencies=[Depends(require_admin)])
async def session_stats(request: Request) -> dict[str, object]:
    """Return mode session counts."""
    container: AppContainer = request.app.state.container
    return container.modes.stats()


@router.get("/queues", dependencies=[Depends(require_admin)])
async def queue_stats(request: Request) -> dict[str, object]:
    """Return per-user ingestion queue depth and counters."""
    container: AppContainer = request.app.state.container
    return {"queues": container.queue.snapshot()}


@router.get("/activity", dependencies=[Depends(require_admin)])
async def activity_stats(request: Request) -> dict[str, int]:
    """Return activity sink counters."""
    container: AppContainer = request.app.state.container
    return container.activity.stats()
