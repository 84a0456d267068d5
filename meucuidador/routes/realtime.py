"""
Status and control endpoints for the notification socket.

Lets a host process (or an operator) inspect the connection and issue
the explicit connect/disconnect calls that restart recovery after
automatic reconnection has given up.
"""

import logging
from typing import Callable, Optional

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from meucuidador.realtime.connection import ConnectionManager, get_connection_manager
from meucuidador.realtime.gate import is_eligible

logger = logging.getLogger("meucuidador.api")


# =============================================================================
# Request/Response Models
# =============================================================================

class StatusResponse(BaseModel):
    """Response model for the connection status."""
    status: str
    state: str
    reconnect_attempts: int
    max_reconnect_attempts: int


class ReconnectRequest(BaseModel):
    """Gate inputs for an explicit reconnect."""
    route: Optional[str] = None
    user_id: Optional[int] = None


class ReconnectResponse(BaseModel):
    eligible: bool
    state: str


def create_realtime_router(
    get_manager: Callable[[], Optional[ConnectionManager]] = get_connection_manager
) -> APIRouter:
    """
    Build the ``/realtime`` router.

    Args:
        get_manager: Returns the manager to report on (None if unavailable)
    """
    router = APIRouter(prefix="/realtime", tags=["Realtime"])

    def _require_manager() -> ConnectionManager:
        manager = get_manager()
        if manager is None:
            raise HTTPException(status_code=503, detail="Realtime client not initialized")
        return manager

    @router.get("/status", response_model=StatusResponse)
    async def realtime_status():
        """Get the notification socket status."""
        manager = get_manager()
        if manager is None:
            return JSONResponse(
                status_code=503,
                content={"status": "unavailable", "message": "Realtime client not initialized"}
            )

        return StatusResponse(
            status="connected" if manager.is_connected() else "disconnected",
            state=manager.state.value,
            reconnect_attempts=manager.reconnect_attempts,
            max_reconnect_attempts=manager.max_reconnect_attempts,
        )

    @router.post("/reconnect", response_model=ReconnectResponse)
    async def realtime_reconnect(request: Optional[ReconnectRequest] = None):
        """
        Explicitly request a connection.

        Without a body the caller vouches for eligibility; with one, the
        route and user id go through the eligibility gate first.
        """
        manager = _require_manager()

        if request is None:
            eligible = True
        else:
            user = {"id": request.user_id} if request.user_id is not None else None
            eligible = is_eligible(request.route, user)

        logger.info(f"Explicit reconnect requested (eligible={eligible})")
        manager.connect(eligible)
        return ReconnectResponse(eligible=eligible, state=manager.state.value)

    @router.post("/disconnect", response_model=ReconnectResponse)
    async def realtime_disconnect():
        """Close the notification socket with a normal closure."""
        manager = _require_manager()
        manager.disconnect()
        return ReconnectResponse(eligible=False, state=manager.state.value)

    return router
