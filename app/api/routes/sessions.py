"""
Session endpoints: login, whoami, logout and stats.
"""

import logging
from typing import Any, Dict, Optional, Tuple

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from app.api.dependencies import get_sessions, require_session
from app.settings import settings
from app.storage import SessionRecord, SessionStore

router = APIRouter()
logger = logging.getLogger(__name__)


class CreateSessionRequest(BaseModel):
    user_id: Optional[str] = Field(
        default=None, min_length=1, max_length=128, description="Session owner (default: admin)"
    )


class SessionResponse(BaseModel):
    token: str
    user_id: str
    backend: str


class SessionInfo(BaseModel):
    user_id: str
    created_at: float
    expires_at: float


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=SessionResponse,
    summary="Create a session",
)
async def create_session(
    body: Optional[CreateSessionRequest] = None,
    sessions: SessionStore = Depends(get_sessions),
) -> SessionResponse:
    """Create a session and return its token.

    The token goes in the X-Session-Token header of later requests.
    """
    user_id = (body.user_id if body else None) or settings.session.default_user_id
    backend = sessions.backend
    token = await sessions.create_session(user_id)

    return SessionResponse(token=token, user_id=user_id, backend=backend)


@router.get("/me", response_model=SessionInfo, summary="Current session")
async def current_session(
    session: Tuple[str, SessionRecord] = Depends(require_session),
) -> SessionInfo:
    _, record = session
    return SessionInfo(**record.to_dict())


@router.delete("/me", status_code=status.HTTP_200_OK, summary="Log out")
async def logout(
    session: Tuple[str, SessionRecord] = Depends(require_session),
    sessions: SessionStore = Depends(get_sessions),
) -> Dict[str, Any]:
    token, _ = session
    await sessions.destroy_session(token)
    return {"status": "logged_out"}


@router.get("/stats", summary="Session statistics")
async def session_stats(
    sessions: SessionStore = Depends(get_sessions),
) -> Dict[str, Any]:
    """Active sessions and backend. Served through the response cache."""
    return {
        "backend": sessions.backend,
        "remote_enabled": sessions.is_remote_enabled(),
        "active_sessions": await sessions.active_session_count(),
    }
