# account_security/api/routers/sessions.py
import logging

from fastapi import APIRouter, Query

from account_security.api.deps import CurrentSessionDep, ServicesDep
from account_security.exceptions import InvalidRequest
from account_security.schemas.session import (
    RevokeSessionsResponse,
    SessionListResponse,
    SessionResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["Sessions - Device Sessions"])


@router.get("", response_model=SessionListResponse, summary="List active sessions")
async def list_sessions(
    current: CurrentSessionDep,
    services: ServicesDep,
) -> SessionListResponse:
    views = services.sessions.list_sessions(current.user_id, current.session_id)
    return SessionListResponse(sessions=[SessionResponse.from_view(v) for v in views])


@router.delete("", response_model=RevokeSessionsResponse, summary="Revoke sessions")
async def revoke_sessions(
    current: CurrentSessionDep,
    services: ServicesDep,
    session_id: str | None = Query(default=None, alias="id"),
    revoke_all: bool = Query(default=False, alias="all"),
) -> RevokeSessionsResponse:
    """
    Revoke one session (``?id=``) or every session except the caller's
    (``?all=true``). The caller's own session is ended through logout.
    """
    if revoke_all:
        count = services.sessions.revoke_all_others(current.user_id, current.session_id)
        logger.info(f"User {current.user_id} revoked {count} other sessions")
        return RevokeSessionsResponse(revoked_count=count)

    if not session_id:
        raise InvalidRequest("Provide a session id or all=true")

    services.sessions.revoke(current.user_id, session_id, current_session_id=current.session_id)
    return RevokeSessionsResponse(revoked_count=1)
