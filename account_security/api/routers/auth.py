# account_security/api/routers/auth.py
import logging

from fastapi import APIRouter, Request, Response, status

from account_security.api.deps import CurrentSessionDep, NetworkDep, ServicesDep
from account_security.core.config import settings
from account_security.core.rate_limit import limiter
from account_security.core.security import create_session_token
from account_security.exceptions import TwoFactorRequired
from account_security.schemas.auth import (
    LoginRequest,
    LoginResponse,
    LogoutResponse,
    TwoFactorChallengeResponse,
    UserPublic,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth - Authentication"])


def _set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        path="/",
        secure=settings.COOKIE_SECURE,
        httponly=True,
        samesite=settings.COOKIE_SAMESITE,
    )


@router.post(
    "/login",
    response_model=None,
    responses={200: {"model": LoginResponse}},
    summary="Sign in with email and password",
)
@limiter.limit(settings.LOGIN_RATE_LIMIT)
async def login(
    request: Request,
    response: Response,
    payload: LoginRequest,
    services: ServicesDep,
    network: NetworkDep,
) -> LoginResponse | TwoFactorChallengeResponse:
    """
    Authenticate a user.

    When the account has 2FA enabled and no code was sent, answers
    ``{"requires2FA": true}`` so the client can ask for the code and retry.
    """
    try:
        result = await services.coordinator.login(
            payload.email, payload.password, payload.two_factor_code, network
        )
    except TwoFactorRequired:
        return TwoFactorChallengeResponse()

    session = result.session.session
    token = create_session_token(result.account.id, session.id)
    _set_session_cookie(response, token)
    logger.info(f"User {result.account.id} logged in (session {session.id})")

    return LoginResponse(
        user=UserPublic(id=result.account.id, email=result.account.email),
        session_id=session.id,
        access_token=token,
        used_backup_code=result.used_backup_code,
    )


@router.post(
    "/logout",
    response_model=LogoutResponse,
    status_code=status.HTTP_200_OK,
    summary="Sign out of the current session",
)
async def logout(
    response: Response,
    current: CurrentSessionDep,
    services: ServicesDep,
) -> LogoutResponse:
    services.sessions.revoke(current.user_id, current.session_id, reason="logout")
    response.delete_cookie(
        key=settings.SESSION_COOKIE_NAME,
        path="/",
        secure=settings.COOKIE_SECURE,
        httponly=True,
        samesite=settings.COOKIE_SAMESITE,
    )
    logger.info(f"User {current.user_id} logged out (session {current.session_id})")
    return LogoutResponse()
