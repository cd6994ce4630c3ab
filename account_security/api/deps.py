# account_security/api/deps.py
"""
Request-scoped dependencies: the services container, the caller's network
info and the authenticated session.
"""

import logging
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from account_security.core.config import settings
from account_security.core.request_context import (
    build_request_context,
    get_request_context,
    set_actor,
)
from account_security.core.security import decode_session_token
from account_security.core.security_logger import security_log
from account_security.exceptions import NotAuthenticated
from account_security.services.accounts import Account
from account_security.services.container import SecurityServices
from account_security.services.session_registry import NetworkInfo

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def get_services(request: Request) -> SecurityServices:
    return request.app.state.services


def get_network_info(request: Request) -> NetworkInfo:
    """Network details of the caller, taken from the request context middleware."""
    ctx = get_request_context() or build_request_context(request)
    return NetworkInfo(
        ip=ctx.ip_address,
        country=ctx.country,
        city=ctx.city,
        user_agent=ctx.user_agent,
    )


@dataclass(frozen=True)
class CurrentSession:
    account: Account
    session_id: str

    @property
    def user_id(self) -> str:
        return self.account.id


async def get_current_session(
    request: Request,
    services: Annotated[SecurityServices, Depends(get_services)],
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> CurrentSession:
    """
    Resolve the caller from a Bearer token or the session cookie.

    The token is only honoured while the session record it names is active,
    so a revoked session stops working immediately.
    """
    token = credentials.credentials if credentials else request.cookies.get(
        settings.SESSION_COOKIE_NAME
    )
    if not token:
        raise NotAuthenticated()

    ip = get_network_info(request).ip
    claims = decode_session_token(token)
    if claims is None:
        security_log.bad_token(ip, "invalid_token")
        raise NotAuthenticated()

    session = services.sessions.validate(claims["sid"])
    if session is None or session.user_id != claims["sub"]:
        security_log.bad_token(ip, "inactive_session")
        raise NotAuthenticated()

    account = await services.accounts.get_by_id(session.user_id)
    if account is None or not account.is_usable:
        logger.info(f"Token presented for unusable account {session.user_id}")
        raise NotAuthenticated()

    set_actor(user_id=account.id, session_id=session.id)
    return CurrentSession(account=account, session_id=session.id)


ServicesDep = Annotated[SecurityServices, Depends(get_services)]
NetworkDep = Annotated[NetworkInfo, Depends(get_network_info)]
CurrentSessionDep = Annotated[CurrentSession, Depends(get_current_session)]
