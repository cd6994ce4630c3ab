# account_security/core/request_context.py
"""
Request context middleware.

Attaches per-request context (request_id, IP, user_agent) that the login and
session endpoints read when they record network info for a session.
"""

import uuid
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from account_security.core.rate_limit import get_real_client_ip

USER_AGENT_MAX_LENGTH = 512


@dataclass
class RequestContext:
    """Context attached to each request."""

    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    ip_address: str = "unknown"
    user_agent: str | None = None
    # Set by edge proxies that resolve geo information (e.g. CF-IPCountry)
    country: str | None = None
    city: str | None = None
    request_method: str | None = None
    request_path: str | None = None

    # Actor info (set after authentication)
    actor_user_id: str | None = None
    session_id: str | None = None


_request_context: ContextVar[RequestContext | None] = ContextVar("request_context", default=None)


def get_request_context() -> RequestContext | None:
    """Get the current request context."""
    return _request_context.get()


def set_actor(user_id: str | None = None, session_id: str | None = None) -> None:
    """Set actor information in the current request context."""
    ctx = get_request_context()
    if ctx:
        ctx.actor_user_id = user_id
        ctx.session_id = session_id


def build_request_context(request: Request) -> RequestContext:
    user_agent = request.headers.get("User-Agent", "")
    if user_agent and len(user_agent) > USER_AGENT_MAX_LENGTH:
        user_agent = user_agent[: USER_AGENT_MAX_LENGTH - 3] + "..."

    return RequestContext(
        ip_address=get_real_client_ip(request),
        user_agent=user_agent or None,
        country=request.headers.get("CF-IPCountry") or request.headers.get("X-Geo-Country"),
        city=request.headers.get("X-Geo-City"),
        request_method=request.method,
        request_path=request.url.path[:255],
    )


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Middleware that creates and attaches request context.

    Must be added early in the middleware stack.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        ctx = build_request_context(request)

        token = _request_context.set(ctx)
        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = ctx.request_id
            return response
        finally:
            _request_context.reset(token)
