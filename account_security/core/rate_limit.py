from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from account_security.core.config import settings


def get_real_client_ip(request: Request) -> str:
    """
    Client IP with proxy header handling.

    Uses the first X-Forwarded-For hop, then X-Real-IP, when proxy headers are trusted.
    """
    if settings.TRUST_PROXY_HEADERS:
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            first_hop = forwarded_for.split(",")[0].strip()
            if first_hop:
                return first_hop
        real_ip = request.headers.get("X-Real-IP")
        if real_ip and real_ip.strip():
            return real_ip.strip()
    return get_remote_address(request) or "unknown"


# Identifies clients by their (proxy-aware) IP address
limiter = Limiter(key_func=get_real_client_ip)
