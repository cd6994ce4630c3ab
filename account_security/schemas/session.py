# account_security/schemas/session.py
from datetime import datetime

from account_security.schemas.base import CamelModel
from account_security.services.device_fingerprint import (
    DeviceFingerprint,
    get_device_description,
    get_device_icon,
)
from account_security.services.session_registry import SessionView


class SessionResponse(CamelModel):
    id: str
    device_type: str
    browser: str
    os: str
    device_description: str
    device_icon: str
    ip: str
    country: str | None = None
    city: str | None = None
    created_at: datetime
    last_active_at: datetime
    is_current: bool

    @classmethod
    def from_view(cls, view: SessionView) -> "SessionResponse":
        session = view.session
        fingerprint = DeviceFingerprint(
            device_type=session.device_type,  # type: ignore[arg-type]
            browser=session.browser,
            os=session.os,
            raw=session.user_agent or "",
        )
        return cls(
            id=session.id,
            device_type=session.device_type,
            browser=session.browser,
            os=session.os,
            device_description=get_device_description(fingerprint),
            device_icon=get_device_icon(session.device_type),
            ip=session.ip,
            country=session.country,
            city=session.city,
            created_at=session.created_at,
            last_active_at=session.last_active_at,
            is_current=view.is_current,
        )


class SessionListResponse(CamelModel):
    sessions: list[SessionResponse]


class RevokeSessionsResponse(CamelModel):
    success: bool = True
    revoked_count: int
