# account_security/schemas/auth.py
from pydantic import EmailStr, Field

from account_security.schemas.base import CamelModel


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=1024)
    two_factor_code: str | None = Field(
        default=None, max_length=16, description="TOTP or backup code, when 2FA is enabled"
    )


class UserPublic(CamelModel):
    id: str
    email: str


class LoginResponse(CamelModel):
    """
    Successful login.

    The same token is also set as an httpOnly cookie; non-browser clients send
    it back as a Bearer token.
    """

    success: bool = True
    user: UserPublic
    session_id: str
    access_token: str
    token_type: str = "bearer"
    used_backup_code: bool = False


class TwoFactorChallengeResponse(CamelModel):
    """Credentials were valid; repeat the request with twoFactorCode."""

    requires_2fa: bool = Field(default=True, alias="requires2FA")


class LogoutResponse(CamelModel):
    success: bool = True
