# account_security/schemas/mfa.py
from typing import Literal

from pydantic import Field

from account_security.schemas.base import CamelModel


class TwoFactorStatusResponse(CamelModel):
    enabled: bool
    backup_codes_count: int


class TwoFactorActionRequest(CamelModel):
    action: Literal["setup", "enable", "disable", "regenerate-backup"]
    code: str | None = Field(default=None, max_length=16, description="TOTP or backup code")


class TwoFactorSetupResponse(CamelModel):
    """Returned once by setup. The backup codes are never shown again."""

    provisioning_artifact: str = Field(..., description="QR code as a PNG data URL")
    otpauth_uri: str = Field(..., description="otpauth:// URI, also used for manual entry")
    backup_codes: list[str]


class TwoFactorActionResponse(CamelModel):
    success: bool = True
    message: str


class BackupCodesResponse(CamelModel):
    success: bool = True
    backup_codes: list[str]
