# account_security/api/routers/mfa.py
"""
Two-factor authentication endpoints.

A single POST endpoint takes an ``action``:
- setup: issue a QR code, otpauth URI and backup codes
- enable: confirm setup with a code from the authenticator app
- disable: turn 2FA off (needs a current code)
- regenerate-backup: replace the backup codes (needs a current code)
"""

import logging

from fastapi import APIRouter

from account_security.api.deps import CurrentSessionDep, NetworkDep, ServicesDep
from account_security.exceptions import InvalidRequest
from account_security.schemas.mfa import (
    BackupCodesResponse,
    TwoFactorActionRequest,
    TwoFactorActionResponse,
    TwoFactorSetupResponse,
    TwoFactorStatusResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth/2fa", tags=["2FA - Two-Factor Authentication"])


@router.get("", response_model=TwoFactorStatusResponse, summary="Get 2FA status")
async def get_two_factor_status(
    current: CurrentSessionDep,
    services: ServicesDep,
) -> TwoFactorStatusResponse:
    state = services.totp.status(current.user_id)
    return TwoFactorStatusResponse(
        enabled=state.enabled, backup_codes_count=state.backup_codes_count
    )


@router.post(
    "",
    response_model=None,
    summary="Set up, enable or disable 2FA",
)
async def two_factor_action(
    payload: TwoFactorActionRequest,
    current: CurrentSessionDep,
    services: ServicesDep,
    network: NetworkDep,
) -> TwoFactorSetupResponse | TwoFactorActionResponse | BackupCodesResponse:
    totp = services.totp
    user_id = current.user_id

    if payload.action == "setup":
        setup = totp.setup(user_id, current.account.email)
        return TwoFactorSetupResponse(
            provisioning_artifact=setup.qr_code,
            otpauth_uri=setup.otpauth_uri,
            backup_codes=setup.backup_codes,
        )

    if not payload.code:
        raise InvalidRequest("A verification code is required")

    if payload.action == "enable":
        totp.enable(user_id, payload.code)
        return TwoFactorActionResponse(message="2FA enabled successfully")

    if payload.action == "disable":
        totp.disable(user_id, payload.code, ip=network.ip)
        return TwoFactorActionResponse(message="2FA disabled successfully")

    backup_codes = totp.regenerate_backup_codes(user_id, payload.code, ip=network.ip)
    return BackupCodesResponse(backup_codes=backup_codes)
