from unittest.mock import patch

import pytest

from account_security.core.security_logger import security_log
from account_security.exceptions import (
    AuthenticationFailed,
    InvalidTwoFactorCode,
    LoginLocked,
    TwoFactorRequired,
)
from account_security.services.account_lockout import AttemptTracker
from account_security.services.container import SecurityServices
from account_security.services.session_registry import NetworkInfo
from tests.helpers import CHROME_WINDOWS_UA, TEST_PASSWORD, FakeClock, totp_code

NETWORK = NetworkInfo(ip="192.0.2.10", country="DE", city="Berlin", user_agent=CHROME_WINDOWS_UA)


def _enable_2fa(services: SecurityServices, user, clock: FakeClock):
    setup = services.totp.setup(user.id, user.email)
    services.totp.enable(user.id, totp_code(setup.secret, clock))
    clock.advance(seconds=30)
    return setup


@pytest.mark.asyncio
async def test_login_creates_session(services: SecurityServices, user) -> None:
    with patch.object(security_log, "login_success") as mock_success:
        result = await services.coordinator.login(user.email, TEST_PASSWORD, None, NETWORK)

    assert result.account.id == user.id
    assert result.session.is_current is True
    assert result.session.session.browser == "Chrome"
    assert result.session.session.city == "Berlin"
    assert result.used_backup_code is False
    mock_success.assert_called_once_with(NETWORK.ip, user.id, "password")
    assert services.sessions.active_count(user.id) == 1


@pytest.mark.asyncio
async def test_success_clears_failed_attempts(services: SecurityServices, user) -> None:
    key = AttemptTracker.key(NETWORK.ip, user.email)
    for _ in range(3):
        with pytest.raises(AuthenticationFailed):
            await services.coordinator.login(user.email, "wrong", None, NETWORK)

    await services.coordinator.login(user.email, TEST_PASSWORD, None, NETWORK)

    assert services.attempts.check_login_allowed(key).remaining_attempts == 5


@pytest.mark.asyncio
async def test_locked_key_blocks_even_correct_password(
    services: SecurityServices, user, clock: FakeClock
) -> None:
    for _ in range(4):
        with pytest.raises(AuthenticationFailed):
            await services.coordinator.login(user.email, "wrong", None, NETWORK)
    with pytest.raises(LoginLocked):
        await services.coordinator.login(user.email, "wrong", None, NETWORK)

    with patch.object(services.credentials, "verify") as mock_verify:
        with pytest.raises(LoginLocked) as exc_info:
            await services.coordinator.login(user.email, TEST_PASSWORD, None, NETWORK)

    mock_verify.assert_not_called()
    assert exc_info.value.retry_after_ms > 0
    assert services.sessions.active_count(user.id) == 0

    clock.advance(minutes=1)
    result = await services.coordinator.login(user.email, TEST_PASSWORD, None, NETWORK)
    assert result.account.id == user.id


@pytest.mark.asyncio
async def test_lock_is_per_ip(services: SecurityServices, user) -> None:
    for _ in range(4):
        with pytest.raises(AuthenticationFailed):
            await services.coordinator.login(user.email, "wrong", None, NETWORK)
    with pytest.raises(LoginLocked):
        await services.coordinator.login(user.email, "wrong", None, NETWORK)

    other_network = NetworkInfo(ip="192.0.2.99", user_agent=CHROME_WINDOWS_UA)
    result = await services.coordinator.login(user.email, TEST_PASSWORD, None, other_network)

    assert result.session.session.ip == "192.0.2.99"


@pytest.mark.asyncio
async def test_two_factor_required_without_code(
    services: SecurityServices, user, clock: FakeClock
) -> None:
    _enable_2fa(services, user, clock)

    with pytest.raises(TwoFactorRequired):
        await services.coordinator.login(user.email, TEST_PASSWORD, None, NETWORK)

    assert services.sessions.active_count(user.id) == 0
    # Asking for the code is not a failed attempt
    key = AttemptTracker.key(NETWORK.ip, user.email)
    assert services.attempts.get_attempt_count(key) == 0


@pytest.mark.asyncio
async def test_two_factor_login_with_totp(
    services: SecurityServices, user, clock: FakeClock
) -> None:
    setup = _enable_2fa(services, user, clock)

    with patch.object(security_log, "login_success") as mock_success:
        result = await services.coordinator.login(
            user.email, TEST_PASSWORD, totp_code(setup.secret, clock), NETWORK
        )

    assert result.used_backup_code is False
    mock_success.assert_called_once_with(NETWORK.ip, user.id, "password+totp")


@pytest.mark.asyncio
async def test_two_factor_login_with_backup_code(
    services: SecurityServices, user, clock: FakeClock
) -> None:
    setup = _enable_2fa(services, user, clock)

    result = await services.coordinator.login(
        user.email, TEST_PASSWORD, setup.backup_codes[0], NETWORK
    )

    assert result.used_backup_code is True
    assert services.totp.status(user.id).backup_codes_count == 9

    with pytest.raises(InvalidTwoFactorCode):
        await services.coordinator.login(user.email, TEST_PASSWORD, setup.backup_codes[0], NETWORK)


@pytest.mark.asyncio
async def test_invalid_code_counts_as_failure(
    services: SecurityServices, user, clock: FakeClock
) -> None:
    setup = _enable_2fa(services, user, clock)
    code = totp_code(setup.secret, clock)
    await services.coordinator.login(user.email, TEST_PASSWORD, code, NETWORK)

    # Replaying the accepted code is an invalid code
    with pytest.raises(InvalidTwoFactorCode) as exc_info:
        await services.coordinator.login(user.email, TEST_PASSWORD, code, NETWORK)

    assert exc_info.value.remaining_attempts == 4
    assert exc_info.value.details == {"requires2FA": True, "remainingAttempts": 4}
    assert services.sessions.active_count(user.id) == 1


@pytest.mark.asyncio
async def test_repeated_invalid_codes_lock_the_key(
    services: SecurityServices, user, clock: FakeClock
) -> None:
    _enable_2fa(services, user, clock)

    for _ in range(4):
        with pytest.raises(InvalidTwoFactorCode):
            await services.coordinator.login(user.email, TEST_PASSWORD, "ZZZZ-ZZZZ", NETWORK)
    with pytest.raises(LoginLocked):
        await services.coordinator.login(user.email, TEST_PASSWORD, "ZZZZ-ZZZZ", NETWORK)
