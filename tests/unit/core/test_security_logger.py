# tests/unit/core/test_security_logger.py
"""
Unit tests for the fail2ban-style security logger.
"""

from unittest.mock import patch

from account_security.core.security_logger import mask_email, sanitize, security_log


def test_failed_login_logs_correctly():
    """failed_login emits the FAILED_LOGIN marker with a masked email."""
    with patch.object(security_log.logger, "info") as mock_info:
        security_log.failed_login("192.168.1.100", "johndoe@example.com", "BAD_CREDENTIALS", 3)

        mock_info.assert_called_once()
        call_args = mock_info.call_args[0][0]

        assert "FAILED_LOGIN]" in call_args
        assert "ip=192.168.1.100" in call_args
        assert "email=jo***@example.com" in call_args
        assert "johndoe" not in call_args
        assert "remaining=3" in call_args


def test_account_locked_is_a_warning():
    with patch.object(security_log.logger, "warning") as mock_warning:
        security_log.account_locked("10.0.0.1", "a@b.com", 60000, 1)

        call_args = mock_warning.call_args[0][0]
        assert "ACCOUNT_LOCKED]" in call_args
        assert "duration_ms=60000" in call_args
        assert "cycle=1" in call_args


def test_failed_login_sanitizes_ip():
    """Newlines and markup in user-controlled fields must not forge log lines."""
    with patch.object(security_log.logger, "info") as mock_info:
        security_log.failed_login(
            "192.168.1.100\n<script>alert(1)</script>", "x@y.z", "BAD_CREDENTIALS", 4
        )

        call_args = mock_info.call_args[0][0]
        assert "\n" not in call_args
        assert "<script>" not in call_args


def test_login_success_logs_method():
    with patch.object(security_log.logger, "info") as mock_info:
        security_log.login_success(ip="192.168.1.100", user_id="user-123", method="password+totp")

        call_args = mock_info.call_args[0][0]
        assert "LOGIN_SUCCESS]" in call_args
        assert "user_id=user-123" in call_args
        assert "method=password+totp" in call_args


def test_backup_code_used_reports_remaining():
    with patch.object(security_log.logger, "warning") as mock_warning:
        security_log.backup_code_used("user-1", 9)

        call_args = mock_warning.call_args[0][0]
        assert "BACKUP_CODE_USED]" in call_args
        assert "remaining=9" in call_args


def test_mask_email_handles_missing_and_short_values():
    assert mask_email(None) == "unknown"
    assert mask_email("not-an-email") == "not-an-email"
    assert mask_email("ab@example.com") == "a***@example.com"
    assert mask_email("johndoe@example.com") == "jo***@example.com"


def test_sanitize_truncates():
    assert len(sanitize("x" * 1000)) <= 255
