# account_security/core/security.py
"""
Hashing, encryption and token primitives.

Everything here is a thin wrapper around a library: password hashing comes from
fastapi-users' PasswordHelper, secret encryption from cryptography's Fernet and
session tokens from python-jose.
"""

import base64
import hashlib
import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from cryptography.fernet import Fernet, InvalidToken
from fastapi_users.password import PasswordHelper
from jose import JWTError, jwt

from account_security.core.config import settings

logger = logging.getLogger(__name__)

SESSION_TOKEN_AUDIENCE = "account-security:session"

# --- Password Hashing ---
password_helper = PasswordHelper()

# Compared against when an account does not exist, so the unknown-email path
# costs the same as a wrong password.
_DUMMY_PASSWORD_HASH = password_helper.hash("dummy-password-for-timing")


def get_password_hash(password: str) -> str:
    """Hashes a password using the configured password helper."""
    return password_helper.hash(password)


def verify_password(plain_password: str, hashed_password: str | None) -> bool:
    """Verifies a plain password against a hashed password."""
    if not hashed_password:
        password_helper.verify_and_update(plain_password, _DUMMY_PASSWORD_HASH)
        return False
    verified, _ = password_helper.verify_and_update(plain_password, hashed_password)
    return verified


# --- Secret Encryption ---
def _fernet() -> Fernet:
    material = settings.TWO_FACTOR_ENCRYPTION_KEY or settings.SECRET_KEY
    derived = base64.urlsafe_b64encode(hashlib.sha256(material.encode("utf-8")).digest())
    return Fernet(derived)


def encrypt_value(value: str) -> str:
    """Encrypt a string for storage."""
    return _fernet().encrypt(value.encode("utf-8")).decode("utf-8")


def decrypt_value(token: str) -> str:
    """Decrypt a value produced by encrypt_value. Raises ValueError on tampering or key change."""
    try:
        return _fernet().decrypt(token.encode("utf-8")).decode("utf-8")
    except InvalidToken as e:
        raise ValueError("Stored secret could not be decrypted") from e


# --- Session Tokens ---
def create_session_token(user_id: str, session_id: str) -> str:
    """Issue the JWT the outer cookie/bearer mechanism carries for a session record."""
    expire = datetime.now(UTC) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    payload = {
        "sub": user_id,
        "sid": session_id,
        "aud": SESSION_TOKEN_AUDIENCE,
        "exp": expire,
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_session_token(token: str) -> dict[str, Any] | None:
    """Return the token claims, or None when the token is invalid or expired."""
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
            audience=SESSION_TOKEN_AUDIENCE,
        )
    except JWTError:
        return None
    if not payload.get("sub") or not payload.get("sid"):
        return None
    return payload
