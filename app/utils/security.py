"""
Eswatini MSME Registry - Security Utilities

Password hashing, JWT token management, OTP and reset-token helpers.
"""

import hashlib
import hmac
import secrets
from datetime import timedelta
from typing import Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from app.config import settings
from app.utils.clock import utcnow


# Password hashing context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Verify a plain password against a hashed password."""
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password for storing."""
    return pwd_context.hash(password)


def create_access_token(
    data: dict,
    expires_delta: Optional[timedelta] = None
) -> str:
    """
    Create a JWT access token.

    Args:
        data: Dictionary containing token payload
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string
    """
    to_encode = data.copy()

    if expires_delta:
        expire = utcnow() + expires_delta
    else:
        expire = utcnow() + timedelta(
            minutes=settings.access_token_expire_minutes
        )

    to_encode.update({"exp": expire, "type": "access"})

    return jwt.encode(
        to_encode,
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm
    )


def decode_token(token: str) -> Optional[dict]:
    """
    Decode and verify a JWT token.

    Returns:
        Token payload dict or None if invalid
    """
    try:
        return jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm]
        )
    except JWTError:
        return None


def verify_access_token(token: str) -> Optional[dict]:
    """Verify an access token and return payload, or None if invalid."""
    payload = decode_token(token)
    if payload and payload.get("type") == "access":
        return payload
    return None


# ===========================================
# ONE-TIME CODES
# ===========================================

def generate_otp(length: int = 6) -> str:
    """Cryptographically random numeric code without a leading zero."""
    low = 10 ** (length - 1)
    return str(low + secrets.randbelow(9 * low))


def generate_reset_token() -> str:
    """32 random bytes, hex-encoded (64 characters)."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """SHA-256 digest stored in place of the raw reset token."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def constant_time_equals(left: Optional[str], right: Optional[str]) -> bool:
    if left is None or right is None:
        return False
    return hmac.compare_digest(left.encode("utf-8"), right.encode("utf-8"))
