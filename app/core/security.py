"""Credential hashing, OTP generation and permission-scoped JWTs."""

import base64
import hashlib
import secrets
from datetime import datetime, timedelta, UTC
from typing import Iterable

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from app.config import settings
from app.core.exceptions import TokenExpiredException, TokenInvalidException
from app.models.permission import Permission, parse_permissions

OTP_MIN = 100000
OTP_MAX = 999999


def _prehash(secret: str) -> bytes:
    """SHA-256 pre-hash to avoid bcrypt's 72-byte truncation."""
    return base64.b64encode(hashlib.sha256(secret.encode("utf-8")).digest())


def get_password_hash(secret: str) -> str:
    """Return a salted bcrypt hash of a password, join secret or OTP."""
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(_prehash(secret), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if plain matches hashed."""
    try:
        return bool(bcrypt.checkpw(_prehash(plain), hashed.encode("utf-8")))
    except (ValueError, TypeError):
        return False


def generate_otp() -> tuple[str, str]:
    """
    Generate a 6-digit one-time code.

    Returns:
        (code, code_hash). Only the hash may be persisted.
    """
    code = str(OTP_MIN + secrets.randbelow(OTP_MAX - OTP_MIN + 1))
    return code, get_password_hash(code)


def create_access_token(
    user_id: int, group_id: int, permissions: Iterable[str | Permission]
) -> str:
    """
    Issue a JWT scoped to a single group.

    The token carries the user's permissions in ``group_id`` only, never the
    union across all of the user's groups.

    Raises:
        ValueError: If a permission is not a known Permission value
    """
    now = datetime.now(UTC)
    payload = {
        "sub": str(user_id),
        "group_id": group_id,
        "permissions": [p.value for p in parse_permissions(permissions)],
        "iat": now,
        "exp": now + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    """
    Decode and validate a group-scoped JWT.

    Returns:
        Payload with ``sub`` and ``group_id`` as ints and ``permissions`` as a
        frozenset of Permission.

    Raises:
        TokenExpiredException: If the token is past its expiry
        TokenInvalidException: For any other decoding or claim error
    """
    try:
        payload = jwt.decode(
            token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM]
        )
    except ExpiredSignatureError:
        raise TokenExpiredException("Your session has expired; please login again.")
    except JWTError as e:
        raise TokenInvalidException(f"Invalid token: {str(e)}")

    if payload.get("exp") is None:
        raise TokenInvalidException("Token missing expiration")

    try:
        return {
            "sub": int(payload["sub"]),
            "group_id": int(payload["group_id"]),
            "permissions": frozenset(parse_permissions(payload.get("permissions", []))),
        }
    except (KeyError, TypeError, ValueError):
        raise TokenInvalidException("Token missing or has malformed claims")
