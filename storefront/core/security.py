"""
Password hashing and token handling.

Three JWT flavours are issued, distinguished by the ``type`` claim:

* ``access``   short-lived bearer token for API calls
* ``refresh``  long-lived token, signed with its own secret, exchanged for
  new access tokens
* ``verify``   email verification link token

Password reset tokens are random hex strings; only their SHA-256 digest is
stored.
"""
import hashlib
import re
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

import bcrypt
import jwt

from storefront.config import get_settings
from storefront.core.exceptions import AuthenticationError

ACCESS = "access"
REFRESH = "refresh"
VERIFY = "verify"

PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*\W).{8,64}$")
# bcrypt rejects longer input
PASSWORD_MAX_BYTES = 72
PASSWORD_RULE = (
    "Password must include at least 1 uppercase letter, 1 lowercase letter, "
    "1 number, and 1 special character, and be at most 72 bytes long."
)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash, or input bcrypt will not hash
        return False


def is_strong_password(password: str) -> bool:
    if not password or len(password.encode("utf-8")) > PASSWORD_MAX_BYTES:
        return False
    return bool(PASSWORD_PATTERN.match(password))


def _secret_for(token_type: str) -> str:
    settings = get_settings()
    return settings.refresh_token_secret if token_type == REFRESH else settings.jwt_secret


def _encode(
    user_id: uuid.UUID | str,
    token_type: str,
    lifetime: timedelta,
    extra: Optional[Dict[str, Any]] = None,
) -> str:
    now = datetime.now(timezone.utc)
    payload: Dict[str, Any] = {
        "sub": str(user_id),
        "type": token_type,
        "iat": now,
        "exp": now + lifetime,
        # Distinguishes tokens minted within the same second
        "jti": secrets.token_hex(8),
    }
    if extra:
        payload.update(extra)
    return jwt.encode(payload, _secret_for(token_type), algorithm=get_settings().jwt_algorithm)


def create_access_token(user_id: uuid.UUID | str) -> str:
    minutes = get_settings().access_token_expire_minutes
    return _encode(user_id, ACCESS, timedelta(minutes=minutes))


def create_refresh_token(user_id: uuid.UUID | str) -> str:
    days = get_settings().refresh_token_expire_days
    return _encode(user_id, REFRESH, timedelta(days=days))


def create_verification_token(
    user_id: uuid.UUID | str,
    email: Optional[str] = None,
    hours: Optional[int] = None,
) -> str:
    lifetime = timedelta(hours=hours or get_settings().verification_token_expire_hours)
    return _encode(user_id, VERIFY, lifetime, {"email": email} if email else None)


def decode_token(token: str, expected_type: str) -> Dict[str, Any]:
    """
    Verify a token's signature, expiry and type.

    Raises:
        AuthenticationError: If the token cannot be trusted
    """
    try:
        payload = jwt.decode(
            token,
            _secret_for(expected_type),
            algorithms=[get_settings().jwt_algorithm],
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid token")

    if payload.get("type") != expected_type or "sub" not in payload:
        raise AuthenticationError("Invalid token")
    return payload


def token_user_id(payload: Dict[str, Any]) -> uuid.UUID:
    try:
        return uuid.UUID(payload["sub"])
    except (KeyError, ValueError):
        raise AuthenticationError("Invalid token")


def hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_reset_token() -> Tuple[str, str]:
    """
    Create a password reset token.

    Returns:
        Tuple of (raw token for the email link, digest to store)
    """
    raw = secrets.token_hex(20)
    return raw, hash_reset_token(raw)
