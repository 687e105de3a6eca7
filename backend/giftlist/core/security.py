from datetime import datetime, timedelta, timezone
import logging
import secrets
from typing import Any
from uuid import uuid4

from jose import JWTError, jwt
from passlib.context import CryptContext

from giftlist.core.config import settings

_dev_logger = logging.getLogger("giftlist.security")
_insecure_keys = {"CHANGE_ME", "your-secret-key-here-change-in-production", "secret", "jwt_secret", "changeme", ""}

ADMIN_TOKEN_TYPE = "admin"

if not settings.jwt_secret_key or settings.jwt_secret_key in _insecure_keys or len(settings.jwt_secret_key) < 32:
    if settings.is_local:
        settings.jwt_secret_key = secrets.token_urlsafe(64)
        _dev_logger.warning("JWT_SECRET_KEY was missing/insecure; generated ephemeral key for local dev")
    else:
        raise RuntimeError("JWT_SECRET_KEY must be set to a secure value (32+ chars) in production")


pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_admin_password(password: str) -> bool:
    """Check a password against ADMIN_PASSWORD_HASH. False when password login is not configured."""
    if not settings.admin_password_hash:
        return False
    try:
        return pwd_context.verify(password, settings.admin_password_hash)
    except ValueError:
        _dev_logger.error("ADMIN_PASSWORD_HASH is not a valid bcrypt hash")
        return False


def generate_otp_token() -> str:
    return str(uuid4())


def create_admin_token(email: str, expires_delta_minutes: int | None = None) -> str:
    expire_minutes = expires_delta_minutes or settings.admin_token_expire_minutes
    expire = datetime.now(timezone.utc) + timedelta(minutes=expire_minutes)
    # 'type' keeps admin sessions apart from any other token signed with the same key
    to_encode: dict[str, Any] = {"sub": email, "exp": expire, "type": ADMIN_TOKEN_TYPE, "jti": str(uuid4())}
    return jwt.encode(
        to_encode,
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )


def _decode_token_raw(token: str) -> dict[str, Any] | None:
    try:
        return jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        return None


def decode_admin_token(token: str) -> str | None:
    """Return the admin email carried by a valid admin token, else None."""
    payload = _decode_token_raw(token)
    if not payload or payload.get("type") != ADMIN_TOKEN_TYPE:
        return None
    subject = payload.get("sub")
    return subject if isinstance(subject, str) and subject else None
