from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import jwt

from breakfast_api.core.config import settings


def create_token(subject: str, expires_minutes: int, token_type: str = "access", role: Optional[str] = None) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    payload: dict[str, Any] = {
        "sub": subject,
        "type": token_type,
        "exp": expire,
        "iat": datetime.now(timezone.utc),
    }
    if role:
        payload["role"] = role
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def create_access_token(user_id: int, role: Optional[str] = None) -> str:
    return create_token(str(user_id), settings.access_token_expire_minutes, token_type="access", role=role)


def decode_token(token: str) -> Optional[dict[str, Any]]:
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except jwt.PyJWTError:
        return None


def user_id_from_token(token: Optional[str]) -> Optional[int]:
    """Return the subject of a valid access token, or None."""
    if not token:
        return None
    payload = decode_token(token)
    if not payload or payload.get("type") != "access":
        return None
    try:
        return int(payload.get("sub"))
    except (TypeError, ValueError):
        return None
