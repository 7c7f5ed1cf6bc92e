"""
Signed tokens. Sessions and magic links are both HS256 JWTs; a magic link
carries a ``purpose`` claim so it can never be used as a session.
"""
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from .config import settings

SIGNIN_PURPOSE = "signin"
SESSION_COOKIE = "session_token"


def _encode(claims: Dict[str, Any], lifetime: timedelta) -> str:
    payload = dict(claims, exp=datetime.utcnow() + lifetime)
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def _decode(token: str) -> Optional[Dict[str, Any]]:
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    lifetime = expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    return _encode(data, lifetime)


def decode_access_token(token: str) -> Optional[dict]:
    """Claims of a valid token, or None if it is malformed, forged or expired."""
    return _decode(token)


def create_signin_token(email: str) -> str:
    return _encode(
        {"sub": email, "purpose": SIGNIN_PURPOSE},
        timedelta(minutes=settings.SIGNIN_TOKEN_EXPIRE_MINUTES),
    )


def decode_signin_token(token: str) -> Optional[str]:
    payload = _decode(token)
    if not payload or payload.get("purpose") != SIGNIN_PURPOSE:
        return None
    return payload.get("sub")
