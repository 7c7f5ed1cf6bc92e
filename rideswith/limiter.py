from slowapi import Limiter
from slowapi.util import get_remote_address

from .security import SESSION_COOKIE, decode_access_token


def user_or_ip(request) -> str:
    """Rate-limit key: the signed-in user when there is one, else the client address."""
    token = request.cookies.get(SESSION_COOKIE)
    if token:
        payload = decode_access_token(token)
        if payload and payload.get("sub"):
            return f"user:{payload['sub']}"
    return get_remote_address(request)


limiter = Limiter(key_func=user_or_ip)
