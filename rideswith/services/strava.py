"""
Strava OAuth 2.0 flow and API client used by the club event sync.
"""
import base64
import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlencode

import httpx

from ..config import settings

logger = logging.getLogger(__name__)

STRAVA_AUTH_URL = "https://www.strava.com/oauth/authorize"
STRAVA_TOKEN_URL = "https://www.strava.com/oauth/token"
STRAVA_API_BASE_URL = "https://www.strava.com/api/v3"

# Reading club events needs read_all
STRAVA_SCOPES = "read,read_all"

TOKEN_EXPIRY_BUFFER = timedelta(minutes=5)
STATE_MAX_AGE_SECONDS = 10 * 60


class StravaError(Exception):
    """Strava rejected a request or is not configured."""


@dataclass
class StravaTokens:
    access_token: str
    refresh_token: str
    expires_at: datetime


def _http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=10.0)


def _require_credentials():
    if not settings.STRAVA_CLIENT_ID or not settings.STRAVA_CLIENT_SECRET:
        raise StravaError("Strava credentials not configured")


def authorization_url(state: str) -> str:
    if not settings.STRAVA_CLIENT_ID:
        raise StravaError("STRAVA_CLIENT_ID is not configured")

    params = {
        "client_id": settings.STRAVA_CLIENT_ID,
        "redirect_uri": settings.STRAVA_REDIRECT_URI,
        "response_type": "code",
        "scope": STRAVA_SCOPES,
        "state": state,
        "approval_prompt": "auto",
    }
    return f"{STRAVA_AUTH_URL}?{urlencode(params)}"


def encode_state(chapter_id: str, user_id: str, timestamp: Optional[float] = None) -> str:
    payload = {
        "chapterId": chapter_id,
        "userId": user_id,
        "timestamp": int((timestamp if timestamp is not None else time.time()) * 1000),
    }
    return base64.urlsafe_b64encode(json.dumps(payload).encode()).decode().rstrip("=")


def decode_state(state: str) -> Dict[str, Any]:
    """Raises ValueError when the state is not ours."""
    padded = state + "=" * (-len(state) % 4)
    try:
        data = json.loads(base64.urlsafe_b64decode(padded.encode()).decode())
    except (ValueError, UnicodeDecodeError) as e:
        raise ValueError("invalid_state") from e
    if not isinstance(data, dict) or not data.keys() >= {"chapterId", "userId", "timestamp"}:
        raise ValueError("invalid_state")
    return data


def state_is_expired(state_data: Dict[str, Any], now: Optional[float] = None) -> bool:
    now_ms = (now if now is not None else time.time()) * 1000
    return now_ms - state_data["timestamp"] > STATE_MAX_AGE_SECONDS * 1000


def _tokens_from_response(data: Dict[str, Any]) -> StravaTokens:
    return StravaTokens(
        access_token=data["access_token"],
        refresh_token=data["refresh_token"],
        expires_at=datetime.fromtimestamp(data["expires_at"], tz=timezone.utc).replace(tzinfo=None),
    )


async def _token_request(payload: Dict[str, str], failure: str) -> StravaTokens:
    _require_credentials()
    body = {
        "client_id": settings.STRAVA_CLIENT_ID,
        "client_secret": settings.STRAVA_CLIENT_SECRET,
        **payload,
    }
    async with _http_client() as client:
        response = await client.post(STRAVA_TOKEN_URL, json=body)

    if response.status_code != 200:
        logger.error(f"{failure}: {response.status_code} {response.text[:200]}")
        raise StravaError(failure)

    return _tokens_from_response(response.json())


async def exchange_code_for_tokens(code: str) -> StravaTokens:
    return await _token_request(
        {"code": code, "grant_type": "authorization_code"},
        "Failed to exchange code for tokens",
    )


async def refresh_access_token(refresh_token: str) -> StravaTokens:
    return await _token_request(
        {"refresh_token": refresh_token, "grant_type": "refresh_token"},
        "Failed to refresh access token",
    )


def is_token_expired(expires_at: datetime) -> bool:
    return datetime.utcnow() > expires_at - TOKEN_EXPIRY_BUFFER


async def get_valid_access_token(connection) -> Tuple[str, bool, Optional[StravaTokens]]:
    """
    Return ``(access_token, refreshed, new_tokens)`` for a stored connection.
    The caller persists ``new_tokens`` when ``refreshed`` is true.
    """
    if not is_token_expired(connection.expires_at):
        return connection.access_token, False, None

    new_tokens = await refresh_access_token(connection.refresh_token)
    return new_tokens.access_token, True, new_tokens


async def strava_api_get(endpoint: str, access_token: str) -> Any:
    url = endpoint if endpoint.startswith("http") else f"{STRAVA_API_BASE_URL}{endpoint}"
    async with _http_client() as client:
        response = await client.get(url, headers={"Authorization": f"Bearer {access_token}"})

    if response.status_code >= 400:
        logger.error(f"Strava API error ({endpoint}): {response.status_code} {response.text[:200]}")
        raise StravaError(f"Strava API error: {response.status_code}")

    return response.json()


async def get_athlete_clubs(access_token: str) -> List[Dict[str, Any]]:
    return await strava_api_get("/athlete/clubs", access_token)


async def get_club_events(club_id: str, access_token: str) -> List[Dict[str, Any]]:
    return await strava_api_get(f"/clubs/{club_id}/group_events", access_token)


def strava_event_url(club_id: str, event_id) -> str:
    return f"https://www.strava.com/clubs/{club_id}/group_events/{event_id}"
