import math
import re
import time
from datetime import datetime, timezone
from typing import Optional

EARTH_RADIUS_KM = 6371

# App routes and common words that cannot be community vanity URLs
RESERVED_SLUGS = frozenset([
    "about", "admin", "api", "auth", "communities", "create", "discover",
    "organizers", "privacy", "profile", "rides", "settings", "terms", "u",
    "app", "help", "support", "contact", "blog", "news", "login", "signup",
    "register", "account", "dashboard", "home", "index", "static", "assets",
    "public", "images", "css", "js", "fonts", "_next",
    "events", "clubs", "teams", "groups", "brands", "chapters", "members",
    "users", "search", "explore", "notifications", "messages", "inbox", "feed",
    "backdrops",
])

RESERVED_USER_SLUGS = frozenset([
    "admin", "api", "auth", "settings", "profile", "discover", "create", "organizers", "rides",
])

USER_SLUG_RE = re.compile(r"^[a-z0-9-]+$")

PACE_CATEGORIES = {
    "CASUAL": (0, 20),
    "MODERATE": (20, 26),
    "FAST": (26, 32),
    "RACE": (32, 100),
}

# Checked in order; the first matching host fragment wins
ROUTE_PLATFORMS = (
    ("komoot.com", "Komoot"),
    ("ridewithgps.com", "RideWithGPS"),
    ("strava.com", "Strava"),
    ("garmin.com", "Garmin"),
    ("connect.garmin", "Garmin"),
    ("wahoo", "Wahoo"),
    ("mapmyride", "MapMyRide"),
)

def slugify(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", value.strip().lower()).strip("-")

def generate_brand_slug(name: str) -> str:
    return slugify(name)[:30].strip("-")

def is_reserved_slug(slug: str) -> bool:
    return slug.lower() in RESERVED_SLUGS

def is_valid_user_slug(slug: str) -> bool:
    return bool(USER_SLUG_RE.match(slug)) and 3 <= len(slug) <= 30

def base36(number: int) -> str:
    chars = "0123456789abcdefghijklmnopqrstuvwxyz"
    if number == 0:
        return "0"
    out = []
    while number:
        number, rem = divmod(number, 36)
        out.append(chars[rem])
    return "".join(reversed(out))

def unique_suffix() -> str:
    """Millisecond timestamp in base 36, used to de-duplicate slugs."""
    return base36(int(time.time() * 1000))

def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

def pace_category(kph: float) -> str:
    if kph < 20:
        return "CASUAL"
    if kph < 26:
        return "MODERATE"
    if kph < 32:
        return "FAST"
    return "RACE"

def parse_datetime(value) -> Optional[datetime]:
    """
    Parse an ISO 8601 string (or pass through a datetime) into a naive UTC datetime.
    Returns None for empty values; raises ValueError for garbage.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt

def isoformat(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    return dt.replace(tzinfo=timezone.utc).isoformat().replace("+00:00", "Z")

def detect_platform(url: str) -> str:
    lower = url.lower()
    for fragment, platform in ROUTE_PLATFORMS:
        if fragment in lower:
            return platform
    return "Other"

def paginate(page: int, limit: int, total: int) -> dict:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": math.ceil(total / limit) if limit else 0,
    }
