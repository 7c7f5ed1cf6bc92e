"""
Brand asset lookup (logo, colors, fonts) by domain through brand.dev.
"""
import logging
import re
from typing import Any, Dict, Optional

import httpx

from ..config import settings

logger = logging.getLogger(__name__)

BRAND_DEV_API_URL = "https://api.brand.dev/v1"

# Brand.dev fields copied onto a community
ASSET_FIELDS = (
    "logo", "logo_icon", "primary_color", "secondary_color",
    "backdrop", "slogan", "description",
)

DOMAIN_RE = re.compile(r"^(?:[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?\.)+[a-z]{2,}$", re.IGNORECASE)


def clean_domain(domain: str) -> str:
    domain = re.sub(r"^https?://", "", domain.strip())
    domain = re.sub(r"^www\.", "", domain)
    return re.sub(r"/$", "", domain).lower()


def is_valid_domain(domain: Optional[str]) -> bool:
    if not domain:
        return False
    return bool(DOMAIN_RE.match(clean_domain(domain)))


def _http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=10.0)


async def fetch_brand_assets(domain: str) -> Optional[Dict[str, Any]]:
    """
    Look up a domain's brand assets. Returns None when no API key is configured,
    the brand is unknown, or the lookup fails.
    """
    if not settings.BRAND_DEV_API_KEY:
        logger.warning("BRAND_DEV_API_KEY not configured, skipping brand lookup")
        return None

    domain = clean_domain(domain)
    try:
        async with _http_client() as client:
            response = await client.get(
                f"{BRAND_DEV_API_URL}/brand/{domain}",
                headers={"Authorization": f"Bearer {settings.BRAND_DEV_API_KEY}"},
            )

        if response.status_code == 404:
            logger.info(f"Brand not found for domain: {domain}")
            return None
        response.raise_for_status()

        data = response.json()
        logo = data.get("logo") or {}
        colors = data.get("colors") or {}
        return {
            "name": data.get("name"),
            "logo": logo.get("url"),
            "logo_icon": logo.get("icon"),
            "backdrop": data.get("backdrop"),
            "primary_color": colors.get("primary"),
            "secondary_color": colors.get("secondary"),
            "fonts": data.get("fonts"),
            "description": data.get("description"),
            "slogan": data.get("slogan"),
        }
    except Exception as e:
        logger.error(f"Error fetching brand assets for {domain}: {e}")
        return None


def apply_brand_assets(brand, assets: Dict[str, Any]) -> None:
    """Copy looked-up assets onto a community, keeping current values for gaps."""
    for field in ASSET_FIELDS:
        if assets.get(field):
            setattr(brand, field, assets[field])
    if assets.get("fonts"):
        brand.fonts = assets["fonts"]
