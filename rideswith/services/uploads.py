import hashlib
import logging
import time
from typing import Any, Dict

import httpx

from ..config import settings

logger = logging.getLogger(__name__)

CLOUDINARY_API_URL = "https://api.cloudinary.com/v1_1"
CLOUDINARY_DELIVERY_URL = "https://res.cloudinary.com"
UPLOAD_FOLDER = "rideswith"


class UploadError(Exception):
    """Image storage is not configured or rejected the upload."""


def _http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=30.0)


async def upload_image(content: bytes, filename: str, content_type: str) -> Dict[str, Any]:
    """Unsigned upload to Cloudinary using the configured upload preset."""
    if not settings.CLOUDINARY_CLOUD_NAME or not settings.CLOUDINARY_UPLOAD_PRESET:
        raise UploadError("Image uploads are not configured")

    url = f"{CLOUDINARY_API_URL}/{settings.CLOUDINARY_CLOUD_NAME}/image/upload"
    try:
        async with _http_client() as client:
            response = await client.post(
                url,
                data={"upload_preset": settings.CLOUDINARY_UPLOAD_PRESET, "folder": UPLOAD_FOLDER},
                files={"file": (filename, content, content_type)},
            )
    except httpx.RequestError as e:
        logger.error(f"Cloudinary upload request failed: {e}")
        raise UploadError("Failed to upload image") from e

    if response.status_code != 200:
        logger.error(f"Cloudinary upload failed: {response.status_code} {response.text[:200]}")
        raise UploadError("Failed to upload image")

    data = response.json()
    return {
        "url": data["secure_url"],
        "publicId": data.get("public_id"),
        "width": data.get("width"),
        "height": data.get("height"),
    }


def image_url(public_id: str, width: int = None, height: int = None) -> str:
    """Delivery URL with automatic quality and format, cropped when a size is given."""
    transformations = ["q_auto", "f_auto"]
    if width:
        transformations.append(f"w_{width}")
    if height:
        transformations.append(f"h_{height}")
    if width or height:
        transformations.append("c_fill")
    return (
        f"{CLOUDINARY_DELIVERY_URL}/{settings.CLOUDINARY_CLOUD_NAME}/image/upload/"
        f"{','.join(transformations)}/{public_id}"
    )


def thumbnail_url(public_id: str) -> str:
    return image_url(public_id, width=400, height=300)


def sign_params(params: Dict[str, Any], api_secret: str) -> str:
    """Cloudinary request signature: sha1 of the sorted params followed by the secret."""
    to_sign = "&".join(f"{key}={params[key]}" for key in sorted(params))
    return hashlib.sha1(f"{to_sign}{api_secret}".encode()).hexdigest()


async def delete_image(public_id: str) -> None:
    if not settings.CLOUDINARY_API_KEY or not settings.CLOUDINARY_API_SECRET:
        raise UploadError("Image deletion is not configured")

    params = {"public_id": public_id, "timestamp": int(time.time())}
    data = dict(
        params,
        api_key=settings.CLOUDINARY_API_KEY,
        signature=sign_params(params, settings.CLOUDINARY_API_SECRET),
    )
    url = f"{CLOUDINARY_API_URL}/{settings.CLOUDINARY_CLOUD_NAME}/image/destroy"
    try:
        async with _http_client() as client:
            response = await client.post(url, data=data)
    except httpx.RequestError as e:
        raise UploadError(f"Failed to delete image: {e}") from e

    if response.status_code != 200:
        raise UploadError(f"Failed to delete image: {response.status_code}")
    logger.info(f"Deleted image {public_id}: {response.json().get('result')}")
