import logging

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile

from ..config import settings
from ..deps import get_current_user
from ..models import User
from ..services.brand_assets import fetch_brand_assets
from ..services.uploads import UploadError, upload_image

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/brandfetch")
async def brandfetch(domain: str = Query(None)):
    if not domain:
        raise HTTPException(status_code=400, detail="Domain parameter is required")

    assets = await fetch_brand_assets(domain)
    if not assets:
        raise HTTPException(status_code=404, detail="Could not fetch brand assets for this domain")

    return {
        "name": assets["name"],
        "logo": assets["logo"],
        "logoIcon": assets["logo_icon"],
        "backdrop": assets["backdrop"],
        "primaryColor": assets["primary_color"],
        "secondaryColor": assets["secondary_color"],
        "description": assets["description"],
        "slogan": assets["slogan"],
    }


@router.post("/upload")
async def upload(file: UploadFile = File(...), user: User = Depends(get_current_user)):
    if file.content_type not in settings.allowed_image_types:
        raise HTTPException(status_code=400, detail="Only JPEG, PNG and WebP images are allowed")

    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="File is empty")
    if len(content) > settings.MAX_UPLOAD_MB * 1024 * 1024:
        raise HTTPException(status_code=400, detail=f"File must be smaller than {settings.MAX_UPLOAD_MB}MB")

    try:
        result = await upload_image(content, file.filename or "upload", file.content_type)
    except UploadError as e:
        raise HTTPException(status_code=502, detail=str(e))

    logger.info(f"User {user.id} uploaded {result['publicId']}")
    return result
