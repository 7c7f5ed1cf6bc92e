import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..deps import get_current_user
from ..models import Ride, RidePhoto, User
from ..schemas import PhotoCreate
from ..serializers import photo_dict
from ..services.organizers import user_manages_organizer
from ..services.uploads import UploadError, delete_image, thumbnail_url

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/rides/{ride_id}/photos")
def list_photos(ride_id: str, db: Session = Depends(get_db)):
    photos = (
        db.query(RidePhoto)
        .filter(RidePhoto.ride_id == ride_id)
        .order_by(RidePhoto.created_at.desc())
        .all()
    )
    return [photo_dict(p) for p in photos]


@router.post("/rides/{ride_id}/photos", status_code=201)
def add_photo(
    ride_id: str,
    body: PhotoCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not body.public_id or not body.url:
        raise HTTPException(status_code=400, detail="publicId and url are required")

    ride = db.get(Ride, ride_id)
    if not ride:
        raise HTTPException(status_code=404, detail="Ride not found")

    photo = RidePhoto(
        ride_id=ride.id,
        user_id=user.id,
        public_id=body.public_id,
        url=body.url,
        thumbnail_url=thumbnail_url(body.public_id),
        width=body.width,
        height=body.height,
        caption=(body.caption or "").strip() or None,
    )
    db.add(photo)
    db.commit()
    db.refresh(photo)
    logger.info(f"User {user.id} added photo {photo.id} to ride {ride.id}")

    return photo_dict(photo)


@router.delete("/rides/{ride_id}/photos")
async def delete_photo(
    ride_id: str,
    photo_id: str = Query(None, alias="photoId"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not photo_id:
        raise HTTPException(status_code=400, detail="Photo ID is required")

    photo = db.get(RidePhoto, photo_id)
    if not photo or photo.ride_id != ride_id:
        raise HTTPException(status_code=404, detail="Photo not found")

    ride = db.get(Ride, ride_id)
    # Uploaders and the ride's organizer admins can delete
    if photo.user_id != user.id and not user_manages_organizer(db, ride.organizer_id, user.id):
        raise HTTPException(status_code=403, detail="Forbidden")

    try:
        await delete_image(photo.public_id)
    except UploadError as e:
        logger.warning(f"Could not delete image {photo.public_id} from storage: {e}")

    db.delete(photo)
    db.commit()
    return {"success": True}
