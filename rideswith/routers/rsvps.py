import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..config import settings
from ..database import get_db
from ..deps import get_current_user
from ..limiter import limiter
from ..models import Follow, Ride, Rsvp, User, UserNotificationSettings
from ..schemas import RsvpUpsert
from ..serializers import rsvp_dict
from ..services.organizers import user_manages_organizer

router = APIRouter()
logger = logging.getLogger(__name__)

RSVP_STATUSES = ("GOING", "MAYBE", "NOT_GOING")


def _auto_follow_enabled(db: Session, user_id: str) -> bool:
    # No settings row means the defaults, which follow
    prefs = db.query(UserNotificationSettings).filter(UserNotificationSettings.user_id == user_id).first()
    return prefs is None or prefs.auto_follow_on_rsvp


def _follow_chapter(db: Session, user_id: str, chapter_id: str):
    existing = (
        db.query(Follow)
        .filter(Follow.user_id == user_id, Follow.chapter_id == chapter_id)
        .first()
    )
    if not existing:
        db.add(Follow(user_id=user_id, chapter_id=chapter_id))
        logger.info(f"User {user_id} auto-followed chapter {chapter_id}")


@router.get("/rsvps")
def list_rsvps(
    ride_id: str = Query(None, alias="rideId"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not ride_id:
        raise HTTPException(status_code=400, detail="rideId is required")

    ride = db.get(Ride, ride_id)
    if not ride:
        raise HTTPException(status_code=404, detail="Ride not found")

    show_email = user_manages_organizer(db, ride.organizer_id, user.id)
    rsvps = db.query(Rsvp).filter(Rsvp.ride_id == ride.id).order_by(Rsvp.created_at).all()
    return [rsvp_dict(r, show_email=show_email) for r in rsvps]


@router.post("/rsvps")
@limiter.limit(settings.RSVP_RATE_LIMIT)
def upsert_rsvp(
    request: Request,
    body: RsvpUpsert,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not body.ride_id:
        raise HTTPException(status_code=400, detail="rideId is required")
    if body.status not in RSVP_STATUSES:
        raise HTTPException(status_code=400, detail="Invalid status")

    ride = db.get(Ride, body.ride_id)
    if not ride:
        raise HTTPException(status_code=404, detail="Ride not found")
    if ride.status != "PUBLISHED":
        raise HTTPException(status_code=400, detail="Cannot RSVP to unpublished ride")

    rsvp = db.query(Rsvp).filter(Rsvp.ride_id == ride.id, Rsvp.user_id == user.id).first()

    # Capacity only applies to riders not already counted
    already_going = rsvp is not None and rsvp.status == "GOING"
    if body.status == "GOING" and ride.max_attendees and not already_going:
        going = (
            db.query(func.count(Rsvp.id))
            .filter(Rsvp.ride_id == ride.id, Rsvp.status == "GOING")
            .scalar()
        )
        if going >= ride.max_attendees:
            raise HTTPException(status_code=400, detail="Ride is at capacity")

    if rsvp:
        rsvp.status = body.status
    else:
        rsvp = Rsvp(ride_id=ride.id, user_id=user.id, status=body.status)
        db.add(rsvp)

    if body.status in ("GOING", "MAYBE") and ride.chapter_id and _auto_follow_enabled(db, user.id):
        _follow_chapter(db, user.id, ride.chapter_id)

    db.commit()
    db.refresh(rsvp)
    return rsvp_dict(rsvp, show_email=True)


@router.delete("/rsvps")
def delete_rsvp(
    ride_id: str = Query(None, alias="rideId"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not ride_id:
        raise HTTPException(status_code=400, detail="rideId is required")

    rsvp = db.query(Rsvp).filter(Rsvp.ride_id == ride_id, Rsvp.user_id == user.id).first()
    if not rsvp:
        raise HTTPException(status_code=404, detail="RSVP not found")

    db.delete(rsvp)
    db.commit()
    return {"success": True}
