"""
Manual cascading deletes. Foreign keys are not declared ON DELETE CASCADE, so
dependants are removed here before their parents.
"""
import logging
from typing import List

from sqlalchemy.orm import Session

from ..models import (
    Brand,
    Chapter,
    ChapterMember,
    Follow,
    Ride,
    RideComment,
    RidePhoto,
    RideRoute,
    Rsvp,
    Sponsor,
    StravaConnection,
    StravaSyncedEvent,
)

logger = logging.getLogger(__name__)


def delete_chapters(db: Session, chapter_ids: List[str]) -> None:
    """Delete chapters and their dependants. Rides survive, detached from the chapter."""
    if not chapter_ids:
        return

    db.query(Sponsor).filter(Sponsor.chapter_id.in_(chapter_ids)).delete(synchronize_session=False)
    db.query(ChapterMember).filter(ChapterMember.chapter_id.in_(chapter_ids)).delete(synchronize_session=False)
    db.query(Follow).filter(Follow.chapter_id.in_(chapter_ids)).delete(synchronize_session=False)
    db.query(StravaConnection).filter(StravaConnection.chapter_id.in_(chapter_ids)).delete(
        synchronize_session=False
    )
    db.query(StravaSyncedEvent).filter(StravaSyncedEvent.chapter_id.in_(chapter_ids)).delete(
        synchronize_session=False
    )
    db.query(Ride).filter(Ride.chapter_id.in_(chapter_ids)).update(
        {Ride.chapter_id: None}, synchronize_session=False
    )
    db.query(Chapter).filter(Chapter.id.in_(chapter_ids)).delete(synchronize_session=False)
    logger.info(f"Deleted {len(chapter_ids)} chapters and their members, sponsors and follows")


def delete_community(db: Session, brand: Brand) -> None:
    """Delete a community, its chapters, its own sponsors and its follows."""
    chapter_ids = [chapter_id for (chapter_id,) in db.query(Chapter.id).filter(Chapter.brand_id == brand.id)]
    delete_chapters(db, chapter_ids)
    db.query(Sponsor).filter(Sponsor.brand_id == brand.id).delete(synchronize_session=False)
    db.query(Follow).filter(Follow.brand_id == brand.id).delete(synchronize_session=False)
    db.delete(brand)


def delete_rides(db: Session, ride_ids: List[str]) -> int:
    """Delete rides with everything hanging off them. Returns the number of rides deleted."""
    if not ride_ids:
        return 0

    db.query(Rsvp).filter(Rsvp.ride_id.in_(ride_ids)).delete(synchronize_session=False)
    db.query(RideComment).filter(RideComment.ride_id.in_(ride_ids)).delete(synchronize_session=False)
    db.query(RidePhoto).filter(RidePhoto.ride_id.in_(ride_ids)).delete(synchronize_session=False)
    db.query(RideRoute).filter(RideRoute.ride_id.in_(ride_ids)).delete(synchronize_session=False)
    db.query(StravaSyncedEvent).filter(StravaSyncedEvent.ride_id.in_(ride_ids)).delete(
        synchronize_session=False
    )
    return db.query(Ride).filter(Ride.id.in_(ride_ids)).delete(synchronize_session=False)
