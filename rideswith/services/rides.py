import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models import Chapter, Organizer, Ride, Rsvp, User, new_id
from ..serializers import ride_summary
from .recurrence import expand_recurrence

logger = logging.getLogger(__name__)


def going_counts(db: Session, ride_ids: List[str]) -> Dict[str, int]:
    if not ride_ids:
        return {}
    rows = (
        db.query(Rsvp.ride_id, func.count(Rsvp.id))
        .filter(Rsvp.ride_id.in_(ride_ids), Rsvp.status == "GOING")
        .group_by(Rsvp.ride_id)
        .all()
    )
    return dict(rows)


def serialize_rides(db: Session, rides: List[Ride]) -> List[Dict[str, Any]]:
    counts = going_counts(db, [r.id for r in rides])
    return [ride_summary(r, counts.get(r.id, 0)) for r in rides]


def create_rides(
    db: Session,
    user: User,
    organizer: Organizer,
    values: Dict[str, Any],
    chapter: Optional[Chapter] = None,
    recurrence_pattern: Optional[str] = None,
    recurrence_end=None,
) -> List[Ride]:
    """
    Insert one ride, or one ride per occurrence when a recurrence is given.

    Every ride in a series shares a series id and the first is the template.
    The creator is RSVPed as going to the first ride only. Nothing is committed.
    """
    start: datetime = values["date"]
    end_time: Optional[datetime] = values.get("end_time")
    duration = end_time - start if end_time else None

    if recurrence_pattern:
        dates = expand_recurrence(start, recurrence_pattern, recurrence_end)
        series_id = new_id()
    else:
        dates = [start]
        series_id = None

    rides = []
    for index, date in enumerate(dates):
        ride = Ride(**values)
        ride.date = date
        ride.end_time = date + duration if duration is not None else None
        ride.organizer_id = organizer.id
        ride.chapter_id = chapter.id if chapter else None
        if series_id:
            ride.recurrence_pattern = recurrence_pattern.upper()
            ride.recurrence_series_id = series_id
            ride.recurrence_end_date = dates[-1] if recurrence_end is None else _as_datetime(recurrence_end)
            ride.is_recurring_template = index == 0
        db.add(ride)
        rides.append(ride)

    db.flush()
    db.add(Rsvp(ride_id=rides[0].id, user_id=user.id, status="GOING"))

    organizer.ride_count = (organizer.ride_count or 0) + len(rides)
    if chapter:
        chapter.ride_count = (chapter.ride_count or 0) + len(rides)

    if series_id:
        logger.info(f"Created recurring series {series_id} with {len(rides)} rides for user {user.id}")
    return rides


def _as_datetime(value) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, datetime.min.time())
