import logging
from datetime import date, datetime, timedelta
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ..database import get_db
from ..deps import get_current_user
from ..models import Chapter, Ride, User
from ..roles import get_membership, is_moderator
from ..schemas import RideCreate, RideUpdate
from ..serializers import ride_detail, ride_summary
from ..services.cleanup import delete_rides
from ..services import push
from ..services.organizers import get_or_create_organizer, user_manages_organizer
from ..services.recurrence import PATTERNS
from ..services.rides import create_rides, going_counts, serialize_rides
from ..utils import PACE_CATEGORIES, haversine_km, parse_datetime

router = APIRouter()
logger = logging.getLogger(__name__)

LIST_LIMIT = 50
LATEST_DEFAULT_LIMIT = 6
LATEST_MAX_LIMIT = 50
PAST_LIMIT = 100
NEAR_RADIUS_KM = 50
NEAR_CANDIDATES = 100
DELETE_SCOPES = ("this", "following", "all")


def _get_ride(db: Session, ride_id: str) -> Ride:
    ride = db.get(Ride, ride_id)
    if not ride:
        raise HTTPException(status_code=404, detail="Ride not found")
    return ride


def _parse_end_date(value: Optional[str]):
    if not value:
        return None
    try:
        if len(value) == 10:
            return date.fromisoformat(value)
        return parse_datetime(value)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid recurrence end date")


def _validate_ride(body: RideCreate):
    if not body.title or not body.title.strip():
        raise HTTPException(status_code=400, detail="Title is required")
    if not body.date:
        raise HTTPException(status_code=400, detail="Date is required")
    if not body.location_name or body.latitude is None or body.longitude is None:
        raise HTTPException(status_code=400, detail="Location is required")


def _ride_values(body: RideCreate) -> dict:
    return {
        "title": body.title.strip(),
        "description": body.description or None,
        "date": parse_datetime(body.date),
        "end_time": parse_datetime(body.end_time),
        "timezone": body.timezone or "UTC",
        "location_name": body.location_name,
        "location_address": body.location_address or "",
        "latitude": body.latitude,
        "longitude": body.longitude,
        "distance": body.distance,
        "elevation": body.elevation,
        "pace_min": body.pace_min,
        "pace_max": body.pace_max,
        "terrain": body.terrain or None,
        "max_attendees": body.max_attendees,
        "route_url": body.route_url or None,
        "is_free": body.is_free is not False,
        "price": body.price,
    }


def _notable_changes(ride: Ride, values: dict) -> list:
    """Which changes riders are told about, given the values about to be applied."""
    changes = []
    if values["date"] != ride.date or values["end_time"] != ride.end_time:
        changes.append("time")
    location_fields = ("location_name", "location_address", "latitude", "longitude")
    if any(values[f] != getattr(ride, f) for f in location_fields):
        changes.append("location")
    return changes


def _queue_update_notice(
    background_tasks: BackgroundTasks, db: Session, ride: Ride, change: str, actor_id: str
):
    recipients = push.ride_update_recipients(db, ride.id, actor_id)
    if recipients:
        payload = push.ride_update_payload(ride, change)
        background_tasks.add_task(push.send_ride_update_notice, recipients, payload)


def _require_organizer_admin(db: Session, ride: Ride, user: User, action: str):
    if not user_manages_organizer(db, ride.organizer_id, user.id):
        raise HTTPException(status_code=403, detail=f"You do not have permission to {action} this ride")


@router.get("/rides")
def list_rides(
    pace: Optional[str] = None,
    lat: Optional[float] = None,
    lng: Optional[float] = None,
    radius: Optional[float] = None,
    db: Session = Depends(get_db),
):
    query = db.query(Ride).filter(Ride.status == "PUBLISHED", Ride.date >= datetime.utcnow())
    if pace and pace.upper() in PACE_CATEGORIES:
        query = query.filter(Ride.pace == pace.upper())
    rides = query.order_by(Ride.date).limit(LIST_LIMIT).all()

    if lat is not None and lng is not None and radius is not None:
        rides = [r for r in rides if haversine_km(lat, lng, r.latitude, r.longitude) <= radius]

    return serialize_rides(db, rides)


@router.post("/rides", status_code=201)
def create_ride(
    body: RideCreate,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _validate_ride(body)
    if not body.pace or body.pace.upper() not in PACE_CATEGORIES:
        raise HTTPException(status_code=400, detail="Valid pace is required")

    chapter = None
    if body.chapter_id:
        chapter = db.get(Chapter, body.chapter_id)
        if not chapter:
            raise HTTPException(status_code=404, detail="Chapter not found")
        membership = get_membership(db, chapter.id, user.id)
        if not membership or not is_moderator(membership.role):
            raise HTTPException(status_code=403, detail="You must be a chapter member to post rides for this chapter")

    pattern = (body.recurrence_pattern or "").upper() or None
    recurrence_end = None
    if pattern:
        if pattern not in PATTERNS:
            raise HTTPException(status_code=400, detail="Invalid recurrence pattern")
        recurrence_end = _parse_end_date(body.recurrence_end_date)
        if recurrence_end is None:
            raise HTTPException(status_code=400, detail="Recurrence end date is required")

    values = _ride_values(body)
    values["pace"] = body.pace.upper()
    values["currency"] = body.currency or "EUR"
    values["status"] = "PUBLISHED"

    organizer = get_or_create_organizer(db, user)
    try:
        rides = create_rides(db, user, organizer, values, chapter, pattern, recurrence_end)
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))
    db.commit()

    template = rides[0]
    db.refresh(template)
    if template.chapter_id and push.push_configured():
        background_tasks.add_task(push.send_new_ride_notice, template.id, user.id)

    data = ride_detail(template, attendee_count=1)
    data["seriesCount"] = len(rides)
    return data


@router.get("/rides/latest")
def latest_rides(
    filter_: str = Query("all", alias="filter"),
    lat: Optional[float] = None,
    lng: Optional[float] = None,
    limit: int = Query(LATEST_DEFAULT_LIMIT, ge=1, le=LATEST_MAX_LIMIT),
    db: Session = Depends(get_db),
):
    now = datetime.utcnow()
    query = db.query(Ride).filter(
        Ride.status == "PUBLISHED",
        # Only the template stands in for a recurring series
        or_(Ride.recurrence_series_id.is_(None), Ride.is_recurring_template.is_(True)),
    )

    if filter_ == "week":
        start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
        end_of_week = start_of_day + timedelta(days=8) - timedelta(microseconds=1)
        query = query.filter(Ride.date >= start_of_day, Ride.date <= end_of_week).order_by(Ride.date)
    else:
        query = query.filter(Ride.date >= now)
        if filter_ == "club":
            query = query.filter(Ride.chapter_id.isnot(None))
        query = query.order_by(Ride.created_at.desc())

    rides = query.limit(NEAR_CANDIDATES if filter_ == "near" else limit).all()

    distances = {}
    if filter_ == "near" and lat is not None and lng is not None:
        for ride in rides:
            distances[ride.id] = haversine_km(lat, lng, ride.latitude, ride.longitude)
        rides = sorted(
            (r for r in rides if distances[r.id] <= NEAR_RADIUS_KM),
            key=lambda r: distances[r.id],
        )[:limit]
    elif filter_ == "near":
        rides = rides[:limit]

    counts = going_counts(db, [r.id for r in rides])
    results = []
    for ride in rides:
        brand = ride.chapter.brand if ride.chapter else None
        summary = ride_summary(ride, counts.get(ride.id, 0))
        results.append({
            "id": ride.id,
            "title": ride.title,
            "date": summary["date"],
            "locationName": ride.location_name,
            "latitude": ride.latitude,
            "longitude": ride.longitude,
            "distance": ride.distance,
            "pace": ride.pace.lower(),
            "organizer": summary["organizer"],
            "attendeeCount": summary["attendeeCount"],
            "distanceFromUser": distances.get(ride.id),
            "brand": {
                "name": brand.name,
                "logo": brand.logo,
                "backdrop": brand.backdrop,
                "primaryColor": brand.primary_color,
            } if brand else None,
        })
    return results


@router.get("/rides/past")
def past_rides(db: Session = Depends(get_db)):
    rides = (
        db.query(Ride)
        .filter(Ride.date < datetime.utcnow())
        .order_by(Ride.date.desc())
        .limit(PAST_LIMIT)
        .all()
    )
    return serialize_rides(db, rides)


@router.get("/rides/series/{series_id}/count")
def series_count(series_id: str, date: Optional[str] = None, db: Session = Depends(get_db)):
    base = db.query(func.count(Ride.id)).filter(Ride.recurrence_series_id == series_id)
    total = base.scalar()

    following = total
    if date:
        try:
            since = parse_datetime(date)
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid date")
        following = base.filter(Ride.date >= since).scalar()

    return {"total": total, "following": following}


@router.get("/rides/{ride_id}")
def get_ride(ride_id: str, db: Session = Depends(get_db)):
    ride = _get_ride(db, ride_id)
    return ride_detail(ride, going_counts(db, [ride.id]).get(ride.id, 0))


@router.put("/rides/{ride_id}")
def update_ride(
    ride_id: str,
    body: RideUpdate,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ride = _get_ride(db, ride_id)
    _require_organizer_admin(db, ride, user, "edit")
    _validate_ride(body)

    values = _ride_values(body)
    values["timezone"] = body.timezone or ride.timezone
    if body.pace and body.pace.upper() in PACE_CATEGORIES:
        values["pace"] = body.pace.upper()
    changes = _notable_changes(ride, values)
    for name, value in values.items():
        setattr(ride, name, value)

    # Live location sharing
    going_live = body.is_live is True
    if going_live and not ride.is_live:
        ride.live_started_at = datetime.utcnow()
    elif body.is_live is False:
        ride.live_started_at = None
    ride.is_live = going_live
    ride.live_location_url = body.live_location_url or None

    db.commit()
    db.refresh(ride)
    if push.push_configured():
        for change in changes:
            _queue_update_notice(background_tasks, db, ride, change, user.id)
    return ride_detail(ride, going_counts(db, [ride.id]).get(ride.id, 0))


@router.delete("/rides/{ride_id}")
def delete_ride(
    ride_id: str,
    background_tasks: BackgroundTasks,
    scope: str = Query("this"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ride = _get_ride(db, ride_id)
    _require_organizer_admin(db, ride, user, "delete")
    if scope not in DELETE_SCOPES:
        raise HTTPException(status_code=400, detail="Invalid scope")

    if ride.recurrence_series_id and scope != "this":
        query = db.query(Ride.id).filter(Ride.recurrence_series_id == ride.recurrence_series_id)
        if scope == "following":
            query = query.filter(Ride.date >= ride.date)
        ride_ids = [rid for (rid,) in query]
    else:
        ride_ids = [ride.id]

    if push.push_configured() and ride.date >= datetime.utcnow():
        _queue_update_notice(background_tasks, db, ride, "cancelled", user.id)

    # A series never spans chapters or organizers
    organizer, chapter = ride.organizer, ride.chapter
    deleted = delete_rides(db, ride_ids)

    organizer.ride_count = max((organizer.ride_count or 0) - deleted, 0)
    if chapter:
        chapter.ride_count = max((chapter.ride_count or 0) - deleted, 0)
    db.commit()
    logger.info(f"Deleted {deleted} rides (scope={scope}) starting from {ride_id}")

    return {"success": True, "deletedCount": deleted}
