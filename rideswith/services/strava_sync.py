"""
Strava club event sync.

Mirrors the upcoming events of a chapter's Strava club into chapter rides. Each
synced event keeps an md5 of its content so unchanged events are skipped on the
next run.
"""
import asyncio
import hashlib
import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models import Chapter, Ride, StravaConnection, StravaSyncedEvent, User
from ..utils import isoformat, pace_category, parse_datetime
from . import strava
from .organizers import get_or_create_organizer

logger = logging.getLogger(__name__)

# Strava skill level -> rough speed band in kph
SKILL_LEVEL_PACE = {
    1: (15, 22),  # casual
    2: (22, 28),  # moderate
    3: (28, 35),  # fast
    4: (35, 45),  # race
}

DEFAULT_LOCATION_NAME = "See Strava event for details"


@dataclass
class _ChapterLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    holders: int = 0


# Dropped once no sync for the chapter is running or waiting
_sync_locks: Dict[str, _ChapterLock] = {}


@dataclass
class SyncResult:
    success: bool = False
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def hash_event_data(event: Dict[str, Any]) -> str:
    data = {
        "title": event.get("title"),
        "description": event.get("description"),
        "address": event.get("address"),
        "start_latlng": event.get("start_latlng"),
        "upcoming_occurrences": event.get("upcoming_occurrences"),
    }
    return hashlib.md5(json.dumps(data, sort_keys=True, separators=(",", ":")).encode()).hexdigest()


def _next_event_date(event: Dict[str, Any], now: datetime) -> Optional[datetime]:
    for occurrence in event.get("upcoming_occurrences") or []:
        try:
            date = parse_datetime(occurrence)
        except ValueError:
            continue
        if date and date > now:
            return date

    try:
        fallback = parse_datetime(event.get("start_date_local"))
    except ValueError:
        fallback = None
    if fallback and fallback > now:
        return fallback
    return None


def map_event_to_ride(
    event: Dict[str, Any],
    chapter_id: str,
    organizer_id: str,
    club_id: str,
    now: Optional[datetime] = None,
) -> Optional[Dict[str, Any]]:
    """Ride column values for a Strava event, or None when it has no future date."""
    now = now or datetime.utcnow()
    event_date = _next_event_date(event, now)
    if event_date is None:
        logger.info(f"Skipping event \"{event.get('title')}\" - no future date found")
        return None

    latlng = event.get("start_latlng") or []
    latitude = latlng[0] if len(latlng) > 0 and latlng[0] is not None else 0
    longitude = latlng[1] if len(latlng) > 1 and latlng[1] is not None else 0

    pace_min, pace_max = SKILL_LEVEL_PACE.get(event.get("skill_level"), (None, None))
    address = event.get("address") or ""

    return {
        "title": event.get("title") or "Strava group ride",
        "description": event.get("description") or None,
        "date": event_date,
        "timezone": "UTC",
        "location_name": address or DEFAULT_LOCATION_NAME,
        "location_address": address,
        "latitude": latitude,
        "longitude": longitude,
        "pace": pace_category(pace_min) if pace_min is not None else "MODERATE",
        "pace_min": pace_min,
        "pace_max": pace_max,
        "status": "PUBLISHED",
        "organizer_id": organizer_id,
        "chapter_id": chapter_id,
        "strava_event_url": strava.strava_event_url(club_id, event.get("id")),
    }


UPDATABLE_FIELDS = (
    "title", "description", "date", "location_name", "location_address",
    "latitude", "longitude", "pace", "pace_min", "pace_max", "strava_event_url",
)


async def _refresh_tokens(db: Session, connection: StravaConnection) -> str:
    access_token, refreshed, new_tokens = await strava.get_valid_access_token(connection)
    if refreshed and new_tokens:
        connection.access_token = new_tokens.access_token
        connection.refresh_token = new_tokens.refresh_token
        connection.expires_at = new_tokens.expires_at
        db.commit()
        logger.info(f"Refreshed Strava tokens for chapter {connection.chapter_id}")
    return access_token


def _create_ride(db, ride_data, chapter_id, organizer, event_id, event_hash) -> None:
    ride = Ride(**ride_data)
    db.add(ride)
    db.flush()
    db.add(StravaSyncedEvent(
        chapter_id=chapter_id,
        ride_id=ride.id,
        strava_event_id=event_id,
        strava_event_hash=event_hash,
    ))
    db.query(Chapter).filter(Chapter.id == chapter_id).update(
        {Chapter.ride_count: Chapter.ride_count + 1}, synchronize_session=False
    )
    organizer.ride_count = (organizer.ride_count or 0) + 1
    db.commit()


def _update_ride(db, ride, synced, ride_data, event_hash) -> None:
    for name in UPDATABLE_FIELDS:
        setattr(ride, name, ride_data[name])
    synced.strava_event_hash = event_hash
    synced.synced_at = datetime.utcnow()
    db.commit()


async def sync_strava_events(db: Session, chapter_id: str) -> SyncResult:
    entry = _sync_locks.setdefault(chapter_id, _ChapterLock())
    entry.holders += 1
    try:
        async with entry.lock:
            return await _sync(db, chapter_id)
    finally:
        entry.holders -= 1
        if entry.holders == 0:
            _sync_locks.pop(chapter_id, None)


async def _sync(db: Session, chapter_id: str) -> SyncResult:
    result = SyncResult()

    connection = db.query(StravaConnection).filter(StravaConnection.chapter_id == chapter_id).first()
    if not connection:
        result.errors.append("No Strava connection found for this chapter")
        return result

    try:
        access_token = await _refresh_tokens(db, connection)
        club_id = connection.strava_club_id
        events = await strava.get_club_events(club_id, access_token)
        logger.info(f"[Strava Sync] Fetched {len(events)} events from club {club_id}")

        user = db.query(User).filter(User.id == connection.user_id).first()
        organizer = get_or_create_organizer(db, user, fallback_name="Strava Sync")
        db.commit()

        synced_by_event_id = {
            s.strava_event_id: s
            for s in db.query(StravaSyncedEvent).filter(StravaSyncedEvent.chapter_id == chapter_id)
        }

        for event in events:
            event_id = str(event.get("id"))
            title = event.get("title")

            if event.get("private"):
                result.skipped += 1
                continue

            event_hash = hash_event_data(event)
            synced = synced_by_event_id.get(event_id)
            ride = db.get(Ride, synced.ride_id) if synced else None

            if synced and ride and synced.strava_event_hash == event_hash:
                result.skipped += 1
                continue

            ride_data = map_event_to_ride(event, chapter_id, organizer.id, club_id)
            if ride_data is None:
                result.skipped += 1
                continue

            try:
                if synced and ride:
                    _update_ride(db, ride, synced, ride_data, event_hash)
                    result.updated += 1
                else:
                    if synced:
                        # The ride was deleted locally; start over
                        db.delete(synced)
                    _create_ride(db, ride_data, chapter_id, organizer, event_id, event_hash)
                    result.created += 1
            except Exception as e:
                db.rollback()
                action = "update" if synced and ride else "create"
                logger.error(f"Failed to {action} ride for Strava event {event_id}: {e}")
                result.errors.append(f"Failed to {action} event {title}")

        connection.last_sync_at = datetime.utcnow()
        connection.last_sync_error = "; ".join(result.errors) if result.errors else None
        db.commit()

        result.success = not result.errors
        logger.info(
            f"[Strava Sync] chapter={chapter_id} created={result.created} "
            f"updated={result.updated} skipped={result.skipped} errors={len(result.errors)}"
        )
        return result
    except Exception as e:
        logger.exception(f"Strava sync failed for chapter {chapter_id}")
        db.rollback()
        result.errors.append(str(e) or "Sync failed")
        try:
            db.query(StravaConnection).filter(StravaConnection.chapter_id == chapter_id).update(
                {"last_sync_at": datetime.utcnow(), "last_sync_error": "; ".join(result.errors)},
                synchronize_session=False,
            )
            db.commit()
        except Exception as update_error:
            db.rollback()
            logger.error(f"Could not record sync error for chapter {chapter_id}: {update_error}")
        return result


def strava_sync_status(db: Session, chapter_id: str) -> Optional[Dict[str, Any]]:
    connection = db.query(StravaConnection).filter(StravaConnection.chapter_id == chapter_id).first()
    if not connection:
        return None

    synced_count = (
        db.query(func.count(StravaSyncedEvent.id))
        .filter(StravaSyncedEvent.chapter_id == chapter_id)
        .scalar()
    )

    return {
        "connected": True,
        "clubId": connection.strava_club_id or None,
        "clubName": connection.strava_club_name,
        "autoSync": connection.auto_sync,
        "lastSyncAt": isoformat(connection.last_sync_at),
        "lastSyncError": connection.last_sync_error,
        "syncedRideCount": synced_count,
        "connectedBy": connection.user.name or connection.user.email if connection.user else None,
    }
