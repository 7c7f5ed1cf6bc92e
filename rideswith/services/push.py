"""
Web push notifications. Routes queue the ``*_notice`` jobs as background tasks;
each job opens its own session since the request's is closed by then.
"""
import json
import logging
from typing import Any, Dict, List

from pywebpush import WebPushException, webpush
from sqlalchemy.orm import Session

from ..config import settings
from ..database import session_scope
from ..models import Chapter, Follow, PushSubscription, Ride, Rsvp, UserNotificationSettings

logger = logging.getLogger(__name__)

DEFAULT_ICON = "/icon-192.png"

UPDATE_MESSAGES = {
    "time": "Time has been updated",
    "location": "Location has been updated",
    "cancelled": "This ride has been cancelled",
}

# The push service no longer knows the subscription
GONE_STATUSES = (404, 410)


def push_configured() -> bool:
    return bool(settings.VAPID_PUBLIC_KEY and settings.VAPID_PRIVATE_KEY)


def _prefs_by_user(db: Session, user_ids: List[str]) -> Dict[str, UserNotificationSettings]:
    if not user_ids:
        return {}
    rows = db.query(UserNotificationSettings).filter(UserNotificationSettings.user_id.in_(user_ids)).all()
    return {p.user_id: p for p in rows}


def send_push_to_user(db: Session, user_id: str, payload: Dict[str, Any]) -> int:
    """Send to every subscription the user has. Returns how many were delivered."""
    prefs = _prefs_by_user(db, [user_id]).get(user_id)
    if prefs and not prefs.push_enabled:
        return 0

    message = json.dumps(dict(
        payload,
        icon=payload.get("icon") or DEFAULT_ICON,
        badge=payload.get("badge") or DEFAULT_ICON,
    ))
    sent = 0
    for sub in db.query(PushSubscription).filter(PushSubscription.user_id == user_id).all():
        try:
            webpush(
                subscription_info={"endpoint": sub.endpoint, "keys": {"p256dh": sub.p256dh, "auth": sub.auth}},
                data=message,
                vapid_private_key=settings.VAPID_PRIVATE_KEY,
                vapid_claims={"sub": settings.VAPID_EMAIL},
            )
            sent += 1
        except WebPushException as e:
            status = e.response.status_code if e.response is not None else None
            if status in GONE_STATUSES:
                logger.info(f"Removing expired push subscription {sub.id} for user {user_id}")
                db.delete(sub)
            else:
                logger.warning(f"Push to user {user_id} failed: {e}")
    db.commit()
    return sent


def send_push_to_users(db: Session, user_ids: List[str], payload: Dict[str, Any]) -> int:
    return sum(send_push_to_user(db, user_id, payload) for user_id in user_ids)


def new_ride_payload(ride: Ride) -> Dict[str, Any]:
    chapter = ride.chapter
    when = f"{ride.date:%a, %b} {ride.date.day}"
    return {
        "title": f"New Ride: {ride.title}",
        "body": f"{chapter.brand.name} {chapter.name} - {when}",
        "url": f"/rides/{ride.id}",
        "tag": f"new-ride-{ride.id}",
    }


def new_ride_recipients(db: Session, chapter_id: str, creator_id: str) -> List[str]:
    """Chapter followers who want new-ride notices, minus the creator."""
    user_ids = [
        uid for (uid,) in db.query(Follow.user_id).filter(Follow.chapter_id == chapter_id)
        if uid != creator_id
    ]
    prefs = _prefs_by_user(db, user_ids)
    return [uid for uid in user_ids if uid not in prefs or prefs[uid].new_ride_notifications]


def ride_update_payload(ride: Ride, change: str) -> Dict[str, Any]:
    return {
        "title": f"Ride Update: {ride.title}",
        "body": UPDATE_MESSAGES[change],
        "url": f"/rides/{ride.id}",
        "tag": f"ride-update-{ride.id}",
    }


def ride_update_recipients(db: Session, ride_id: str, actor_id: str) -> List[str]:
    """Riders going or maybe going who want update notices, minus whoever made the change."""
    user_ids = [
        uid for (uid,) in db.query(Rsvp.user_id)
        .filter(Rsvp.ride_id == ride_id, Rsvp.status.in_(("GOING", "MAYBE")))
        if uid != actor_id
    ]
    prefs = _prefs_by_user(db, user_ids)
    return [uid for uid in user_ids if uid not in prefs or prefs[uid].ride_update_notifications]


def send_new_ride_notice(ride_id: str, creator_id: str) -> None:
    with session_scope() as db:
        ride = db.get(Ride, ride_id)
        if not ride or not ride.chapter_id or not db.get(Chapter, ride.chapter_id):
            return
        recipients = new_ride_recipients(db, ride.chapter_id, creator_id)
        sent = send_push_to_users(db, recipients, new_ride_payload(ride))
        logger.info(f"New ride {ride_id}: notified {len(recipients)} followers, {sent} pushes delivered")


def send_ride_update_notice(user_ids: List[str], payload: Dict[str, Any]) -> None:
    """Recipients and payload are captured by the caller, so this also works for deleted rides."""
    with session_scope() as db:
        sent = send_push_to_users(db, user_ids, payload)
        logger.info(f"{payload['title']}: notified {len(user_ids)} riders, {sent} pushes delivered")
