import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..config import settings
from ..database import get_db
from ..deps import get_current_user
from ..models import PushSubscription, User, UserNotificationSettings
from ..schemas import PushSubscribe

router = APIRouter(prefix="/push")
logger = logging.getLogger(__name__)


@router.get("/public-key")
def public_key():
    return {"publicKey": settings.VAPID_PUBLIC_KEY or None}


@router.post("/subscribe")
def subscribe(
    body: PushSubscribe,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    keys = body.keys or {}
    if not body.endpoint or not keys.get("p256dh") or not keys.get("auth"):
        raise HTTPException(status_code=400, detail="Invalid subscription data")

    subscription = db.query(PushSubscription).filter(PushSubscription.endpoint == body.endpoint).first()
    if subscription and subscription.user_id != user.id:
        raise HTTPException(status_code=409, detail="Subscription conflict")

    if subscription:
        subscription.p256dh = keys["p256dh"]
        subscription.auth = keys["auth"]
    else:
        subscription = PushSubscription(
            user_id=user.id,
            endpoint=body.endpoint,
            p256dh=keys["p256dh"],
            auth=keys["auth"],
        )
        db.add(subscription)

    if not db.query(UserNotificationSettings).filter(UserNotificationSettings.user_id == user.id).first():
        db.add(UserNotificationSettings(user_id=user.id))

    db.commit()
    db.refresh(subscription)
    logger.info(f"User {user.id} subscribed to push notifications")
    return {"success": True, "id": subscription.id}


@router.delete("/subscribe")
def unsubscribe(
    endpoint: str = Query(None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = db.query(PushSubscription).filter(PushSubscription.user_id == user.id)
    if endpoint:
        query = query.filter(PushSubscription.endpoint == endpoint)
    query.delete(synchronize_session=False)
    db.commit()
    return {"success": True}
