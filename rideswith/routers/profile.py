import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ..database import get_db
from ..deps import get_current_user
from ..models import User, UserNotificationSettings
from ..schemas import NotificationSettingsUpdate, ProfileUpdate
from ..serializers import notification_settings, public_profile, user_profile, user_summary
from ..utils import RESERVED_USER_SLUGS, USER_SLUG_RE, is_valid_user_slug

router = APIRouter()
logger = logging.getLogger(__name__)


def _clean(value: Optional[str]) -> Optional[str]:
    return value.strip() or None if value else None


@router.get("/profile")
def get_profile(user: User = Depends(get_current_user)):
    return user_profile(user)


@router.put("/profile")
def update_profile(
    body: ProfileUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    slug = _clean(body.slug)
    if slug:
        if not USER_SLUG_RE.match(slug):
            raise HTTPException(
                status_code=400,
                detail="Username can only contain lowercase letters, numbers, and hyphens",
            )
        if len(slug) < 3 or len(slug) > 30:
            raise HTTPException(status_code=400, detail="Username must be between 3 and 30 characters")
        if slug in RESERVED_USER_SLUGS:
            raise HTTPException(status_code=400, detail="This username is reserved")

        existing = db.query(User).filter(User.slug == slug).first()
        if existing and existing.id != user.id:
            raise HTTPException(status_code=400, detail="This username is already taken")

    user.name = _clean(body.name)
    user.slug = slug
    user.bio = _clean(body.bio)
    user.location = _clean(body.location)
    user.instagram = _clean(body.instagram)
    user.strava = _clean(body.strava)
    db.commit()
    db.refresh(user)

    return user_profile(user)


@router.get("/profile/check-slug")
def check_slug(
    slug: Optional[str] = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not slug:
        return {"available": False, "valid": False}

    if not is_valid_user_slug(slug):
        return {"available": False, "valid": False}

    if slug in RESERVED_USER_SLUGS:
        return {"available": False, "valid": True}

    existing = db.query(User).filter(User.slug == slug).first()
    return {"available": existing is None or existing.id == user.id, "valid": True}


@router.get("/users/search")
def search_users(
    q: Optional[str] = Query(None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = (q or "").strip()
    if len(query) < 2:
        return {"users": []}

    pattern = f"%{query.lower()}%"
    users = (
        db.query(User)
        .filter(or_(func.lower(User.name).like(pattern), func.lower(User.email).like(pattern)))
        .order_by(User.name)
        .limit(10)
        .all()
    )

    results = []
    for found in users:
        data = user_summary(found)
        data["email"] = found.email
        results.append(data)
    return {"users": results}


@router.get("/users/{slug}")
def get_public_profile(slug: str, db: Session = Depends(get_db)):
    found = db.query(User).filter(User.slug == slug).first()
    if not found:
        raise HTTPException(status_code=404, detail="User not found")
    return public_profile(found)


def _get_or_create_settings(db: Session, user: User) -> UserNotificationSettings:
    prefs = db.query(UserNotificationSettings).filter(UserNotificationSettings.user_id == user.id).first()
    if not prefs:
        prefs = UserNotificationSettings(user_id=user.id)
        db.add(prefs)
        db.commit()
        db.refresh(prefs)
    return prefs


@router.get("/notifications/settings")
def get_notification_settings(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return notification_settings(_get_or_create_settings(db, user))


@router.put("/notifications/settings")
def update_notification_settings(
    body: NotificationSettingsUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    prefs = _get_or_create_settings(db, user)
    for name, value in body.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(prefs, name, value)
    db.commit()
    db.refresh(prefs)
    return notification_settings(prefs)
