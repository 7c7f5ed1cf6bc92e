import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..database import get_db
from ..deps import get_current_user
from ..models import Brand, Chapter, ChapterMember, Ride, User
from ..roles import CHAPTER_ROLES, get_membership, is_admin, is_owner, normalize_role
from ..schemas import ChapterCreate, ChapterUpdate, MemberAdd, MemberRoleUpdate
from ..serializers import chapter_dict, member_dict
from ..services.cleanup import delete_chapters
from ..services.rides import serialize_rides
from ..utils import slugify

router = APIRouter()
logger = logging.getLogger(__name__)

UPCOMING_RIDES_LIMIT = 10
PAST_RIDES_LIMIT = 20

# Sort order for member lists: owners first
ROLE_RANK = {"OWNER": 0, "ADMIN": 1, "MODERATOR": 2}


def _get_chapter(db: Session, chapter_id: str) -> Chapter:
    chapter = db.get(Chapter, chapter_id)
    if not chapter:
        raise HTTPException(status_code=404, detail="Chapter not found")
    return chapter


def _owner_count(db: Session, chapter_id: str) -> int:
    return (
        db.query(func.count(ChapterMember.id))
        .filter(ChapterMember.chapter_id == chapter_id, ChapterMember.role.in_(("OWNER", "LEAD")))
        .scalar()
    )


def _sorted_members(chapter: Chapter):
    return sorted(
        chapter.members,
        key=lambda m: (ROLE_RANK[normalize_role(m.role)], m.joined_at or datetime.min),
    )


@router.get("/chapters")
def list_chapters(brand: str = Query(None), db: Session = Depends(get_db)):
    query = db.query(Chapter).join(Brand, Brand.id == Chapter.brand_id)
    if brand:
        query = query.filter(Brand.slug == brand)
    chapters = query.order_by(Brand.name, Chapter.name).all()
    return [chapter_dict(c) for c in chapters]


@router.post("/chapters", status_code=201)
def create_chapter(
    body: ChapterCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not body.brand_id:
        raise HTTPException(status_code=400, detail="Brand ID is required")

    name = (body.name or "").strip()
    city = (body.city or "").strip()
    if len(name) < 2:
        raise HTTPException(status_code=400, detail="Chapter name must be at least 2 characters")
    if len(city) < 2:
        raise HTTPException(status_code=400, detail="City must be at least 2 characters")

    brand = db.get(Brand, body.brand_id)
    if not brand:
        raise HTTPException(status_code=404, detail="Community not found")

    slug = slugify(city)
    existing = db.query(Chapter).filter(Chapter.brand_id == brand.id, Chapter.slug == slug).first()
    if existing:
        raise HTTPException(status_code=400, detail="A chapter already exists for this city")

    chapter = Chapter(brand_id=brand.id, name=name, slug=slug, city=city, member_count=1)
    chapter.members.append(ChapterMember(user_id=user.id, role="OWNER"))
    db.add(chapter)
    db.commit()
    db.refresh(chapter)
    logger.info(f"Chapter {brand.slug}/{chapter.slug} created by user {user.id}")

    return chapter_dict(chapter)


@router.get("/chapters/{chapter_id}")
def get_chapter(
    chapter_id: str,
    include_past_rides: bool = Query(False, alias="includePastRides"),
    db: Session = Depends(get_db),
):
    chapter = _get_chapter(db, chapter_id)
    now = datetime.utcnow()

    upcoming = (
        db.query(Ride)
        .filter(Ride.chapter_id == chapter.id, Ride.status == "PUBLISHED", Ride.date >= now)
        .order_by(Ride.date)
        .limit(UPCOMING_RIDES_LIMIT)
        .all()
    )
    past = []
    if include_past_rides:
        past = (
            db.query(Ride)
            .filter(Ride.chapter_id == chapter.id, Ride.status == "PUBLISHED", Ride.date < now)
            .order_by(Ride.date.desc())
            .limit(PAST_RIDES_LIMIT)
            .all()
        )

    data = chapter_dict(chapter, members=_sorted_members(chapter))
    data["rides"] = serialize_rides(db, upcoming)
    data["pastRides"] = serialize_rides(db, past)
    return data


@router.put("/chapters/{chapter_id}")
def update_chapter(
    chapter_id: str,
    body: ChapterUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    chapter = _get_chapter(db, chapter_id)
    membership = get_membership(db, chapter.id, user.id)
    if not membership or not is_admin(membership.role):
        raise HTTPException(status_code=403, detail="Only owners and admins can update chapter settings")

    fields = body.model_dump(exclude_unset=True)
    if fields.get("name"):
        chapter.name = fields["name"].strip()
    if fields.get("city"):
        chapter.city = fields["city"].strip()
    for name in ("custom_logo", "custom_colors", "sponsor_label"):
        if name in fields:
            setattr(chapter, name, fields[name])

    db.commit()
    db.refresh(chapter)
    return chapter_dict(chapter)


@router.delete("/chapters/{chapter_id}")
def delete_chapter(
    chapter_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    chapter = _get_chapter(db, chapter_id)
    membership = get_membership(db, chapter.id, user.id)
    is_brand_creator = chapter.brand.created_by_id == user.id
    if not is_brand_creator and not (membership and is_owner(membership.role)):
        raise HTTPException(status_code=403, detail="Only chapter owners can delete this chapter")

    delete_chapters(db, [chapter.id])
    db.commit()
    logger.info(f"Chapter {chapter_id} deleted by user {user.id}")
    return {"success": True}


@router.post("/chapters/{chapter_id}/members", status_code=201)
def add_member(
    chapter_id: str,
    body: MemberAdd,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    chapter = _get_chapter(db, chapter_id)
    if not body.user_id:
        raise HTTPException(status_code=400, detail="User ID is required")

    current = get_membership(db, chapter.id, user.id)
    if not current or not is_admin(current.role):
        raise HTTPException(status_code=403, detail="Only owners and admins can add members")

    if get_membership(db, chapter.id, body.user_id):
        raise HTTPException(status_code=400, detail="User is already a member of this chapter")

    if body.role not in CHAPTER_ROLES:
        raise HTTPException(status_code=400, detail="Invalid role")

    if not is_owner(current.role) and body.role in ("OWNER", "ADMIN"):
        raise HTTPException(status_code=403, detail="Admins can only add moderators")

    if not db.get(User, body.user_id):
        raise HTTPException(status_code=404, detail="User not found")

    member = ChapterMember(chapter_id=chapter.id, user_id=body.user_id, role=body.role)
    db.add(member)
    chapter.member_count = (chapter.member_count or 0) + 1
    db.commit()
    db.refresh(member)

    return member_dict(member)


@router.patch("/chapters/{chapter_id}/members")
def update_member_role(
    chapter_id: str,
    body: MemberRoleUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    chapter = _get_chapter(db, chapter_id)
    if not body.user_id or not body.role:
        raise HTTPException(status_code=400, detail="User ID and role are required")
    if body.role not in CHAPTER_ROLES:
        raise HTTPException(status_code=400, detail="Invalid role")

    current = get_membership(db, chapter.id, user.id)
    if not current or not is_admin(current.role):
        raise HTTPException(status_code=403, detail="Only owners and admins can update roles")

    target = get_membership(db, chapter.id, body.user_id)
    if not target:
        raise HTTPException(status_code=404, detail="Member not found")

    if not is_owner(current.role) and body.role in ("OWNER", "ADMIN"):
        raise HTTPException(status_code=403, detail="Only owners can promote to admin or owner")

    if is_owner(target.role) and body.role != "OWNER" and _owner_count(db, chapter.id) <= 1:
        raise HTTPException(status_code=400, detail="Cannot demote the last owner")

    target.role = body.role
    db.commit()
    db.refresh(target)
    return member_dict(target)


@router.delete("/chapters/{chapter_id}/members")
def remove_member(
    chapter_id: str,
    user_id: str = Query(None, alias="userId"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    chapter = _get_chapter(db, chapter_id)
    if not user_id:
        raise HTTPException(status_code=400, detail="User ID is required")

    current = get_membership(db, chapter.id, user.id)
    is_self = user_id == user.id
    if not is_self and (not current or not is_admin(current.role)):
        raise HTTPException(status_code=403, detail="Only owners and admins can remove members")

    target = get_membership(db, chapter.id, user_id)
    if not target:
        raise HTTPException(status_code=404, detail="Member not found")

    if is_owner(target.role) and _owner_count(db, chapter.id) <= 1:
        raise HTTPException(status_code=400, detail="Cannot remove the last owner. Transfer ownership first.")

    if not is_self and not is_owner(current.role) and is_admin(target.role):
        raise HTTPException(status_code=403, detail="Admins can only remove moderators")

    db.delete(target)
    chapter.member_count = max((chapter.member_count or 0) - 1, 0)
    db.commit()
    return {"success": True}

