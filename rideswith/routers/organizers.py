import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..database import get_db
from ..deps import get_current_user
from ..models import Organizer, OrganizerMember, User
from ..schemas import OrganizerCreate
from ..serializers import organizer_dict
from ..utils import paginate, slugify

router = APIRouter()
logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def _unique_slug(db: Session, name: str) -> str:
    base = slugify(name) or "organizer"
    slug, n = base, 0
    while db.query(Organizer).filter(Organizer.slug == slug).first():
        n += 1
        slug = f"{base}-{n}"
    return slug


@router.get("/organizers")
def list_organizers(
    search: str = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1),
    db: Session = Depends(get_db),
):
    limit = min(limit, MAX_PAGE_SIZE)
    query = db.query(Organizer)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(Organizer.name.ilike(pattern), Organizer.description.ilike(pattern)))

    total = query.count()
    organizers = query.order_by(Organizer.name).offset((page - 1) * limit).limit(limit).all()
    return {
        "data": [organizer_dict(o) for o in organizers],
        "pagination": paginate(page, limit, total),
    }


@router.post("/organizers", status_code=201)
def create_organizer(
    body: OrganizerCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    name = (body.name or "").strip()
    if not name:
        raise HTTPException(status_code=400, detail="Name is required")

    organizer = Organizer(
        name=name,
        slug=_unique_slug(db, name),
        description=body.description,
        logo_url=body.logo_url,
        cover_url=body.cover_url,
        website=body.website,
        primary_color=body.primary_color,
        secondary_color=body.secondary_color,
    )
    organizer.members.append(OrganizerMember(user_id=user.id, role="OWNER"))
    db.add(organizer)
    db.commit()
    db.refresh(organizer)
    logger.info(f"Organizer {organizer.slug} created by user {user.id}")

    return organizer_dict(organizer)
