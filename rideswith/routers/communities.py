import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..database import get_db
from ..deps import get_current_user
from ..models import Brand, Ride, User
from ..schemas import CommunityCreate, CommunityUpdate
from ..serializers import brand_dict, chapter_summary, member_dict, user_summary
from ..services import cleanup
from ..services.brand_assets import apply_brand_assets, clean_domain, fetch_brand_assets, is_valid_domain
from ..utils import generate_brand_slug, is_reserved_slug, unique_suffix

router = APIRouter()
logger = logging.getLogger(__name__)

COMMUNITY_TYPES = ("BRAND", "CLUB", "TEAM", "GROUP")


def _get_brand(db: Session, slug: str) -> Brand:
    brand = db.query(Brand).filter(Brand.slug == slug).first()
    if not brand:
        raise HTTPException(status_code=404, detail="Community not found")
    return brand


def _require_creator(brand: Brand, user: User, action: str):
    if brand.created_by_id != user.id:
        raise HTTPException(status_code=403, detail=f"You don't have permission to {action} this community")


def _upcoming_ride_counts(db: Session, chapter_ids):
    if not chapter_ids:
        return {}
    rows = (
        db.query(Ride.chapter_id, func.count(Ride.id))
        .filter(
            Ride.chapter_id.in_(chapter_ids),
            Ride.status == "PUBLISHED",
            Ride.date >= datetime.utcnow(),
        )
        .group_by(Ride.chapter_id)
        .all()
    )
    return dict(rows)


@router.get("/communities")
def list_communities(db: Session = Depends(get_db)):
    brands = db.query(Brand).order_by(Brand.name).all()
    results = []
    for brand in brands:
        data = brand_dict(brand)
        data["chapters"] = [chapter_summary(c) for c in brand.chapters]
        data["chapterCount"] = len(brand.chapters)
        results.append(data)
    return results


@router.post("/communities", status_code=201)
async def create_community(
    body: CommunityCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    name = (body.name or "").strip()
    if len(name) < 2:
        raise HTTPException(status_code=400, detail="Community name must be at least 2 characters")

    slug = generate_brand_slug(name) or "community"
    if is_reserved_slug(slug):
        # Keep clear of app routes
        slug = f"{slug}-community"
    if db.query(Brand).filter(Brand.slug == slug).first():
        slug = f"{slug}-{unique_suffix()}"

    domain = (body.domain or "").strip() or None
    assets = None
    if domain and is_valid_domain(domain):
        domain = clean_domain(domain)
        assets = await fetch_brand_assets(domain)

    brand = Brand(
        name=name,
        slug=slug,
        type=body.type if body.type in COMMUNITY_TYPES else "BRAND",
        discipline=body.discipline or None,
        domain=domain,
        created_by_id=user.id,
    )
    if assets:
        apply_brand_assets(brand, assets)

    db.add(brand)
    db.commit()
    db.refresh(brand)
    logger.info(f"Community {brand.slug} created by user {user.id}")

    return brand_dict(brand)


@router.get("/communities/backdrops")
def list_backdrops(db: Session = Depends(get_db)):
    brands = (
        db.query(Brand)
        .filter(Brand.backdrop.isnot(None), Brand.backdrop != "")
        .order_by(Brand.created_at.desc())
        .all()
    )
    return [{"name": b.name, "slug": b.slug, "backdrop": b.backdrop} for b in brands]


@router.get("/communities/{slug}")
def get_community(slug: str, db: Session = Depends(get_db)):
    brand = _get_brand(db, slug)
    upcoming = _upcoming_ride_counts(db, [c.id for c in brand.chapters])

    data = brand_dict(brand)
    data["createdBy"] = user_summary(brand.created_by)
    data["chapters"] = []
    for chapter in brand.chapters:
        item = chapter_summary(chapter)
        item["members"] = [member_dict(m) for m in chapter.members]
        item["upcomingRideCount"] = upcoming.get(chapter.id, 0)
        data["chapters"].append(item)
    return data


@router.put("/communities/{slug}")
async def update_community(
    slug: str,
    body: CommunityUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    brand = _get_brand(db, slug)
    _require_creator(brand, user, "edit")

    if body.refresh_branding and brand.domain:
        assets = await fetch_brand_assets(brand.domain)
        if assets:
            apply_brand_assets(brand, assets)
            db.commit()
            db.refresh(brand)
            return brand_dict(brand)

    fields = body.model_dump(exclude_unset=True)
    fields.pop("refresh_branding", None)

    if fields.get("name"):
        brand.name = fields["name"].strip()
    if "description" in fields:
        brand.description = fields["description"]
    if fields.get("domain"):
        if not is_valid_domain(fields["domain"]):
            raise HTTPException(status_code=400, detail="Invalid domain format")
        brand.domain = clean_domain(fields["domain"])
    if fields.get("type") in COMMUNITY_TYPES:
        brand.type = fields["type"]

    # Empty strings clear these
    for name in ("logo", "backdrop", "primary_color", "instagram", "twitter",
                 "facebook", "strava", "youtube", "sponsor_label"):
        if name in fields:
            setattr(brand, name, fields[name] or None)

    db.commit()
    db.refresh(brand)
    return brand_dict(brand)


@router.delete("/communities/{slug}")
def delete_community(
    slug: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    brand = _get_brand(db, slug)
    _require_creator(brand, user, "delete")

    cleanup.delete_community(db, brand)
    db.commit()
    logger.info(f"Community {slug} deleted by user {user.id}")

    return {"success": True}
