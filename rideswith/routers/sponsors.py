import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..database import get_db
from ..deps import get_current_user, get_optional_user
from ..models import Brand, Chapter, Sponsor, User
from ..roles import can_manage_chapter, can_manage_sponsors, is_platform_admin
from ..schemas import SponsorCreate, SponsorUpdate
from ..serializers import sponsor_dict
from ..services.brand_assets import fetch_brand_assets

router = APIRouter()
logger = logging.getLogger(__name__)

DEFAULT_SPONSOR_LABEL = "sponsors"


def _get_chapter(db: Session, slug: str, chapter_slug: str) -> Chapter:
    chapter = (
        db.query(Chapter)
        .join(Brand, Brand.id == Chapter.brand_id)
        .filter(Brand.slug == slug, Chapter.slug == chapter_slug)
        .first()
    )
    if not chapter:
        raise HTTPException(status_code=404, detail="Chapter not found")
    return chapter


def _get_sponsor(db: Session, chapter: Chapter, sponsor_id: str) -> Sponsor:
    sponsor = db.get(Sponsor, sponsor_id)
    if not sponsor or sponsor.chapter_id != chapter.id:
        raise HTTPException(status_code=404, detail="Sponsor not found")
    return sponsor


def _sponsors_enabled(chapter: Chapter) -> bool:
    if chapter.sponsors_enabled is not None:
        return chapter.sponsors_enabled
    return chapter.brand.sponsors_enabled


def _require_manager(db: Session, chapter: Chapter, user: User, action: str):
    if not (can_manage_chapter(db, user, chapter) or is_platform_admin(user)):
        raise HTTPException(status_code=403, detail=f"You don't have permission to {action} sponsors")


async def _new_sponsor(db: Session, body: SponsorCreate, siblings) -> Sponsor:
    """Validate the body and build an unsaved sponsor placed after ``siblings``."""
    name = (body.name or "").strip()
    if not name:
        raise HTTPException(status_code=400, detail="Sponsor name is required")
    if not body.website:
        raise HTTPException(status_code=400, detail="Website URL is required")

    assets = await fetch_brand_assets(body.domain) if body.domain else None
    assets = assets or {}

    if body.display_order is not None:
        display_order = body.display_order
    else:
        last_order = db.query(func.max(Sponsor.display_order)).filter(siblings).scalar()
        display_order = -1 if last_order is None else last_order
        display_order += 1

    return Sponsor(
        name=name,
        domain=body.domain or None,
        description=body.description or None,
        website=body.website,
        logo=body.logo or assets.get("logo"),
        backdrop=body.backdrop or None,
        primary_color=body.primary_color or assets.get("primary_color"),
        display_size=body.display_size or "SMALL",
        is_active=body.is_active is not False,
        display_order=display_order,
    )


@router.get("/communities/{slug}/sponsors")
def list_community_sponsors(
    slug: str,
    show_all: bool = Query(False, alias="all"),
    db: Session = Depends(get_db),
):
    brand = db.query(Brand).filter(Brand.slug == slug).first()
    if not brand:
        raise HTTPException(status_code=404, detail="Community not found")

    query = db.query(Sponsor).filter(Sponsor.brand_id == brand.id)
    if not show_all:
        query = query.filter(Sponsor.is_active.is_(True))
    sponsors = query.order_by(Sponsor.display_order).all()

    return {
        "sponsors": [sponsor_dict(s) for s in sponsors],
        "sponsorLabel": brand.sponsor_label or DEFAULT_SPONSOR_LABEL,
    }


@router.post("/communities/{slug}/sponsors", status_code=201)
async def create_community_sponsor(
    slug: str,
    body: SponsorCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    brand = db.query(Brand).filter(Brand.slug == slug).first()
    if not brand:
        raise HTTPException(status_code=404, detail="Community not found")
    if brand.created_by_id != user.id:
        raise HTTPException(status_code=403, detail="You don't have permission to add sponsors")
    if not can_manage_sponsors(user, brand.sponsors_enabled):
        raise HTTPException(
            status_code=403,
            detail="Sponsors are not enabled for this community. Contact the platform administrator.",
        )

    sponsor = await _new_sponsor(db, body, Sponsor.brand_id == brand.id)
    sponsor.brand_id = brand.id
    db.add(sponsor)
    db.commit()
    db.refresh(sponsor)
    logger.info(f"Sponsor {sponsor.name} added to community {brand.slug}")

    return sponsor_dict(sponsor)


@router.get("/communities/{slug}/{chapter_slug}/sponsors")
def list_sponsors(
    slug: str,
    chapter_slug: str,
    show_all: bool = Query(False, alias="all"),
    user=Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    chapter = _get_chapter(db, slug, chapter_slug)
    label = chapter.sponsor_label or chapter.brand.sponsor_label or DEFAULT_SPONSOR_LABEL
    enabled = _sponsors_enabled(chapter)

    if not enabled and not is_platform_admin(user):
        return {"sponsors": [], "sponsorLabel": label, "sponsorsEnabled": False}

    query = db.query(Sponsor).filter(Sponsor.chapter_id == chapter.id)
    if not show_all:
        query = query.filter(Sponsor.is_active.is_(True))
    sponsors = query.order_by(Sponsor.display_order).all()

    return {
        "sponsors": [sponsor_dict(s) for s in sponsors],
        "sponsorLabel": label,
        "sponsorsEnabled": enabled,
    }


@router.post("/communities/{slug}/{chapter_slug}/sponsors", status_code=201)
async def create_sponsor(
    slug: str,
    chapter_slug: str,
    body: SponsorCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    chapter = _get_chapter(db, slug, chapter_slug)

    if not can_manage_sponsors(user, _sponsors_enabled(chapter)):
        raise HTTPException(
            status_code=403,
            detail="Sponsors are not enabled for this community. Contact the platform administrator.",
        )
    _require_manager(db, chapter, user, "add")

    sponsor = await _new_sponsor(db, body, Sponsor.chapter_id == chapter.id)
    sponsor.chapter_id = chapter.id
    db.add(sponsor)
    db.commit()
    db.refresh(sponsor)
    logger.info(f"Sponsor {sponsor.name} added to chapter {chapter.id}")

    return sponsor_dict(sponsor)


@router.get("/communities/{slug}/{chapter_slug}/sponsors/{sponsor_id}")
def get_sponsor(slug: str, chapter_slug: str, sponsor_id: str, db: Session = Depends(get_db)):
    chapter = _get_chapter(db, slug, chapter_slug)
    return sponsor_dict(_get_sponsor(db, chapter, sponsor_id))


@router.put("/communities/{slug}/{chapter_slug}/sponsors/{sponsor_id}")
async def update_sponsor(
    slug: str,
    chapter_slug: str,
    sponsor_id: str,
    body: SponsorUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    chapter = _get_chapter(db, slug, chapter_slug)
    _require_manager(db, chapter, user, "edit")
    sponsor = _get_sponsor(db, chapter, sponsor_id)

    if body.refresh_branding and sponsor.domain:
        assets = await fetch_brand_assets(sponsor.domain)
        if assets:
            sponsor.logo = assets.get("logo") or sponsor.logo
            sponsor.primary_color = assets.get("primary_color") or sponsor.primary_color
            db.commit()
            db.refresh(sponsor)
            return sponsor_dict(sponsor)

    fields = body.model_dump(exclude_unset=True)
    fields.pop("refresh_branding", None)
    for name, value in fields.items():
        if name in ("domain", "description", "logo", "backdrop", "primary_color"):
            value = value or None
        elif value is None:
            continue
        setattr(sponsor, name, value)

    db.commit()
    db.refresh(sponsor)
    return sponsor_dict(sponsor)


@router.delete("/communities/{slug}/{chapter_slug}/sponsors/{sponsor_id}")
def delete_sponsor(
    slug: str,
    chapter_slug: str,
    sponsor_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    chapter = _get_chapter(db, slug, chapter_slug)
    _require_manager(db, chapter, user, "delete")
    sponsor = _get_sponsor(db, chapter, sponsor_id)

    db.delete(sponsor)
    db.commit()
    return {"success": True}
