"""Platform administration. Every route requires the platform admin role."""
import logging
from collections import Counter
from datetime import datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..database import get_db
from ..deps import require_platform_admin
from ..models import Brand, Chapter, ChapterMember, Ride, Rsvp, User
from ..schemas import AdminToggle
from ..services.brand_assets import apply_brand_assets, fetch_brand_assets
from ..utils import isoformat

router = APIRouter(prefix="/admin", dependencies=[Depends(require_platform_admin)])
logger = logging.getLogger(__name__)


@router.get("/communities")
def list_communities(db: Session = Depends(get_db)):
    brands = db.query(Brand).order_by(Brand.created_at.desc()).all()
    return {
        "communities": [
            {
                "id": b.id,
                "name": b.name,
                "slug": b.slug,
                "type": b.type,
                "logo": b.logo,
                "sponsorsEnabled": b.sponsors_enabled,
                "createdAt": isoformat(b.created_at),
                "createdBy": {"name": b.created_by.name, "email": b.created_by.email} if b.created_by else None,
                "chapterCount": len(b.chapters),
            }
            for b in brands
        ]
    }


@router.patch("/communities/{brand_id}")
def update_community(
    brand_id: str,
    body: AdminToggle,
    user: User = Depends(require_platform_admin),
    db: Session = Depends(get_db),
):
    brand = db.get(Brand, brand_id)
    if not brand:
        raise HTTPException(status_code=404, detail="Community not found")

    # Communities have no inherited value, so null is not a toggle
    if body.sponsors_enabled is None:
        raise HTTPException(status_code=400, detail="No valid fields to update")

    brand.sponsors_enabled = body.sponsors_enabled
    db.commit()
    logger.info(f"Platform admin {user.id} set sponsorsEnabled={brand.sponsors_enabled} on community {brand.slug}")

    return {"id": brand.id, "name": brand.name, "slug": brand.slug, "sponsorsEnabled": brand.sponsors_enabled}


@router.patch("/chapters/{chapter_id}")
def update_chapter(
    chapter_id: str,
    body: AdminToggle,
    user: User = Depends(require_platform_admin),
    db: Session = Depends(get_db),
):
    chapter = db.get(Chapter, chapter_id)
    if not chapter:
        raise HTTPException(status_code=404, detail="Chapter not found")

    # null puts the chapter back on the community setting
    fields = body.model_dump(exclude_unset=True)
    if "sponsors_enabled" not in fields:
        raise HTTPException(status_code=400, detail="No valid fields to update")

    chapter.sponsors_enabled = fields["sponsors_enabled"]
    db.commit()
    logger.info(f"Platform admin {user.id} set sponsorsEnabled={chapter.sponsors_enabled} on chapter {chapter.id}")

    return {"id": chapter.id, "name": chapter.name, "slug": chapter.slug, "sponsorsEnabled": chapter.sponsors_enabled}


def _month_starts(now: datetime, count: int):
    """First day of each of the last ``count`` months, oldest first, current month included."""
    year, month = now.year, now.month
    starts = []
    for _ in range(count):
        starts.append(datetime(year, month, 1))
        year, month = (year - 1, 12) if month == 1 else (year, month - 1)
    return list(reversed(starts))


@router.get("/analytics")
def analytics(db: Session = Depends(get_db)):
    now = datetime.utcnow()

    overview = {
        "totalUsers": db.query(User).count(),
        "newUsers7d": db.query(User).filter(User.created_at >= now - timedelta(days=7)).count(),
        "newUsers30d": db.query(User).filter(User.created_at >= now - timedelta(days=30)).count(),
        "totalCommunities": db.query(Brand).count(),
        "totalChapters": db.query(Chapter).count(),
        "totalRides": db.query(Ride).count(),
        "upcomingRides": db.query(Ride).filter(Ride.date >= now).count(),
        "pastRides": db.query(Ride).filter(Ride.date < now).count(),
        "totalRsvps": db.query(Rsvp).count(),
    }

    users = db.query(User).order_by(User.created_at.desc()).limit(50).all()
    user_ids = [u.id for u in users]
    rsvp_counts = dict(
        db.query(Rsvp.user_id, func.count(Rsvp.id))
        .filter(Rsvp.user_id.in_(user_ids))
        .group_by(Rsvp.user_id)
        .all()
    )
    chapter_counts = dict(
        db.query(ChapterMember.user_id, func.count(ChapterMember.id))
        .filter(ChapterMember.user_id.in_(user_ids))
        .group_by(ChapterMember.user_id)
        .all()
    )
    recent_users = [
        {
            "id": u.id,
            "name": u.name,
            "email": u.email,
            "image": u.image,
            "createdAt": isoformat(u.created_at),
            "rsvpCount": rsvp_counts.get(u.id, 0),
            "chapterCount": chapter_counts.get(u.id, 0),
        }
        for u in users
    ]

    communities = [
        {
            "id": b.id,
            "name": b.name,
            "slug": b.slug,
            "logo": b.logo,
            "chapterCount": len(b.chapters),
            "rideCount": sum(c.ride_count or 0 for c in b.chapters),
        }
        for b in db.query(Brand).all()
    ]
    communities.sort(key=lambda c: c["rideCount"], reverse=True)

    months = _month_starts(now, 6)
    created = db.query(Ride.created_at).filter(Ride.created_at >= months[0]).all()
    by_month = Counter(f"{ts:%Y-%m}" for (ts,) in created if ts)
    rides_by_month = [{"month": m, "count": by_month[m]} for m in sorted(by_month)]

    return {
        "overview": overview,
        "recentUsers": recent_users,
        "topCommunities": communities[:10],
        "ridesByMonth": rides_by_month,
    }


@router.post("/refresh-brands")
async def refresh_brands(db: Session = Depends(get_db)):
    brands = (
        db.query(Brand)
        .filter(Brand.domain.isnot(None), Brand.domain != "")
        .order_by(Brand.name)
        .all()
    )

    results = []
    for brand in brands:
        assets = await fetch_brand_assets(brand.domain)
        if assets:
            apply_brand_assets(brand, assets)
            results.append({"brand": brand.name, "status": "updated", "logo": brand.logo})
        else:
            results.append({"brand": brand.name, "status": "no_assets_found"})
    db.commit()

    logger.info(f"Refreshed branding for {len(brands)} communities")
    return {"success": True, "results": results}


def _domain_has_issue(domain: str) -> bool:
    return "://" in domain or "//" in domain or domain.startswith("www.")


@router.get("/check-domains")
def check_domains(db: Session = Depends(get_db)):
    brands = (
        db.query(Brand)
        .filter(Brand.domain.isnot(None), Brand.domain != "")
        .order_by(Brand.name)
        .all()
    )
    issues = [b for b in brands if _domain_has_issue(b.domain)]
    return {
        "total": len(brands),
        "issueCount": len(issues),
        "issues": [
            {"name": b.name, "slug": b.slug, "domain": b.domain, "editUrl": f"/communities/{b.slug}/edit"}
            for b in issues
        ],
        "allBrands": [{"name": b.name, "slug": b.slug, "domain": b.domain} for b in brands],
    }
