from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..deps import get_current_user
from ..models import Brand, Chapter, Follow, User
from ..schemas import FollowCreate
from ..serializers import follow_dict

router = APIRouter()


@router.get("/follows")
def list_follows(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    follows = (
        db.query(Follow)
        .filter(Follow.user_id == user.id)
        .order_by(Follow.created_at.desc())
        .all()
    )
    return {"follows": [follow_dict(f) for f in follows]}


@router.post("/follows")
def follow(
    body: FollowCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not body.brand_id and not body.chapter_id:
        raise HTTPException(status_code=400, detail="brandId or chapterId is required")
    if body.brand_id and body.chapter_id:
        raise HTTPException(status_code=400, detail="Can only follow one entity at a time")

    query = db.query(Follow).filter(Follow.user_id == user.id)
    if body.brand_id:
        if not db.get(Brand, body.brand_id):
            raise HTTPException(status_code=404, detail="Brand not found")
        existing = query.filter(Follow.brand_id == body.brand_id).first()
    else:
        if not db.get(Chapter, body.chapter_id):
            raise HTTPException(status_code=404, detail="Chapter not found")
        existing = query.filter(Follow.chapter_id == body.chapter_id).first()

    if existing:
        return follow_dict(existing)

    record = Follow(user_id=user.id, brand_id=body.brand_id, chapter_id=body.chapter_id)
    db.add(record)
    db.commit()
    db.refresh(record)
    return follow_dict(record)


@router.delete("/follows")
def unfollow(
    follow_id: str = Query(None, alias="id"),
    brand_id: str = Query(None, alias="brandId"),
    chapter_id: str = Query(None, alias="chapterId"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = db.query(Follow).filter(Follow.user_id == user.id)
    if follow_id:
        query = query.filter(Follow.id == follow_id)
    elif brand_id:
        query = query.filter(Follow.brand_id == brand_id)
    elif chapter_id:
        query = query.filter(Follow.chapter_id == chapter_id)
    else:
        raise HTTPException(status_code=400, detail="brandId, chapterId, or id is required")

    query.delete(synchronize_session=False)
    db.commit()
    return {"success": True}
