import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..deps import get_current_user
from ..models import Ride, RideComment, User
from ..schemas import CommentCreate
from ..serializers import comment_dict
from ..services.organizers import user_manages_organizer

router = APIRouter()
logger = logging.getLogger(__name__)

MAX_COMMENT_LENGTH = 2000


def _get_ride(db: Session, ride_id: str) -> Ride:
    ride = db.get(Ride, ride_id)
    if not ride:
        raise HTTPException(status_code=404, detail="Ride not found")
    return ride


@router.get("/rides/{ride_id}/comments")
def list_comments(ride_id: str, db: Session = Depends(get_db)):
    comments = (
        db.query(RideComment)
        .filter(RideComment.ride_id == ride_id)
        .order_by(RideComment.created_at.desc())
        .all()
    )
    return [comment_dict(c) for c in comments]


@router.post("/rides/{ride_id}/comments", status_code=201)
def create_comment(
    ride_id: str,
    body: CommentCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    content = (body.content or "").strip()
    if not content:
        raise HTTPException(status_code=400, detail="Comment content is required")
    if len(content) > MAX_COMMENT_LENGTH:
        raise HTTPException(status_code=400, detail="Comment is too long (max 2000 characters)")

    ride = _get_ride(db, ride_id)
    comment = RideComment(ride_id=ride.id, user_id=user.id, content=content)
    db.add(comment)
    db.commit()
    db.refresh(comment)

    return comment_dict(comment)


@router.delete("/rides/{ride_id}/comments")
def delete_comment(
    ride_id: str,
    comment_id: str = Query(None, alias="commentId"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not comment_id:
        raise HTTPException(status_code=400, detail="Comment ID is required")

    comment = db.get(RideComment, comment_id)
    if not comment or comment.ride_id != ride_id:
        raise HTTPException(status_code=404, detail="Comment not found")

    # Authors and the ride's organizer admins can delete
    if comment.user_id != user.id and not user_manages_organizer(db, comment.ride.organizer_id, user.id):
        raise HTTPException(status_code=403, detail="Forbidden")

    db.delete(comment)
    db.commit()
    return {"success": True}
