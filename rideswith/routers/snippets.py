from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..database import get_db
from ..deps import get_current_user
from ..models import RideSnippet, User
from ..schemas import SnippetCreate, SnippetUpdate
from ..serializers import snippet_dict

router = APIRouter()


def _get_own_snippet(db: Session, snippet_id: str, user: User) -> RideSnippet:
    snippet = db.get(RideSnippet, snippet_id)
    if not snippet:
        raise HTTPException(status_code=404, detail="Snippet not found")
    if snippet.user_id != user.id:
        raise HTTPException(status_code=403, detail="Forbidden")
    return snippet


@router.get("/snippets")
def list_snippets(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    snippets = (
        db.query(RideSnippet)
        .filter(RideSnippet.user_id == user.id)
        .order_by(RideSnippet.category, RideSnippet.sort_order, RideSnippet.title)
        .all()
    )
    return {"snippets": [snippet_dict(s) for s in snippets]}


@router.post("/snippets", status_code=201)
def create_snippet(
    body: SnippetCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    title = (body.title or "").strip()
    content = (body.content or "").strip()
    if not title:
        raise HTTPException(status_code=400, detail="Title is required")
    if not content:
        raise HTTPException(status_code=400, detail="Content is required")

    sort_order = body.sort_order
    if sort_order is None:
        highest = db.query(func.max(RideSnippet.sort_order)).filter(RideSnippet.user_id == user.id).scalar()
        sort_order = (highest if highest is not None else -1) + 1

    snippet = RideSnippet(
        user_id=user.id,
        title=title,
        content=content,
        category=(body.category or "").strip() or None,
        sort_order=sort_order,
    )
    db.add(snippet)
    db.commit()
    db.refresh(snippet)
    return {"snippet": snippet_dict(snippet)}


@router.get("/snippets/{snippet_id}")
def get_snippet(snippet_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return {"snippet": snippet_dict(_get_own_snippet(db, snippet_id, user))}


@router.put("/snippets/{snippet_id}")
def update_snippet(
    snippet_id: str,
    body: SnippetUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    snippet = _get_own_snippet(db, snippet_id, user)
    fields = body.model_dump(exclude_unset=True)

    if "title" in fields:
        title = (fields["title"] or "").strip()
        if not title:
            raise HTTPException(status_code=400, detail="Title cannot be empty")
        snippet.title = title
    if "content" in fields:
        content = (fields["content"] or "").strip()
        if not content:
            raise HTTPException(status_code=400, detail="Content cannot be empty")
        snippet.content = content
    if "category" in fields:
        snippet.category = (fields["category"] or "").strip() or None
    if fields.get("sort_order") is not None:
        snippet.sort_order = fields["sort_order"]

    db.commit()
    db.refresh(snippet)
    return {"snippet": snippet_dict(snippet)}


@router.delete("/snippets/{snippet_id}")
def delete_snippet(snippet_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    snippet = _get_own_snippet(db, snippet_id, user)
    db.delete(snippet)
    db.commit()
    return {"success": True}
