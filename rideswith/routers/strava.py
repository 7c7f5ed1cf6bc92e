"""
Connect a chapter to a Strava club and mirror the club's events as rides.

The OAuth round trip stores the tokens first. The organizer then picks a club,
which triggers the first sync.
"""
import logging
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from ..config import settings
from ..database import get_db
from ..deps import get_current_user, get_optional_user
from ..models import Chapter, StravaConnection, User
from ..roles import can_manage_chapter
from ..schemas import ClubSelect, SyncSettingsUpdate
from ..services import strava
from ..services.strava_sync import strava_sync_status, sync_strava_events

router = APIRouter()
logger = logging.getLogger(__name__)

NOT_CONNECTED = "No Strava connection found. Please connect Strava first."


def _get_managed_chapter(db: Session, chapter_id: Optional[str], user: User, action: str) -> Chapter:
    if not chapter_id:
        raise HTTPException(status_code=400, detail="chapterId is required")
    chapter = db.get(Chapter, chapter_id)
    if not chapter:
        raise HTTPException(status_code=404, detail="Chapter not found")
    if not can_manage_chapter(db, user, chapter):
        raise HTTPException(status_code=403, detail=f"Only chapter admins can {action}")
    return chapter


def _get_connection(db: Session, chapter_id: str) -> Optional[StravaConnection]:
    return db.query(StravaConnection).filter(StravaConnection.chapter_id == chapter_id).first()


def _error_redirect(error: str) -> RedirectResponse:
    return RedirectResponse(url=f"{settings.FRONTEND_URL}/strava/error?{urlencode({'error': error})}")


@router.get("/strava/authorize")
def authorize(
    chapter_id: str = Query(None, alias="chapterId"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    chapter = _get_managed_chapter(db, chapter_id, user, "connect Strava")

    if _get_connection(db, chapter.id):
        raise HTTPException(
            status_code=400,
            detail="Strava is already connected. Disconnect first to reconnect.",
        )

    try:
        url = strava.authorization_url(strava.encode_state(chapter.id, user.id))
    except strava.StravaError as e:
        logger.error(f"Cannot start Strava authorization: {e}")
        raise HTTPException(status_code=500, detail="Failed to start Strava authorization")
    return RedirectResponse(url=url)


@router.get("/strava/callback")
async def callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    """
    OAuth redirect target. Every outcome is a redirect back to the web app,
    since the browser lands here directly from Strava.
    """
    if not user:
        return RedirectResponse(url=f"{settings.FRONTEND_URL}/auth/signin?error=Unauthorized")

    if error:
        logger.error(f"Strava authorization error: {error}")
        return _error_redirect(error)
    if not code or not state:
        return _error_redirect("missing_params")

    try:
        state_data = strava.decode_state(state)
    except ValueError:
        return _error_redirect("invalid_state")

    if state_data["userId"] != user.id:
        return _error_redirect("user_mismatch")
    if strava.state_is_expired(state_data):
        return _error_redirect("state_expired")

    chapter = db.get(Chapter, state_data["chapterId"])
    if not chapter:
        return _error_redirect("chapter_not_found")

    try:
        tokens = await strava.exchange_code_for_tokens(code)
    except (strava.StravaError, KeyError) as e:
        logger.error(f"Strava callback failed for chapter {chapter.id}: {e}")
        return _error_redirect("callback_failed")

    # The club is chosen in a second step
    connection = _get_connection(db, chapter.id)
    if not connection:
        connection = StravaConnection(chapter_id=chapter.id)
        db.add(connection)
    connection.user_id = user.id
    connection.access_token = tokens.access_token
    connection.refresh_token = tokens.refresh_token
    connection.expires_at = tokens.expires_at
    connection.strava_club_id = ""
    connection.strava_club_name = None
    db.commit()
    logger.info(f"Strava connected to chapter {chapter.id} by user {user.id}")

    params = urlencode({"stravaConnected": "true", "selectClub": "true"})
    return RedirectResponse(url=f"{settings.FRONTEND_URL}/communities/{chapter.brand.slug}/{chapter.slug}/edit?{params}")


@router.get("/strava/clubs")
async def list_clubs(
    chapter_id: str = Query(None, alias="chapterId"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    chapter = _get_managed_chapter(db, chapter_id, user, "access Strava")
    connection = _get_connection(db, chapter.id)
    if not connection:
        raise HTTPException(status_code=404, detail=NOT_CONNECTED)

    try:
        access_token, refreshed, new_tokens = await strava.get_valid_access_token(connection)
        if refreshed and new_tokens:
            connection.access_token = new_tokens.access_token
            connection.refresh_token = new_tokens.refresh_token
            connection.expires_at = new_tokens.expires_at
            db.commit()
        clubs = await strava.get_athlete_clubs(access_token)
    except strava.StravaError as e:
        logger.error(f"Failed to fetch Strava clubs for chapter {chapter.id}: {e}")
        raise HTTPException(status_code=502, detail="Failed to fetch Strava clubs")

    return {
        "clubs": [
            {
                "id": str(club.get("id")),
                "name": club.get("name"),
                "profileMedium": club.get("profile_medium"),
                "coverPhoto": club.get("cover_photo"),
                "city": club.get("city"),
                "state": club.get("state"),
                "country": club.get("country"),
                "memberCount": club.get("member_count"),
                "isAdmin": club.get("admin"),
            }
            for club in clubs
        ],
        "currentClubId": connection.strava_club_id or None,
    }


@router.post("/strava/clubs")
async def select_club(
    body: ClubSelect,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not body.chapter_id or not body.club_id:
        raise HTTPException(status_code=400, detail="chapterId and clubId are required")

    chapter = _get_managed_chapter(db, body.chapter_id, user, "select Strava club")
    connection = _get_connection(db, chapter.id)
    if not connection:
        raise HTTPException(status_code=404, detail=NOT_CONNECTED)

    connection.strava_club_id = body.club_id
    connection.strava_club_name = body.club_name or None
    db.commit()

    # First sync runs right away
    result = await sync_strava_events(db, chapter.id)
    return {
        "success": True,
        "clubId": body.club_id,
        "clubName": body.club_name,
        "syncResult": result.to_dict(),
    }


@router.get("/strava/sync/{chapter_id}")
def sync_status(chapter_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    chapter = _get_managed_chapter(db, chapter_id, user, "view Strava sync status")
    return strava_sync_status(db, chapter.id) or {"connected": False}


@router.post("/strava/sync/{chapter_id}")
async def run_sync(chapter_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    chapter = _get_managed_chapter(db, chapter_id, user, "sync Strava")
    connection = _get_connection(db, chapter.id)
    if not connection:
        raise HTTPException(status_code=404, detail=NOT_CONNECTED)
    if not connection.strava_club_id:
        raise HTTPException(status_code=400, detail="No Strava club selected. Please select a club first.")

    result = await sync_strava_events(db, chapter.id)
    return result.to_dict()


@router.put("/strava/sync/{chapter_id}")
def update_sync_settings(
    chapter_id: str,
    body: SyncSettingsUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    chapter = _get_managed_chapter(db, chapter_id, user, "update Strava settings")
    connection = _get_connection(db, chapter.id)
    if not connection:
        raise HTTPException(status_code=404, detail=NOT_CONNECTED)

    if body.auto_sync is not None:
        connection.auto_sync = body.auto_sync
    db.commit()
    return {"success": True, "autoSync": connection.auto_sync}


@router.delete("/strava/disconnect")
def disconnect(
    chapter_id: str = Query(None, alias="chapterId"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    chapter = _get_managed_chapter(db, chapter_id, user, "disconnect Strava")
    connection = _get_connection(db, chapter.id)
    if not connection:
        raise HTTPException(status_code=404, detail="No Strava connection found")

    # Synced rides and their event records stay
    db.delete(connection)
    db.commit()
    logger.info(f"Strava disconnected from chapter {chapter.id} by user {user.id}")
    return {"success": True}
