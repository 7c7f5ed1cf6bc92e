"""APScheduler: periodic Strava auto-sync for connected chapters."""
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from .config import settings
from .database import session_scope
from .models import StravaConnection
from .services.strava_sync import sync_strava_events

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


async def auto_sync_strava():
    """Sync every connection that has auto-sync on and a club selected."""
    try:
        with session_scope() as db:
            await _sync_ready_chapters(db)
    except Exception as e:
        logger.error(f"Strava auto-sync failed: {e}")


async def _sync_ready_chapters(db):
    chapter_ids = [
        chapter_id
        for (chapter_id,) in db.query(StravaConnection.chapter_id).filter(
            StravaConnection.auto_sync.is_(True),
            StravaConnection.strava_club_id != "",
        )
    ]
    for chapter_id in chapter_ids:
        result = await sync_strava_events(db, chapter_id)
        if not result.success:
            logger.warning(f"Auto-sync for chapter {chapter_id} finished with errors: {result.errors}")
    logger.info(f"Strava auto-sync processed {len(chapter_ids)} chapters")


def start_scheduler():
    scheduler.add_job(
        auto_sync_strava,
        "interval",
        minutes=settings.STRAVA_AUTO_SYNC_MINUTES,
        id="strava_auto_sync",
        replace_existing=True,
    )
    scheduler.start()
    logger.info(f"Scheduler started, syncing Strava every {settings.STRAVA_AUTO_SYNC_MINUTES} minutes")


def stop_scheduler():
    if scheduler.running:
        scheduler.shutdown(wait=False)
