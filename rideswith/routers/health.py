import logging
from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from ..config import settings
from ..database import get_db
from ..utils import isoformat

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
def health(db: Session = Depends(get_db)):
    # Always 200 so platform health checks pass while the database recovers
    try:
        db.execute(text("SELECT 1"))
        db_status = "connected"
    except Exception as e:
        logger.warning(f"Health check database ping failed: {e}")
        db_status = "disconnected"

    return {
        "status": "healthy",
        "timestamp": isoformat(datetime.utcnow()),
        "database": db_status,
        "app": settings.APP_NAME,
    }
