import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..deps import get_current_user
from ..models import Ride, RideRoute, User
from ..schemas import RouteCreate
from ..serializers import route_dict
from ..services.organizers import user_manages_organizer
from ..utils import detect_platform

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/rides/{ride_id}/routes")
def list_routes(ride_id: str, db: Session = Depends(get_db)):
    routes = (
        db.query(RideRoute)
        .filter(RideRoute.ride_id == ride_id)
        .order_by(RideRoute.created_at)
        .all()
    )
    return [route_dict(r) for r in routes]


@router.post("/rides/{ride_id}/routes", status_code=201)
def add_route(
    ride_id: str,
    body: RouteCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    url = (body.url or "").strip()
    if not url:
        raise HTTPException(status_code=400, detail="URL is required")

    ride = db.get(Ride, ride_id)
    if not ride:
        raise HTTPException(status_code=404, detail="Ride not found")

    platform = detect_platform(url)
    existing = (
        db.query(RideRoute)
        .filter(RideRoute.ride_id == ride.id, RideRoute.platform == platform)
        .first()
    )
    if existing:
        raise HTTPException(
            status_code=409,
            detail=f"A {platform} route has already been added to this ride",
        )

    route = RideRoute(ride_id=ride.id, user_id=user.id, platform=platform, url=url)
    db.add(route)
    db.commit()
    db.refresh(route)
    logger.info(f"User {user.id} added {platform} route to ride {ride.id}")

    return route_dict(route)


@router.delete("/rides/{ride_id}/routes")
def delete_route(
    ride_id: str,
    route_id: str = Query(None, alias="routeId"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not route_id:
        raise HTTPException(status_code=400, detail="routeId is required")

    route = db.get(RideRoute, route_id)
    if not route:
        raise HTTPException(status_code=404, detail="Route not found")
    if route.ride_id != ride_id:
        raise HTTPException(status_code=400, detail="Route does not belong to this ride")

    ride = db.get(Ride, ride_id)
    if route.user_id != user.id and not user_manages_organizer(db, ride.organizer_id, user.id):
        raise HTTPException(status_code=403, detail="Not authorized to delete this route")

    db.delete(route)
    db.commit()
    return {"success": True}
