from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional
from shuttle.database import get_db
from shuttle.exceptions import NotFoundError
from shuttle.stops.schemas import StopDetail, StopSearch, StopSearchResult
from shuttle.stops.service import StopService

router = APIRouter()

@router.get("", response_model=StopSearchResult)
def get_stops(
    skip: int = Query(0, ge=0, description="Number of stops to skip"),
    limit: int = Query(50, ge=1, le=200, description="Number of stops to return"),
    query: Optional[str] = Query(None, description="Search by stop name"),
    active_only: bool = Query(True, description="Only return active stops"),
    db: Session = Depends(get_db)
):
    """Get stops with optional search and filters"""
    search = StopSearch(query=query, active_only=active_only)
    stops, total = StopService.get_stops(db, skip=skip, limit=limit, search=search)

    return StopSearchResult(
        stops=stops,
        total=total,
        page=(skip // limit) + 1,
        per_page=limit
    )

@router.get("/{stop_id}", response_model=StopDetail)
def get_stop(stop_id: str, db: Session = Depends(get_db)):
    """Get stop details with the routes serving it"""
    stop = StopService.get_stop_by_id(db, stop_id)
    if not stop:
        raise NotFoundError(f"Stop with ID {stop_id} not found")

    return StopDetail(
        id=stop.id,
        name=stop.name,
        description=stop.description,
        latitude=stop.latitude,
        longitude=stop.longitude,
        is_active=stop.is_active,
        created_at=stop.created_at,
        updated_at=stop.updated_at,
        routes=[
            {"route_id": rs.route.id, "route_name": rs.route.name, "stop_order": rs.stop_order}
            for rs in sorted(stop.route_stops, key=lambda rs: rs.route.name)
        ]
    )
