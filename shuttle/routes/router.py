from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import datetime

from shuttle.config import settings
from shuttle.database import get_db
from shuttle.exceptions import NotFoundError
from shuttle.models import Route
from shuttle.routes.schemas import (
    DisplayOption, Itinerary, Optimization, PlanRequest, RouteDetail
)
from shuttle.routes.service import RouteService
from shuttle.routes.presenter import present
from shuttle.stops.service import StopService

router = APIRouter()

def _plan_request(
    start_stop_id: str = Query(..., description="Origin stop ID"),
    end_stop_id: str = Query(..., description="Destination stop ID"),
    departure_time: Optional[datetime] = Query(None, description="Desired departure, ISO-8601 with seconds"),
    optimization: Optimization = Query("balanced", description="Ranking preference"),
    max_transfers: int = Query(settings.PLANNER_MAX_TRANSFERS, ge=0, le=4, description="Maximum transfers"),
    max_results: int = Query(settings.PLANNER_MAX_RESULTS, ge=1, le=10, description="Maximum itineraries"),
) -> PlanRequest:
    return PlanRequest(
        start_stop_id=start_stop_id,
        end_stop_id=end_stop_id,
        departure_time=departure_time,
        optimization=optimization,
        max_transfers=max_transfers,
        max_results=max_results,
    )

@router.get("/optimize", response_model=List[Itinerary])
def optimize_route(
    request: PlanRequest = Depends(_plan_request),
    db: Session = Depends(get_db)
):
    """Ranked itineraries between two stops; empty when nothing connects them"""
    return RouteService(db).plan_route(request)

@router.get("/options", response_model=List[DisplayOption])
def get_route_options(
    request: PlanRequest = Depends(_plan_request),
    db: Session = Depends(get_db)
):
    """Ranked itineraries mapped to display options"""
    itineraries = RouteService(db).plan_route(request)
    return present(itineraries, StopService.get_stop_directory(db))

@router.get("", response_model=List[RouteDetail])
def get_routes(
    active_only: bool = Query(True, description="Only return active routes"),
    db: Session = Depends(get_db)
):
    """All routes with stop sequence, operating hours and peak hours"""
    return [_route_detail(route) for route in RouteService(db).list_routes(active_only)]

@router.get("/{route_id}", response_model=RouteDetail)
def get_route(route_id: str, db: Session = Depends(get_db)):
    """Route details by ID"""
    route = RouteService(db).get_route_details(route_id)
    if not route:
        raise NotFoundError(f"Route with ID {route_id} not found")
    return _route_detail(route)

def _route_detail(route: Route) -> RouteDetail:
    return RouteDetail(
        id=route.id,
        name=route.name,
        description=route.description,
        color=route.color,
        base_fare=route.base_fare,
        estimated_duration=route.estimated_duration,
        frequency_minutes=route.frequency_minutes,
        capacity=route.capacity,
        is_active=route.is_active,
        stops=[
            {
                "stop_id": rs.stop_id,
                "stop_name": rs.stop.name if rs.stop else rs.stop_id,
                "stop_order": rs.stop_order,
                "estimated_travel_time": rs.estimated_travel_time,
                "distance_from_previous": rs.distance_from_previous,
                "is_active": rs.stop.is_active if rs.stop else False,
            }
            for rs in sorted(route.stops, key=lambda rs: rs.stop_order)
        ],
        operating_hours=[
            {"day_of_week": h.day_of_week, "start_time": h.start_time, "end_time": h.end_time}
            for h in sorted(route.operating_hours, key=lambda h: (h.day_of_week, h.start_time))
            if h.is_active
        ],
        peak_hours=[
            {"name": p.name, "start_time": p.start_time, "end_time": p.end_time, "multiplier": p.multiplier}
            for p in route.peak_hours if p.is_active
        ],
    )
