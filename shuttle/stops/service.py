from sqlalchemy.orm import Session, joinedload
from typing import Dict, List, Optional, Tuple
from shuttle.models import Stop, RouteStop
from shuttle.stops.schemas import StopSearch

class StopService:
    @staticmethod
    def get_stop_by_id(db: Session, stop_id: str) -> Optional[Stop]:
        """Get stop by ID with the routes serving it"""
        return db.query(Stop).options(
            joinedload(Stop.route_stops).joinedload(RouteStop.route)
        ).filter(Stop.id == stop_id).first()

    @staticmethod
    def get_stops(
        db: Session,
        skip: int = 0,
        limit: int = 50,
        search: Optional[StopSearch] = None
    ) -> Tuple[List[Stop], int]:
        """Get stops with optional search filters"""
        query = db.query(Stop)

        if search:
            if search.query:
                query = query.filter(Stop.name.ilike(f"%{search.query}%"))
            if search.active_only:
                query = query.filter(Stop.is_active == True)

        total = query.count()
        stops = query.order_by(Stop.name).offset(skip).limit(limit).all()

        return stops, total

    @staticmethod
    def get_stop_directory(db: Session, active_only: bool = False) -> Dict[str, str]:
        """Map of stop id to stop name, used to label itineraries"""
        query = db.query(Stop.id, Stop.name)
        if active_only:
            query = query.filter(Stop.is_active == True)
        return {stop_id: name for stop_id, name in query.all()}
