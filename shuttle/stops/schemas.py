from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime
from decimal import Decimal

class StopBase(BaseModel):
    name: str
    description: Optional[str] = None
    latitude: Optional[Decimal] = None
    longitude: Optional[Decimal] = None
    is_active: bool = True

class Stop(StopBase):
    id: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class StopRouteInfo(BaseModel):
    route_id: str
    route_name: str
    stop_order: int

class StopDetail(Stop):
    routes: List[StopRouteInfo] = []

class StopSearch(BaseModel):
    query: Optional[str] = None
    active_only: bool = True

class StopSearchResult(BaseModel):
    stops: List[Stop]
    total: int
    page: int
    per_page: int
