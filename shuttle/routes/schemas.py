from pydantic import BaseModel, ConfigDict, Field, AliasChoices
from typing import Dict, List, Optional, Literal, Tuple
from datetime import datetime, time
from decimal import Decimal

from shuttle.schemas import Money

Optimization = Literal["balanced", "time", "cost", "transfers"]

class PlanRequest(BaseModel):
    """Request schema for itinerary planning"""
    start_stop_id: str
    end_stop_id: str
    departure_time: Optional[datetime] = None
    optimization: Optimization = "balanced"
    max_transfers: int = 2
    max_results: int = 5

class ItineraryLeg(BaseModel):
    """One uninterrupted ride on a single route"""
    model_config = ConfigDict(populate_by_name=True)

    route_id: str
    route_name: str
    from_stop_id: str = Field(
        validation_alias=AliasChoices("from", "from_stop_id"), serialization_alias="from"
    )
    to_stop_id: str = Field(
        validation_alias=AliasChoices("to", "to_stop_id"), serialization_alias="to"
    )
    scheduled_time: Optional[datetime] = None
    arrival_time: Optional[datetime] = None
    cost: Money

class Itinerary(BaseModel):
    """Complete candidate journey; never persisted"""
    legs: List[ItineraryLeg] = Field(min_length=1)
    total_time: int
    total_cost: Money
    max_crowding: float = Field(ge=0.0, le=1.0)

    @property
    def is_direct(self) -> bool:
        return len(self.legs) == 1

class ScoringWeights(BaseModel):
    """Blended ranking weights"""
    per_minute: float
    per_point: float
    per_transfer: float

class RouteValidationError(BaseModel):
    """Route validation error details"""
    error_code: str
    error_message: str
    field: Optional[str] = None

class NetworkRoute(BaseModel):
    """An active route as the planner sees it: ordered active stops with ride offsets"""
    route_id: str
    route_name: str
    color: Optional[str] = None
    base_fare: Decimal
    frequency_minutes: int
    capacity: int
    stop_ids: List[str]
    offsets: List[int]  # minutes from the first stop of the run
    operating_windows: Dict[int, List[Tuple[time, time]]] = {}  # day_of_week -> windows
    peak_windows: List[Tuple[time, time, Decimal]] = []

    @property
    def run_duration(self) -> int:
        return self.offsets[-1] if self.offsets else 0

    def positions_of(self, stop_id: str) -> List[int]:
        return [i for i, s in enumerate(self.stop_ids) if s == stop_id]

# Directory views
class RouteStopInfo(BaseModel):
    stop_id: str
    stop_name: str
    stop_order: int
    estimated_travel_time: Optional[int] = None
    distance_from_previous: Optional[Decimal] = None
    is_active: bool = True

class OperatingHourInfo(BaseModel):
    day_of_week: int
    start_time: time
    end_time: time

class PeakHourInfo(BaseModel):
    name: Optional[str] = None
    start_time: time
    end_time: time
    multiplier: Money

class RouteDetail(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    color: Optional[str] = None
    base_fare: Money
    estimated_duration: Optional[int] = None
    frequency_minutes: Optional[int] = None
    capacity: int
    is_active: bool
    stops: List[RouteStopInfo] = []
    operating_hours: List[OperatingHourInfo] = []
    peak_hours: List[PeakHourInfo] = []

# Presenter views
class TransferPoint(BaseModel):
    stop_id: str
    stop_name: str
    from_route: str
    to_route: str
    wait_time: int

class TransferDetails(BaseModel):
    transfer_stop: str
    wait_time: int
    total_duration: int
    points: List[TransferPoint] = []

class DisplayOption(BaseModel):
    """Display-ready route option for the booking screen"""
    id: str
    name: str
    from_stop: str
    to_stop: str
    duration: int
    cost: int
    transfers: int
    occupancy: Literal["Low", "Medium", "High"]
    type: Literal["Direct", "Transfer"]
    next_departure: Optional[datetime] = None
    transfer_details: Optional[TransferDetails] = None
    selected: bool = False
