from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import List, Optional
from datetime import datetime
from decimal import Decimal
from enum import Enum

from shuttle.schemas import Money

class BookingStatus(str, Enum):
    """Booking status enumeration"""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"

class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

# Booking Request Models
class BookingLegRequest(CamelModel):
    """One leg of the itinerary being booked"""
    route_id: str
    from_stop_id: str
    to_stop_id: str
    scheduled_time: datetime
    cost: Decimal = Field(ge=0)

    @field_validator("scheduled_time")
    @classmethod
    def drop_sub_seconds(cls, v: datetime) -> datetime:
        # Stored as naive local time at second precision
        return v.replace(tzinfo=None, microsecond=0)

class BookingConfirmRequest(CamelModel):
    """Request to book a selected itinerary and pay from the wallet"""
    student_id: str
    legs: List[BookingLegRequest] = Field(min_length=1)
    total_cost: Decimal = Field(gt=0)

class BookingCancellationRequest(CamelModel):
    reason: Optional[str] = Field(None, max_length=500)

class BookingStatusUpdate(CamelModel):
    """Admin status change; only cancelled and completed are reachable"""
    status: BookingStatus
    reason: Optional[str] = Field(None, max_length=500)

# Booking Response Models
class BookingConfirmResponse(CamelModel):
    success: bool = True
    booking_reference: str
    new_balance: Money
    booking_id: str

class BookingLegView(CamelModel):
    leg_order: int
    route_id: str
    route_name: Optional[str] = None
    from_stop_id: str
    from_stop_name: Optional[str] = None
    to_stop_id: str
    to_stop_name: Optional[str] = None
    scheduled_time: datetime
    cost: Money

class BookingStatusEventView(CamelModel):
    from_status: Optional[BookingStatus] = None
    to_status: BookingStatus
    actor_id: Optional[str] = None
    reason: Optional[str] = None
    created_at: Optional[datetime] = None

class BookingView(CamelModel):
    """Booking with its legs and status history"""
    id: str
    booking_reference: str
    student_id: str
    status: BookingStatus
    total_cost: Money
    legs: List[BookingLegView]
    status_events: List[BookingStatusEventView] = []
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    cancellation_reason: Optional[str] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

class BookingHistory(CamelModel):
    bookings: List[BookingView]
    total: int
    limit: int
    offset: int

class BookingActionResponse(CamelModel):
    success: bool = True
    booking: BookingView
    new_balance: Optional[Money] = None
