"""
Booking Module

This module turns a selected itinerary into a paid shuttle booking. It includes:

- Booking confirmation: leg re-validation, guarded wallet debit, reference
  generation and ledger entry in a single transaction
- Cancellation with a full refund to the wallet
- Completion after the ride
- A booking status history for every transition
- Student booking history and admin search

Key Components:
- booking_service.py: BookingService and the booking state machine
- router.py: student and admin FastAPI endpoints
- schemas.py: Pydantic models for booking requests and views
"""

from .router import student_router, admin_router
from .booking_service import BookingService, ALLOWED_TRANSITIONS
from .schemas import (
    BookingStatus, BookingLegRequest, BookingConfirmRequest, BookingConfirmResponse,
    BookingCancellationRequest, BookingStatusUpdate, BookingView
)

__all__ = [
    "student_router",
    "admin_router",
    "BookingService",
    "ALLOWED_TRANSITIONS",
    "BookingStatus",
    "BookingLegRequest",
    "BookingConfirmRequest",
    "BookingConfirmResponse",
    "BookingCancellationRequest",
    "BookingStatusUpdate",
    "BookingView"
]
