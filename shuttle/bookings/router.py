from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from shuttle.auth.dependencies import get_session_context, require_admin
from shuttle.auth.schemas import SessionContext
from shuttle.bookings.booking_service import BookingService
from shuttle.bookings.schemas import (
    BookingActionResponse, BookingCancellationRequest, BookingConfirmRequest,
    BookingConfirmResponse, BookingHistory, BookingStatus, BookingStatusUpdate, BookingView
)
from shuttle.database import get_db
from shuttle.exceptions import NotFoundError, PermissionDeniedError
from shuttle.models import Booking
from shuttle.wallets.service import WalletService

student_router = APIRouter()
admin_router = APIRouter()

def booking_view(booking: Booking) -> BookingView:
    return BookingView(
        id=booking.id,
        booking_reference=booking.booking_reference,
        student_id=booking.student_id,
        status=booking.status,
        total_cost=booking.total_cost,
        legs=[
            {
                "leg_order": leg.leg_order,
                "route_id": leg.route_id,
                "route_name": leg.route.name if leg.route else None,
                "from_stop_id": leg.from_stop_id,
                "from_stop_name": leg.from_stop.name if leg.from_stop else None,
                "to_stop_id": leg.to_stop_id,
                "to_stop_name": leg.to_stop.name if leg.to_stop else None,
                "scheduled_time": leg.scheduled_time,
                "cost": leg.cost,
            }
            for leg in booking.legs
        ],
        status_events=[
            {
                "from_status": event.from_status,
                "to_status": event.to_status,
                "actor_id": event.actor_id,
                "reason": event.reason,
                "created_at": event.created_at,
            }
            for event in booking.status_events
        ],
        cancelled_at=booking.cancelled_at,
        cancelled_by=booking.cancelled_by,
        cancellation_reason=booking.cancellation_reason,
        completed_at=booking.completed_at,
        created_at=booking.created_at,
    )

def _owned_booking(booking: Optional[Booking], context: SessionContext, label: str) -> Booking:
    if not booking:
        raise NotFoundError(f"Booking {label} not found")
    if not context.can_act_for(booking.student_id, booking.student.student_code):
        raise PermissionDeniedError("Cannot access another student's booking")
    return booking

# Student booking endpoints
@student_router.post("/confirm", response_model=BookingConfirmResponse)
def confirm_booking(
    request: BookingConfirmRequest,
    db: Session = Depends(get_db),
    context: SessionContext = Depends(get_session_context)
):
    """Book the selected itinerary and pay from the wallet"""
    student = WalletService(db).get_student(request.student_id)
    if not context.can_act_for(student.id, student.student_code):
        raise PermissionDeniedError("Cannot book for another student")

    booking, new_balance = BookingService(db).confirm(
        student_id=student.id,
        legs=request.legs,
        total_cost=request.total_cost,
    )
    return BookingConfirmResponse(
        booking_reference=booking.booking_reference,
        new_balance=new_balance,
        booking_id=booking.id,
    )

@student_router.get("/history", response_model=BookingHistory)
def get_booking_history(
    student_id: Optional[str] = Query(None, description="Defaults to the signed-in student"),
    status: Optional[BookingStatus] = Query(None, description="Filter by booking status"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    context: SessionContext = Depends(get_session_context)
):
    """Bookings for a student, newest first"""
    identifier = student_id or context.student_id
    if not identifier:
        raise PermissionDeniedError("No student is associated with this session")
    student = WalletService(db).get_student(identifier)
    if not context.can_act_for(student.id, student.student_code):
        raise PermissionDeniedError("Cannot access another student's bookings")

    bookings, total = BookingService(db).get_student_bookings(student.id, status, limit, offset)
    return BookingHistory(
        bookings=[booking_view(b) for b in bookings],
        total=total,
        limit=limit,
        offset=offset,
    )

@student_router.get("/reference/{booking_reference}", response_model=BookingView)
def get_booking_by_reference(
    booking_reference: str,
    db: Session = Depends(get_db),
    context: SessionContext = Depends(get_session_context)
):
    """Get booking by reference number"""
    booking = BookingService(db).get_booking_by_reference(booking_reference)
    return booking_view(_owned_booking(booking, context, booking_reference))

@student_router.get("/{booking_id}", response_model=BookingView)
def get_booking(
    booking_id: str,
    db: Session = Depends(get_db),
    context: SessionContext = Depends(get_session_context)
):
    """Get booking details by ID"""
    booking = BookingService(db).get_booking(booking_id)
    return booking_view(_owned_booking(booking, context, booking_id))

@student_router.post("/{booking_id}/cancel", response_model=BookingActionResponse)
def cancel_booking(
    booking_id: str,
    request: BookingCancellationRequest,
    db: Session = Depends(get_db),
    context: SessionContext = Depends(get_session_context)
):
    """Cancel a confirmed booking; the full cost is refunded to the wallet"""
    service = BookingService(db)
    _owned_booking(service.get_booking(booking_id), context, booking_id)

    booking, new_balance = service.cancel(booking_id, context.user_id, request.reason)
    return BookingActionResponse(booking=booking_view(service.get_booking(booking.id)), new_balance=new_balance)

# Admin booking management
@admin_router.get("", response_model=BookingHistory)
def search_bookings(
    status: Optional[BookingStatus] = Query(None, description="Filter by booking status"),
    search: Optional[str] = Query(None, description="Reference, student code or name"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    admin: SessionContext = Depends(require_admin)
):
    """Search all bookings"""
    bookings, total = BookingService(db).search_bookings(status, search, limit, offset)
    return BookingHistory(
        bookings=[booking_view(b) for b in bookings],
        total=total,
        limit=limit,
        offset=offset,
    )

@admin_router.put("/{booking_id}/status", response_model=BookingActionResponse)
def update_booking_status(
    booking_id: str,
    request: BookingStatusUpdate,
    db: Session = Depends(get_db),
    admin: SessionContext = Depends(require_admin)
):
    """Cancel (with refund) or complete a booking"""
    service = BookingService(db)
    booking, new_balance = service.update_status(booking_id, request.status, admin.user_id, request.reason)
    return BookingActionResponse(booking=booking_view(service.get_booking(booking.id)), new_balance=new_balance)
