from typing import List, Optional, Sequence, Tuple
from datetime import datetime
from decimal import Decimal
import logging
import secrets
import string

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from shuttle.bookings.schemas import BookingLegRequest, BookingStatus
from shuttle.config import settings
from shuttle.exceptions import (
    InsufficientBalanceError, InvalidTransitionError, NotFoundError,
    ReferenceUnavailableError, ShuttleError
)
from shuttle.models import Booking, BookingLeg, BookingStatusEvent, Student
from shuttle.routes.validation import RouteValidator
from shuttle.wallets.schemas import TransactionType
from shuttle.wallets.service import WalletService, to_points

logger = logging.getLogger(__name__)

REFERENCE_ALPHABET = string.ascii_uppercase + string.digits

# Terminal states have no outgoing transitions
ALLOWED_TRANSITIONS = {
    BookingStatus.PENDING: {BookingStatus.CONFIRMED},
    BookingStatus.CONFIRMED: {BookingStatus.CANCELLED, BookingStatus.COMPLETED},
    BookingStatus.CANCELLED: set(),
    BookingStatus.COMPLETED: set(),
}

class BookingService:
    """Service for shuttle bookings paid from the student wallet"""

    def __init__(self, db: Session):
        self.db = db
        self.wallets = WalletService(db)
        self.validator = RouteValidator(db)

    def confirm(
        self,
        student_id: str,
        legs: Sequence[BookingLegRequest],
        total_cost: Decimal
    ) -> Tuple[Booking, Decimal]:
        """
        Book an itinerary and debit the wallet in one transaction.

        Returns the confirmed booking and the new wallet balance. On any error
        nothing is written: no booking, no ledger row, balance unchanged.
        """
        total_cost = to_points(total_cost)

        for _ in range(settings.BOOKING_REFERENCE_ATTEMPTS):
            placed = self._place_booking(student_id, legs, total_cost)
            if placed is not None:
                return placed
        raise ReferenceUnavailableError("Could not reserve a unique booking reference")

    def _place_booking(
        self,
        student_id: str,
        legs: Sequence[BookingLegRequest],
        total_cost: Decimal
    ) -> Optional[Tuple[Booking, Decimal]]:
        # None means the reference was taken between generation and commit
        booking_reference = None
        try:
            student = self.wallets.get_student(student_id, lock=True)
            self.validator.validate_booking_legs(legs, total_cost, settings.COST_TOLERANCE)

            balance = to_points(student.wallet_balance)
            if balance < total_cost:
                raise InsufficientBalanceError(
                    f"Wallet balance {balance} is less than the booking cost {total_cost}"
                )

            # Re-checks the balance inside the UPDATE itself
            self.wallets.apply_debit(student, total_cost)

            booking_reference = self._generate_booking_reference()
            booking = Booking(
                student_id=student.id,
                booking_reference=booking_reference,
                status=BookingStatus.CONFIRMED.value,
                total_cost=total_cost,
                created_at=datetime.now(),
            )
            self.db.add(booking)
            self.db.flush()

            for order, leg in enumerate(legs, start=1):
                self.db.add(BookingLeg(
                    booking_id=booking.id,
                    leg_order=order,
                    route_id=leg.route_id,
                    from_stop_id=leg.from_stop_id,
                    to_stop_id=leg.to_stop_id,
                    scheduled_time=leg.scheduled_time,
                    cost=to_points(leg.cost),
                ))

            self._record_event(booking, BookingStatus.PENDING, BookingStatus.CONFIRMED, student.id)
            self.wallets.record_transaction(
                student,
                TransactionType.DEBIT,
                total_cost,
                f"Shuttle booking {booking_reference}",
                f"BOOKING_{booking_reference}",
                booking_id=booking.id,
            )
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            if booking_reference and self._reference_taken(booking_reference):
                logger.warning("Booking reference %s taken concurrently, retrying", booking_reference)
                return None
            logger.exception("Booking failed for student %s", student_id)
            raise
        except ShuttleError as e:
            self.db.rollback()
            logger.warning("Booking rejected for student %s: %s", student_id, e.message)
            raise
        except Exception:
            self.db.rollback()
            logger.exception("Booking failed for student %s", student_id)
            raise

        new_balance = to_points(student.wallet_balance)
        logger.info(
            "Booking %s confirmed for %s, charged %s, balance now %s",
            booking.booking_reference, student.student_code, total_cost, new_balance
        )
        return booking, new_balance

    def cancel(
        self,
        booking_id: str,
        actor_id: Optional[str] = None,
        reason: Optional[str] = None
    ) -> Tuple[Booking, Decimal]:
        """Cancel a confirmed booking and refund its full cost to the wallet"""
        try:
            booking = self._lock_booking(booking_id)
            self._check_transition(booking, BookingStatus.CANCELLED)
            student = self.wallets.get_student(booking.student_id, lock=True)

            refund = to_points(booking.total_cost)
            self.wallets.apply_credit(student, refund)

            previous = BookingStatus(booking.status)
            booking.status = BookingStatus.CANCELLED.value
            booking.cancelled_at = datetime.now()
            booking.cancelled_by = actor_id
            booking.cancellation_reason = reason
            self._record_event(booking, previous, BookingStatus.CANCELLED, actor_id, reason)

            self.wallets.record_transaction(
                student,
                TransactionType.REFUND,
                refund,
                f"Refund for cancelled booking {booking.booking_reference}",
                f"REFUND_{booking.booking_reference}",
                booking_id=booking.id,
                processed_by=actor_id,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        new_balance = to_points(student.wallet_balance)
        logger.info(
            "Booking %s cancelled by %s, refunded %s",
            booking.booking_reference, actor_id, refund
        )
        return booking, new_balance

    def mark_completed(self, booking_id: str, actor_id: Optional[str] = None) -> Booking:
        """Close a confirmed booking after the ride; no wallet effect"""
        try:
            booking = self._lock_booking(booking_id)
            self._check_transition(booking, BookingStatus.COMPLETED)

            previous = BookingStatus(booking.status)
            booking.status = BookingStatus.COMPLETED.value
            booking.completed_at = datetime.now()
            self._record_event(booking, previous, BookingStatus.COMPLETED, actor_id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info("Booking %s completed", booking.booking_reference)
        return booking

    def update_status(
        self,
        booking_id: str,
        status: BookingStatus,
        actor_id: Optional[str] = None,
        reason: Optional[str] = None
    ) -> Tuple[Booking, Optional[Decimal]]:
        """Admin status change, routed to cancel or complete"""
        if status == BookingStatus.CANCELLED:
            return self.cancel(booking_id, actor_id, reason)
        if status == BookingStatus.COMPLETED:
            return self.mark_completed(booking_id, actor_id), None

        booking = self.get_booking(booking_id)
        if not booking:
            raise NotFoundError(f"Booking {booking_id} not found")
        raise InvalidTransitionError(f"Cannot move booking from {booking.status} to {status.value}")

    def get_booking(self, booking_id: str) -> Optional[Booking]:
        """Get booking by ID"""
        return self._booking_query().filter(Booking.id == booking_id).first()

    def get_booking_by_reference(self, booking_reference: str) -> Optional[Booking]:
        """Get booking by reference number"""
        return self._booking_query().filter(
            Booking.booking_reference == booking_reference.upper()
        ).first()

    def get_student_bookings(
        self,
        student_id: str,
        status: Optional[BookingStatus] = None,
        limit: int = 20,
        offset: int = 0
    ) -> Tuple[List[Booking], int]:
        """Bookings for a student, newest first"""
        query = self._booking_query().filter(Booking.student_id == student_id)
        if status:
            query = query.filter(Booking.status == status.value)

        total = query.count()
        bookings = query.order_by(Booking.created_at.desc(), Booking.id).offset(offset).limit(limit).all()
        return bookings, total

    def search_bookings(
        self,
        status: Optional[BookingStatus] = None,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> Tuple[List[Booking], int]:
        """Search bookings by status and reference or student"""
        query = self._booking_query().join(Student, Booking.student_id == Student.id)
        if status:
            query = query.filter(Booking.status == status.value)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                Booking.booking_reference.ilike(pattern),
                Student.student_code.ilike(pattern),
                Student.name.ilike(pattern),
            ))

        total = query.count()
        bookings = query.order_by(Booking.created_at.desc(), Booking.id).offset(offset).limit(limit).all()
        return bookings, total

    def _booking_query(self):
        return self.db.query(Booking).options(
            selectinload(Booking.legs).selectinload(BookingLeg.route),
            selectinload(Booking.legs).selectinload(BookingLeg.from_stop),
            selectinload(Booking.legs).selectinload(BookingLeg.to_stop),
            selectinload(Booking.status_events),
        )

    def _lock_booking(self, booking_id: str) -> Booking:
        booking = self.db.query(Booking).filter(Booking.id == booking_id).with_for_update().first()
        if not booking:
            raise NotFoundError(f"Booking {booking_id} not found")
        return booking

    def _check_transition(self, booking: Booking, target: BookingStatus):
        current = BookingStatus(booking.status)
        if target not in ALLOWED_TRANSITIONS[current]:
            raise InvalidTransitionError(
                f"Booking {booking.booking_reference} is {current.value} and cannot become {target.value}"
            )

    def _record_event(
        self,
        booking: Booking,
        from_status: BookingStatus,
        to_status: BookingStatus,
        actor_id: Optional[str] = None,
        reason: Optional[str] = None
    ):
        self.db.add(BookingStatusEvent(
            booking_id=booking.id,
            from_status=from_status.value,
            to_status=to_status.value,
            actor_id=actor_id,
            reason=reason,
            created_at=datetime.now(),
        ))

    def _generate_booking_reference(self) -> str:
        """Human-readable reference, e.g. SHT-261018-7K2QXA"""
        date_part = datetime.now().strftime("%y%m%d")
        for _ in range(settings.BOOKING_REFERENCE_ATTEMPTS):
            suffix = "".join(secrets.choice(REFERENCE_ALPHABET) for _ in range(6))
            reference = f"{settings.BOOKING_REFERENCE_PREFIX}-{date_part}-{suffix}"
            if not self._reference_taken(reference):
                return reference
        raise ReferenceUnavailableError("Could not generate a unique booking reference")

    def _reference_taken(self, reference: str) -> bool:
        return self.db.query(Booking.id).filter(Booking.booking_reference == reference).first() is not None
