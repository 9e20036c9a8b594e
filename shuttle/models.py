import uuid
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Time, Text, ForeignKey, Numeric, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from shuttle.database import Base

def generate_id() -> str:
    return str(uuid.uuid4())

# ================================
# Stops
# ================================
class Stop(Base):
    __tablename__ = "stops"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(255), nullable=False, index=True)
    description = Column(Text)
    latitude = Column(Numeric(10, 6))
    longitude = Column(Numeric(10, 6))
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    route_stops = relationship("RouteStop", back_populates="stop")

# ================================
# Routes, Stop Sequence & Timetable
# ================================
class Route(Base):
    __tablename__ = "routes"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    color = Column(String(20))
    base_fare = Column(Numeric(10, 2), nullable=False, default=0)
    estimated_duration = Column(Integer)
    frequency_minutes = Column(Integer)
    capacity = Column(Integer, default=40, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    stops = relationship("RouteStop", back_populates="route", order_by="RouteStop.stop_order")
    operating_hours = relationship("RouteOperatingHour", back_populates="route")
    peak_hours = relationship("PeakHour", back_populates="route")

class RouteStop(Base):
    __tablename__ = "route_stops"
    __table_args__ = (UniqueConstraint("route_id", "stop_order", name="uq_route_stop_order"),)

    id = Column(String(36), primary_key=True, default=generate_id)
    route_id = Column(String(36), ForeignKey("routes.id"), nullable=False, index=True)
    stop_id = Column(String(36), ForeignKey("stops.id"), nullable=False, index=True)
    stop_order = Column(Integer, nullable=False)
    estimated_travel_time = Column(Integer, default=0)  # minutes from previous stop
    distance_from_previous = Column(Numeric(8, 2))  # km
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    route = relationship("Route", back_populates="stops")
    stop = relationship("Stop", back_populates="route_stops")

class RouteOperatingHour(Base):
    __tablename__ = "route_operating_hours"

    id = Column(String(36), primary_key=True, default=generate_id)
    route_id = Column(String(36), ForeignKey("routes.id"), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)  # 0=Sunday, 6=Saturday
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    route = relationship("Route", back_populates="operating_hours")

class PeakHour(Base):
    __tablename__ = "peak_hours"

    id = Column(String(36), primary_key=True, default=generate_id)
    route_id = Column(String(36), ForeignKey("routes.id"), nullable=False, index=True)
    name = Column(String(100))
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    multiplier = Column(Numeric(4, 2), default=1, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    route = relationship("Route", back_populates="peak_hours")

# ================================
# Students
# ================================
class Student(Base):
    __tablename__ = "students"

    id = Column(String(36), primary_key=True, default=generate_id)
    student_code = Column(String(50), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    wallet_balance = Column(Numeric(10, 2), default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    bookings = relationship("Booking", back_populates="student")
    wallet_transactions = relationship("WalletTransaction", back_populates="student")

# ================================
# Bookings
# ================================
class Booking(Base):
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, default=generate_id)
    student_id = Column(String(36), ForeignKey("students.id"), nullable=False, index=True)
    booking_reference = Column(String(32), unique=True, nullable=False, index=True)
    status = Column(String(20), nullable=False, default="pending", index=True)
    total_cost = Column(Numeric(10, 2), nullable=False)
    notes = Column(Text)
    cancelled_at = Column(DateTime(timezone=True))
    cancelled_by = Column(String(36))
    cancellation_reason = Column(Text)
    completed_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    student = relationship("Student", back_populates="bookings")
    legs = relationship("BookingLeg", back_populates="booking", order_by="BookingLeg.leg_order")
    status_events = relationship("BookingStatusEvent", back_populates="booking", order_by="BookingStatusEvent.created_at")

class BookingLeg(Base):
    __tablename__ = "booking_legs"

    id = Column(String(36), primary_key=True, default=generate_id)
    booking_id = Column(String(36), ForeignKey("bookings.id"), nullable=False, index=True)
    leg_order = Column(Integer, nullable=False)
    route_id = Column(String(36), ForeignKey("routes.id"), nullable=False, index=True)
    from_stop_id = Column(String(36), ForeignKey("stops.id"), nullable=False)
    to_stop_id = Column(String(36), ForeignKey("stops.id"), nullable=False)
    scheduled_time = Column(DateTime, nullable=False, index=True)
    cost = Column(Numeric(10, 2), nullable=False)

    # Relationships
    booking = relationship("Booking", back_populates="legs")
    route = relationship("Route")
    from_stop = relationship("Stop", foreign_keys=[from_stop_id])
    to_stop = relationship("Stop", foreign_keys=[to_stop_id])

class BookingStatusEvent(Base):
    __tablename__ = "booking_status_events"

    id = Column(String(36), primary_key=True, default=generate_id)
    booking_id = Column(String(36), ForeignKey("bookings.id"), nullable=False, index=True)
    from_status = Column(String(20))
    to_status = Column(String(20), nullable=False)
    actor_id = Column(String(36))
    reason = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    booking = relationship("Booking", back_populates="status_events")

# ================================
# Wallet Ledger
# ================================
class WalletTransaction(Base):
    __tablename__ = "wallet_transactions"

    id = Column(String(36), primary_key=True, default=generate_id)
    student_id = Column(String(36), ForeignKey("students.id"), nullable=False, index=True)
    type = Column(String(10), nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    booking_id = Column(String(36), ForeignKey("bookings.id"), index=True)
    description = Column(Text, nullable=False)
    reference = Column(String(128), unique=True, index=True)
    processed_by = Column(String(36))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    # Relationships
    student = relationship("Student", back_populates="wallet_transactions")
    booking = relationship("Booking")
