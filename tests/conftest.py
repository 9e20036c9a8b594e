"""Shared fixtures: an in-memory shuttle network, students and API client."""

from datetime import datetime, time
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from shuttle.auth.utils import create_access_token
from shuttle.database import Base, get_db
from shuttle.main import app
from shuttle.models import (
    PeakHour, Route, RouteOperatingHour, RouteStop, Stop, Student, WalletTransaction
)

# Wednesday, off-peak
MIDDAY = datetime(2026, 10, 14, 11, 0, 0)
# Wednesday, inside the Blue Line morning peak
MORNING_PEAK = datetime(2026, 10, 14, 8, 30, 0)


def seed_network(db) -> None:
    """
    Stops A-E plus an inactive annex, three planning routes and one route
    that only touches the annex.

    Blue Line   A -5-> B -5-> C   every 15 min, 07:00-22:00 daily, peak 08:00-10:00 x1.5
    Red Line    C -8-> D -4-> E   every 20 min, all day
    Express     A -25-> D         every 30 min, all day
    Green Line  E -6-> X(inactive)
    """
    stops = [
        Stop(id="stop-a", name="Main Gate"),
        Stop(id="stop-b", name="Library"),
        Stop(id="stop-c", name="Science Block"),
        Stop(id="stop-d", name="Hostels"),
        Stop(id="stop-e", name="Sports Complex"),
        Stop(id="stop-x", name="Old Annex", is_active=False),
    ]
    db.add_all(stops)

    blue = Route(id="route-blue", name="Blue Line", base_fare=Decimal("10.00"),
                 frequency_minutes=15, capacity=10, color="#1E88E5")
    red = Route(id="route-red", name="Red Line", base_fare=Decimal("15.00"),
                frequency_minutes=20, capacity=20, color="#E53935")
    express = Route(id="route-express", name="Express", base_fare=Decimal("30.00"),
                    frequency_minutes=30, capacity=30)
    green = Route(id="route-green", name="Green Line", base_fare=Decimal("5.00"),
                  frequency_minutes=30, capacity=20)
    db.add_all([blue, red, express, green])

    db.add_all([
        RouteStop(route_id="route-blue", stop_id="stop-a", stop_order=1, estimated_travel_time=0),
        RouteStop(route_id="route-blue", stop_id="stop-b", stop_order=2, estimated_travel_time=5),
        RouteStop(route_id="route-blue", stop_id="stop-c", stop_order=3, estimated_travel_time=5),
        RouteStop(route_id="route-red", stop_id="stop-c", stop_order=1, estimated_travel_time=0),
        RouteStop(route_id="route-red", stop_id="stop-d", stop_order=2, estimated_travel_time=8),
        RouteStop(route_id="route-red", stop_id="stop-e", stop_order=3, estimated_travel_time=4),
        RouteStop(route_id="route-express", stop_id="stop-a", stop_order=1, estimated_travel_time=0),
        RouteStop(route_id="route-express", stop_id="stop-d", stop_order=2, estimated_travel_time=25),
        RouteStop(route_id="route-green", stop_id="stop-e", stop_order=1, estimated_travel_time=0),
        RouteStop(route_id="route-green", stop_id="stop-x", stop_order=2, estimated_travel_time=6),
    ])

    db.add_all([
        RouteOperatingHour(route_id="route-blue", day_of_week=day,
                           start_time=time(7, 0), end_time=time(22, 0))
        for day in range(7)
    ])
    db.add(PeakHour(route_id="route-blue", name="Morning", start_time=time(8, 0),
                    end_time=time(10, 0), multiplier=Decimal("1.50")))
    db.commit()


def seed_students(db) -> None:
    """Two students whose cached balances match their ledgers"""
    for student_id, code, name, balance in (
        ("student-1", "STU001", "Asha Rao", Decimal("100.00")),
        ("student-2", "STU002", "Ben Okafor", Decimal("50.00")),
    ):
        db.add(Student(id=student_id, student_code=code, name=name,
                       email=f"{code.lower()}@campus.edu", wallet_balance=balance))
        db.add(WalletTransaction(student_id=student_id, type="credit", amount=balance,
                                 description="Opening balance", reference=f"OPENING_{code}"))
    db.commit()


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    seed_network(session)
    seed_students(session)
    yield session
    session.close()


@pytest.fixture
def client(db_session):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth_headers(role: str = "student", student_id: str = None, user_id: str = None) -> dict:
    token = create_access_token({
        "sub": user_id or student_id or "admin-1",
        "role": role,
        "student_id": student_id,
    })
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def student_headers():
    return auth_headers("student", student_id="student-1")


@pytest.fixture
def admin_headers():
    return auth_headers("admin", user_id="admin-1")
