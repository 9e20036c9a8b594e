#!/usr/bin/env python3

from datetime import time
from decimal import Decimal

from shuttle.auth.utils import create_access_token
from shuttle.database import Base, SessionLocal, engine
from shuttle.models import (
    Stop, Route, RouteStop, RouteOperatingHour, PeakHour, Student,
    Booking, BookingLeg, BookingStatusEvent, WalletTransaction
)

def create_seed_data():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()

    try:
        print("🚀 Creating seed data for the University Shuttle System...")

        # Clear existing data (in reverse dependency order)
        print("Clearing existing data...")
        db.query(WalletTransaction).delete()
        db.query(BookingStatusEvent).delete()
        db.query(BookingLeg).delete()
        db.query(Booking).delete()
        db.query(Student).delete()
        db.query(PeakHour).delete()
        db.query(RouteOperatingHour).delete()
        db.query(RouteStop).delete()
        db.query(Route).delete()
        db.query(Stop).delete()

        # 1. Create Stops
        print("Creating campus stops...")
        stops = {
            "main_gate": Stop(name="Main Gate", description="Primary entrance to the university",
                              latitude=Decimal("40.712800"), longitude=Decimal("-74.006000")),
            "library": Stop(name="Library Complex", description="Central library and study areas",
                            latitude=Decimal("40.713000"), longitude=Decimal("-74.005500")),
            "dorms": Stop(name="Student Dormitories", description="Residential area for students",
                          latitude=Decimal("40.712500"), longitude=Decimal("-74.007000")),
            "science": Stop(name="Science Building", description="Science and engineering departments",
                            latitude=Decimal("40.713500"), longitude=Decimal("-74.005000")),
            "sports": Stop(name="Sports Complex", description="Athletic facilities and gymnasium",
                           latitude=Decimal("40.712000"), longitude=Decimal("-74.007500")),
            "medical": Stop(name="Medical Center", description="Campus health services",
                            latitude=Decimal("40.714000"), longitude=Decimal("-74.004500")),
        }
        db.add_all(stops.values())
        db.flush()

        # 2. Create Routes
        print("Creating shuttle routes...")
        routes_data = [
            {
                "name": "Campus Loop", "color": "#3B82F6", "base_fare": Decimal("2.00"),
                "frequency_minutes": 10, "capacity": 40,
                "hours": (time(7, 0), time(22, 0)),
                "peaks": [("Morning", time(8, 0), time(10, 0), Decimal("1.50")),
                          ("Evening", time(17, 0), time(19, 0), Decimal("1.50"))],
                # Circular: ends where it starts
                "stops": [("main_gate", 0), ("library", 5), ("science", 6), ("medical", 7), ("main_gate", 7)],
            },
            {
                "name": "Residential Express", "color": "#10B981", "base_fare": Decimal("1.00"),
                "frequency_minutes": 15, "capacity": 30,
                "hours": (time(6, 30), time(23, 0)),
                "peaks": [("Morning", time(7, 30), time(9, 30), Decimal("1.30")),
                          ("Evening", time(16, 30), time(18, 30), Decimal("1.30"))],
                "stops": [("dorms", 0), ("main_gate", 5), ("library", 5), ("dorms", 5)],
            },
            {
                "name": "Sports & Recreation", "color": "#F59E0B", "base_fare": Decimal("2.00"),
                "frequency_minutes": 20, "capacity": 25,
                "hours": (time(8, 0), time(21, 0)),
                "peaks": [("Evening", time(17, 0), time(20, 0), Decimal("1.20"))],
                "stops": [("main_gate", 0), ("sports", 10), ("dorms", 10)],
            },
        ]

        routes = []
        for data in routes_data:
            route = Route(
                name=data["name"],
                color=data["color"],
                base_fare=data["base_fare"],
                frequency_minutes=data["frequency_minutes"],
                capacity=data["capacity"],
                estimated_duration=sum(minutes for _, minutes in data["stops"]),
            )
            db.add(route)
            db.flush()
            routes.append(route)

            for order, (stop_key, minutes) in enumerate(data["stops"], start=1):
                db.add(RouteStop(
                    route_id=route.id,
                    stop_id=stops[stop_key].id,
                    stop_order=order,
                    estimated_travel_time=minutes,
                ))

            start, end = data["hours"]
            for day in range(7):
                db.add(RouteOperatingHour(route_id=route.id, day_of_week=day, start_time=start, end_time=end))

            for name, peak_start, peak_end, multiplier in data["peaks"]:
                db.add(PeakHour(route_id=route.id, name=name, start_time=peak_start,
                                end_time=peak_end, multiplier=multiplier))

        # 3. Create Students with opening balances
        print("Creating students and wallets...")
        students_data = [
            ("STU001", "John Doe", "john.doe@university.edu", Decimal("150.00")),
            ("STU002", "Jane Smith", "jane.smith@university.edu", Decimal("200.00")),
        ]
        students = []
        for code, name, email, balance in students_data:
            student = Student(student_code=code, name=name, email=email, wallet_balance=balance)
            db.add(student)
            db.flush()
            db.add(WalletTransaction(
                student_id=student.id,
                type="credit",
                amount=balance,
                description="Opening balance",
                reference=f"OPENING_{code}",
                processed_by="seed",
            ))
            students.append(student)

        # Commit all changes
        db.commit()
        print("✅ Successfully created seed data for the University Shuttle System!")
        print(f"Created:")
        print(f"  - {len(stops)} stops")
        print(f"  - {len(routes)} routes")
        print(f"  - {len(students)} students")

        print("\nDevelopment tokens:")
        print(f"  admin:  {create_access_token({'sub': 'admin', 'role': 'admin'})}")
        for student in students:
            token = create_access_token({'sub': student.id, 'role': 'student', 'student_id': student.id})
            print(f"  {student.student_code}: {token}")

    except Exception as e:
        print(f"❌ Error creating seed data: {e}")
        db.rollback()
        raise
    finally:
        db.close()

if __name__ == "__main__":
    create_seed_data()
