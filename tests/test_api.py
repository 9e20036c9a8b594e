"""Tests for the HTTP endpoints."""

from datetime import datetime
from decimal import Decimal

from shuttle.models import Booking

from .conftest import auth_headers


def plan_params(**overrides):
    params = {
        "start_stop_id": "stop-a",
        "end_stop_id": "stop-d",
        "departure_time": "2026-10-14T11:00:00",
    }
    params.update(overrides)
    return params


def confirm_body(cost=30, student_id="student-1"):
    return {
        "studentId": student_id,
        "legs": [{
            "routeId": "route-express",
            "fromStopId": "stop-a",
            "toStopId": "stop-d",
            "scheduledTime": "2026-10-14T11:00:00",
            "cost": cost,
        }],
        "totalCost": cost,
    }


class TestPublicEndpoints:

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}

    def test_stop_directory(self, client):
        response = client.get("/api/stops", params={"active_only": True})

        assert response.status_code == 200
        names = [stop["name"] for stop in response.json()["stops"]]
        assert "Old Annex" not in names
        assert response.json()["total"] == 5

    def test_stop_detail_and_not_found(self, client):
        detail = client.get("/api/stops/stop-c").json()
        assert {r["route_id"] for r in detail["routes"]} == {"route-blue", "route-red"}

        response = client.get("/api/stops/stop-404")
        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"

    def test_route_detail(self, client):
        route = client.get("/api/routes/route-blue").json()

        assert [s["stop_id"] for s in route["stops"]] == ["stop-a", "stop-b", "stop-c"]
        assert route["base_fare"] == 10.0
        assert len(route["operating_hours"]) == 7
        assert route["peak_hours"][0]["multiplier"] == 1.5

    def test_optimize(self, client):
        response = client.get("/api/routes/optimize", params=plan_params())

        assert response.status_code == 200
        itineraries = response.json()
        assert len(itineraries) == 2
        first_leg = itineraries[0]["legs"][0]
        assert first_leg["from"] == "stop-a"
        assert first_leg["to"] == "stop-d"
        assert first_leg["cost"] == 30.0
        assert itineraries[0]["total_time"] == 25

    def test_optimize_same_stop(self, client):
        response = client.get("/api/routes/optimize", params=plan_params(end_stop_id="stop-a"))

        assert response.status_code == 400
        assert response.json() == {
            "success": False,
            "message": "Origin and destination stops cannot be the same",
            "error": "INVALID_STOP",
        }

    def test_optimize_no_connection(self, client):
        response = client.get("/api/routes/optimize", params=plan_params(start_stop_id="stop-e", end_stop_id="stop-a"))

        assert response.status_code == 200
        assert response.json() == []

    def test_options(self, client):
        options = client.get("/api/routes/options", params=plan_params()).json()

        assert [o["name"] for o in options] == ["Express", "Blue Line + Red Line"]
        assert options[1]["transfer_details"]["transfer_stop"] == "Science Block"
        assert options[0]["from_stop"] == "Main Gate"


class TestStudentBookings:

    def test_requires_token(self, client):
        assert client.post("/api/student/bookings/confirm", json=confirm_body()).status_code == 401

    def test_confirm(self, client, student_headers):
        response = client.post("/api/student/bookings/confirm", json=confirm_body(), headers=student_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["newBalance"] == 70.0
        assert body["bookingReference"].startswith("SHT-")

        booking = client.get(f"/api/student/bookings/{body['bookingId']}", headers=student_headers).json()
        assert booking["status"] == "confirmed"
        assert booking["legs"][0]["routeName"] == "Express"
        assert booking["legs"][0]["fromStopName"] == "Main Gate"

    def test_confirm_insufficient_balance(self, client, admin_headers):
        fine = {"studentCode": "STU002", "type": "debit", "amount": 40, "description": "Library fine"}
        client.post("/api/admin/wallets/allocate", json=fine, headers=admin_headers)
        headers = auth_headers("student", student_id="student-2")

        response = client.post("/api/student/bookings/confirm",
                               json=confirm_body(student_id="student-2"), headers=headers)

        assert response.status_code == 402
        assert response.json()["success"] is False
        assert response.json()["error"] == "INSUFFICIENT_BALANCE"

    def test_confirm_malformed_leg(self, client, student_headers):
        body = confirm_body()
        body["legs"][0]["toStopId"] = "stop-c"

        response = client.post("/api/student/bookings/confirm", json=body, headers=student_headers)

        assert response.status_code == 400
        assert response.json()["error"] == "MALFORMED_LEG"

    def test_confirm_underpriced_leg(self, client, student_headers):
        response = client.post("/api/student/bookings/confirm",
                               json=confirm_body("0.01"), headers=student_headers)

        assert response.status_code == 400
        assert response.json()["error"] == "MALFORMED_LEG"
        wallet = client.get("/api/student/wallet", headers=student_headers).json()
        assert wallet["walletBalance"] == 100.0

    def test_reference_exhaustion_returns_error_body(self, client, db_session, student_headers, monkeypatch):
        date_part = datetime.now().strftime("%y%m%d")
        db_session.add(Booking(student_id="student-2", booking_reference=f"SHT-{date_part}-AAAAAA",
                               status="confirmed", total_cost=Decimal("5")))
        db_session.commit()
        monkeypatch.setattr("shuttle.bookings.booking_service.secrets.choice", lambda _: "A")

        response = client.post("/api/student/bookings/confirm", json=confirm_body(), headers=student_headers)

        assert response.status_code == 503
        assert response.json()["success"] is False
        assert response.json()["error"] == "REFERENCE_UNAVAILABLE"

    def test_cannot_book_for_another_student(self, client, student_headers):
        response = client.post("/api/student/bookings/confirm",
                               json=confirm_body(student_id="student-2"), headers=student_headers)

        assert response.status_code == 403

    def test_history_and_cancel(self, client, student_headers):
        booking_id = client.post("/api/student/bookings/confirm",
                                 json=confirm_body(30), headers=student_headers).json()["bookingId"]

        response = client.post(f"/api/student/bookings/{booking_id}/cancel",
                               json={"reason": "Exam moved"}, headers=student_headers)
        assert response.status_code == 200
        assert response.json()["newBalance"] == 100.0
        assert response.json()["booking"]["status"] == "cancelled"

        again = client.post(f"/api/student/bookings/{booking_id}/cancel", json={}, headers=student_headers)
        assert again.status_code == 409

        history = client.get("/api/student/bookings/history", headers=student_headers).json()
        assert history["total"] == 1
        assert history["bookings"][0]["cancellationReason"] == "Exam moved"

    def test_other_students_booking_is_hidden(self, client, student_headers):
        booking_id = client.post("/api/student/bookings/confirm",
                                 json=confirm_body(), headers=student_headers).json()["bookingId"]

        other = auth_headers("student", student_id="student-2")
        assert client.get(f"/api/student/bookings/{booking_id}", headers=other).status_code == 403


class TestAdminEndpoints:

    def test_requires_admin(self, client, student_headers):
        assert client.get("/api/admin/wallets", headers=student_headers).status_code == 403

    def test_allocate_and_replay(self, client, admin_headers):
        body = {
            "studentCode": "STU002",
            "type": "credit",
            "amount": 25,
            "description": "Scholarship credit",
            "reference": "SCH-2026-001",
        }

        first = client.post("/api/admin/wallets/allocate", json=body, headers=admin_headers).json()
        replay = client.post("/api/admin/wallets/allocate", json=body, headers=admin_headers).json()

        assert first == {"success": True, "newBalance": 75.0, "replayed": False}
        assert replay == {"success": True, "newBalance": 75.0, "replayed": True}

        conflict = client.post("/api/admin/wallets/allocate", json={**body, "amount": 30}, headers=admin_headers)
        assert conflict.status_code == 409
        assert conflict.json()["error"] == "DUPLICATE_REFERENCE"

    def test_allocate_rejects_non_positive_amount(self, client, admin_headers):
        body = {"studentCode": "STU002", "type": "credit", "amount": 0, "description": "Nothing"}

        assert client.post("/api/admin/wallets/allocate", json=body, headers=admin_headers).status_code == 422

    def test_bulk_allocate(self, client, admin_headers):
        body = {"amount": 10, "description": "Allowance", "reference": "ALLOW-10"}

        response = client.post("/api/admin/wallets/bulk-allocate", json=body, headers=admin_headers)

        assert response.json() == {"success": True, "totalStudents": 2, "applied": 2, "replayed": 0}

    def test_reconcile(self, client, admin_headers):
        report = client.get("/api/admin/wallets/STU001/reconcile", headers=admin_headers).json()

        assert report == {
            "studentCode": "STU001",
            "cachedBalance": 100.0,
            "ledgerBalance": 100.0,
            "consistent": True,
        }

    def test_complete_booking(self, client, admin_headers, student_headers):
        booking_id = client.post("/api/student/bookings/confirm",
                                 json=confirm_body(), headers=student_headers).json()["bookingId"]

        response = client.put(f"/api/admin/bookings/{booking_id}/status",
                              json={"status": "completed"}, headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["booking"]["status"] == "completed"

        search = client.get("/api/admin/bookings", params={"status": "completed"}, headers=admin_headers).json()
        assert [b["id"] for b in search["bookings"]] == [booking_id]


class TestStudentWallet:

    def test_wallet_and_transactions(self, client, student_headers):
        wallet = client.get("/api/student/wallet", headers=student_headers).json()
        assert wallet["walletBalance"] == 100.0
        assert wallet["studentCode"] == "STU001"

        history = client.get("/api/student/wallet/transactions", headers=student_headers).json()
        assert history["total"] == 1
        assert history["transactions"][0]["type"] == "credit"

    def test_recharge(self, client, student_headers):
        body = {"amount": 50, "razorpayPaymentId": "pay_XYZ"}

        first = client.post("/api/student/wallet/recharge", json=body, headers=student_headers).json()
        replay = client.post("/api/student/wallet/recharge", json=body, headers=student_headers).json()

        assert first == {"success": True, "walletBalance": 150.0}
        assert replay == {"success": True, "walletBalance": 150.0}

    def test_cannot_read_another_wallet(self, client, student_headers):
        response = client.get("/api/student/wallet", params={"student_id": "student-2"}, headers=student_headers)

        assert response.status_code == 403
