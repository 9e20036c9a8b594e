"""Tests for the itinerary planner."""

from datetime import datetime, time, timedelta
from decimal import Decimal

import pytest

from shuttle.exceptions import InvalidStopError
from shuttle.models import Booking, BookingLeg, Stop
from shuttle.routes.schemas import NetworkRoute, PlanRequest
from shuttle.routes.service import (
    NetworkGraph, RouteService, get_scoring_profile, leg_fare, next_departure, to_day_of_week
)

from .conftest import MIDDAY, MORNING_PEAK


def plan(db, start, end, departure_time=MIDDAY, **kwargs):
    return RouteService(db).plan_route(PlanRequest(
        start_stop_id=start, end_stop_id=end, departure_time=departure_time, **kwargs
    ))


def route_ids(itinerary):
    return [leg.route_id for leg in itinerary.legs]


@pytest.fixture
def wednesday_route() -> NetworkRoute:
    return NetworkRoute(
        route_id="r1",
        route_name="Loop",
        base_fare=Decimal("10.00"),
        frequency_minutes=15,
        capacity=10,
        stop_ids=["s1", "s2", "s3"],
        offsets=[0, 5, 12],
        operating_windows={3: [(time(7, 0), time(9, 0))]},
        peak_windows=[(time(8, 0), time(9, 0), Decimal("1.25"))],
    )


class TestNetworkGraph:
    """Building the planner's view of the network."""

    def test_routes_without_two_active_stops_are_dropped(self, db_session):
        graph = NetworkGraph.from_database(db_session)

        assert set(graph.routes) == {"route-blue", "route-red", "route-express"}

    def test_offsets_accumulate_travel_time(self, db_session):
        graph = NetworkGraph.from_database(db_session)

        blue = graph.routes["route-blue"]
        assert blue.stop_ids == ["stop-a", "stop-b", "stop-c"]
        assert blue.offsets == [0, 5, 10]
        assert blue.run_duration == 10

    def test_inactive_stop_is_skipped_but_keeps_its_travel_time(self, db_session):
        db_session.query(Stop).filter(Stop.id == "stop-b").update({"is_active": False})
        db_session.commit()

        blue = NetworkGraph.from_database(db_session).routes["route-blue"]

        assert blue.stop_ids == ["stop-a", "stop-c"]
        assert blue.offsets == [0, 10]

    def test_boardings_index_every_route_at_a_stop(self, db_session):
        graph = NetworkGraph.from_database(db_session)

        boardings = {(route.route_id, index) for route, index in graph.get_boardings("stop-c")}
        assert boardings == {("route-blue", 2), ("route-red", 0)}
        assert graph.get_boardings("stop-unknown") == []


class TestTimetable:
    """Headways, operating windows and peak fares."""

    def test_day_of_week_counts_from_sunday(self):
        assert to_day_of_week(datetime(2026, 10, 11).date()) == 0  # Sunday
        assert to_day_of_week(datetime(2026, 10, 14).date()) == 3  # Wednesday

    def test_waits_for_window_to_open(self, wednesday_route):
        departure, run_start = next_departure(wednesday_route, 1, datetime(2026, 10, 14, 6, 0))

        assert run_start == datetime(2026, 10, 14, 7, 0)
        assert departure == datetime(2026, 10, 14, 7, 5)

    def test_rounds_up_to_next_headway(self, wednesday_route):
        departure, _ = next_departure(wednesday_route, 0, datetime(2026, 10, 14, 7, 1))

        assert departure == datetime(2026, 10, 14, 7, 15)

    def test_last_run_leaves_at_window_end(self, wednesday_route):
        departure, _ = next_departure(wednesday_route, 0, datetime(2026, 10, 14, 8, 50))

        assert departure == datetime(2026, 10, 14, 9, 0)

    def test_no_run_when_service_has_ended_and_tomorrow_is_idle(self, wednesday_route):
        assert next_departure(wednesday_route, 0, datetime(2026, 10, 14, 9, 10)) is None

    def test_route_without_hours_runs_all_day(self, wednesday_route):
        all_day = wednesday_route.model_copy(update={"operating_windows": {}})

        departure, _ = next_departure(all_day, 0, datetime(2026, 10, 17, 23, 50))

        assert departure == datetime(2026, 10, 18, 0, 0)

    def test_peak_multiplier_applies_at_boarding_time(self, wednesday_route):
        assert leg_fare(wednesday_route, datetime(2026, 10, 14, 7, 45)) == Decimal("10.00")
        assert leg_fare(wednesday_route, datetime(2026, 10, 14, 8, 15)) == Decimal("12.50")

    def test_unknown_profile_is_rejected(self):
        with pytest.raises(ValueError):
            get_scoring_profile("scenic")


class TestPlanning:
    """End-to-end planning against the seeded network."""

    def test_direct_and_transfer_itineraries(self, db_session):
        itineraries = plan(db_session, "stop-a", "stop-d")

        assert [route_ids(i) for i in itineraries] == [
            ["route-express"],
            ["route-blue", "route-red"],
        ]

        express, transfer = itineraries
        assert express.is_direct
        assert express.total_time == 25
        assert express.total_cost == Decimal("30.00")
        assert express.legs[0].scheduled_time == MIDDAY

        assert transfer.total_time == 28
        assert transfer.total_cost == Decimal("25.00")
        assert transfer.legs[0].arrival_time == datetime(2026, 10, 14, 11, 10)
        # 2 minute transfer buffer, then the next Red Line run from C
        assert transfer.legs[1].scheduled_time == datetime(2026, 10, 14, 11, 20)

    def test_legs_chain_from_origin_to_destination(self, db_session):
        for itinerary in plan(db_session, "stop-a", "stop-e"):
            assert itinerary.legs[0].from_stop_id == "stop-a"
            assert itinerary.legs[-1].to_stop_id == "stop-e"
            for previous, following in zip(itinerary.legs, itinerary.legs[1:]):
                assert previous.to_stop_id == following.from_stop_id
                assert following.scheduled_time >= previous.arrival_time

    def test_legs_never_revisit_a_stop(self, db_session):
        for itinerary in plan(db_session, "stop-a", "stop-e"):
            visited = [itinerary.legs[0].from_stop_id] + [leg.to_stop_id for leg in itinerary.legs]
            assert len(visited) == len(set(visited))

    @pytest.mark.parametrize("optimization,expected_first", [
        ("balanced", ["route-express"]),
        ("time", ["route-express"]),
        ("transfers", ["route-express"]),
        ("cost", ["route-blue", "route-red"]),
    ])
    def test_ranking_follows_optimization(self, db_session, optimization, expected_first):
        itineraries = plan(db_session, "stop-a", "stop-d", optimization=optimization)

        assert route_ids(itineraries[0]) == expected_first

    def test_max_transfers_limits_leg_count(self, db_session):
        itineraries = plan(db_session, "stop-a", "stop-d", max_transfers=0)

        assert [route_ids(i) for i in itineraries] == [["route-express"]]

    def test_max_results_truncates(self, db_session):
        assert len(plan(db_session, "stop-a", "stop-d", max_results=1)) == 1

    def test_unreachable_destination_returns_empty(self, db_session):
        assert plan(db_session, "stop-e", "stop-a") == []

    def test_departure_waits_for_next_morning(self, db_session):
        itineraries = plan(db_session, "stop-a", "stop-b", departure_time=datetime(2026, 10, 14, 22, 5))

        assert itineraries[0].legs[0].scheduled_time == datetime(2026, 10, 15, 7, 0)

    def test_peak_fare_and_crowding(self, db_session):
        peak = plan(db_session, "stop-a", "stop-c", departure_time=MORNING_PEAK)[0]
        off_peak = plan(db_session, "stop-a", "stop-c")[0]

        assert peak.total_cost == Decimal("15.00")
        assert peak.max_crowding == pytest.approx(0.5)
        assert off_peak.total_cost == Decimal("10.00")
        assert off_peak.max_crowding == pytest.approx(0.2)

    def test_booked_riders_on_the_same_run_raise_crowding(self, db_session):
        def book(reference, status, from_stop, to_stop, scheduled):
            booking = Booking(student_id="student-1", booking_reference=reference,
                              status=status, total_cost=Decimal("10.00"))
            db_session.add(booking)
            db_session.flush()
            db_session.add(BookingLeg(booking_id=booking.id, leg_order=1, route_id="route-blue",
                                      from_stop_id=from_stop, to_stop_id=to_stop,
                                      scheduled_time=scheduled, cost=Decimal("10.00")))

        book("SHT-261014-AAAAAA", "confirmed", "stop-a", "stop-c", MIDDAY)
        book("SHT-261014-BBBBBB", "confirmed", "stop-b", "stop-c", MIDDAY + timedelta(minutes=5))
        book("SHT-261014-CCCCCC", "confirmed", "stop-a", "stop-c", MIDDAY + timedelta(minutes=15))
        book("SHT-261014-DDDDDD", "cancelled", "stop-a", "stop-c", MIDDAY)
        db_session.commit()

        itinerary = plan(db_session, "stop-a", "stop-c")[0]

        assert itinerary.max_crowding == pytest.approx(0.4)

    def test_timezone_and_microseconds_are_dropped(self, db_session):
        itinerary = plan(db_session, "stop-a", "stop-c",
                         departure_time=MIDDAY.replace(microsecond=123456))[0]

        assert itinerary.legs[0].scheduled_time == MIDDAY
        assert itinerary.total_time == 10


class TestPlanValidation:
    """Requests the planner refuses."""

    def test_same_origin_and_destination(self, db_session):
        with pytest.raises(InvalidStopError):
            plan(db_session, "stop-a", "stop-a")

    def test_inactive_stop(self, db_session):
        with pytest.raises(InvalidStopError, match="inactive"):
            plan(db_session, "stop-a", "stop-x")

    @pytest.mark.parametrize("stop_id", ["stop-unknown", "bad id!", ""])
    def test_unknown_or_malformed_stop(self, db_session, stop_id):
        with pytest.raises(InvalidStopError, match="not found"):
            plan(db_session, stop_id, "stop-d")
