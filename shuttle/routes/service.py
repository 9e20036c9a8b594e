from typing import List, Dict, Optional, Tuple, NamedTuple, FrozenSet
from datetime import datetime, date, timedelta, time
from decimal import Decimal, ROUND_HALF_UP
import heapq
import logging
import math

from sqlalchemy.orm import Session, selectinload

from shuttle.config import settings
from shuttle.models import Route, RouteStop, Booking, BookingLeg
from shuttle.routes.schemas import (
    PlanRequest, Itinerary, ItineraryLeg, NetworkRoute, ScoringWeights
)
from shuttle.routes.validation import RouteValidator

logger = logging.getLogger(__name__)

SCORING_PROFILES: Dict[str, ScoringWeights] = {
    "balanced": ScoringWeights(per_minute=1.0, per_point=0.1, per_transfer=10.0),
    "time": ScoringWeights(per_minute=1.0, per_point=0.0, per_transfer=0.5),
    "cost": ScoringWeights(per_minute=0.05, per_point=1.0, per_transfer=0.5),
    "transfers": ScoringWeights(per_minute=1.0, per_point=0.0, per_transfer=60.0),
}

ALL_DAY = [(time(0, 0), time(23, 59, 59))]

def get_scoring_profile(name: str) -> ScoringWeights:
    try:
        return SCORING_PROFILES[name]
    except KeyError:
        raise ValueError(f"Unknown optimization profile: {name}")

def to_day_of_week(day: date) -> int:
    """Python weekday (Monday=0) to timetable day (Sunday=0)"""
    return (day.weekday() + 1) % 7

def minutes_between(start: datetime, end: datetime) -> int:
    return int(math.ceil((end - start).total_seconds() / 60))


class PlannedLeg(NamedTuple):
    route: NetworkRoute
    from_index: int
    to_index: int
    departure: datetime
    arrival: datetime
    run_start: datetime
    cost: Decimal

    @property
    def from_stop_id(self) -> str:
        return self.route.stop_ids[self.from_index]

    @property
    def to_stop_id(self) -> str:
        return self.route.stop_ids[self.to_index]


class NetworkGraph:
    """Time-dependent view of the shuttle network for trip planning"""

    def __init__(self, routes: List[NetworkRoute]):
        self.routes: Dict[str, NetworkRoute] = {}
        self.routes_at_stop: Dict[str, List[Tuple[NetworkRoute, int]]] = {}
        for route in routes:
            self.add_route(route)

    def add_route(self, route: NetworkRoute):
        """Add a route and index every stop it serves"""
        self.routes[route.route_id] = route
        for index, stop_id in enumerate(route.stop_ids):
            self.routes_at_stop.setdefault(stop_id, []).append((route, index))

    def get_boardings(self, stop_id: str) -> List[Tuple[NetworkRoute, int]]:
        """Routes serving a stop, with the stop's position on each"""
        return self.routes_at_stop.get(stop_id, [])

    @classmethod
    def from_database(cls, db: Session) -> "NetworkGraph":
        """Build the graph from active routes and their active stops"""
        routes = db.query(Route).options(
            selectinload(Route.stops).selectinload(RouteStop.stop),
            selectinload(Route.operating_hours),
            selectinload(Route.peak_hours),
        ).filter(Route.is_active == True).all()

        return cls([
            network_route for network_route in (cls._to_network_route(r) for r in routes)
            if network_route is not None
        ])

    @staticmethod
    def _to_network_route(route: Route) -> Optional[NetworkRoute]:
        stop_ids = []
        offsets = []
        elapsed = 0
        for index, route_stop in enumerate(sorted(route.stops, key=lambda rs: rs.stop_order)):
            if index > 0:
                elapsed += route_stop.estimated_travel_time or 0
            # Inactive stops are skipped but their travel time still accrues
            if route_stop.stop is not None and route_stop.stop.is_active:
                stop_ids.append(route_stop.stop_id)
                offsets.append(elapsed)

        if len(stop_ids) < 2:
            return None

        windows: Dict[int, List[Tuple[time, time]]] = {}
        for hours in route.operating_hours:
            if hours.is_active:
                windows.setdefault(hours.day_of_week, []).append((hours.start_time, hours.end_time))

        return NetworkRoute(
            route_id=route.id,
            route_name=route.name,
            color=route.color,
            base_fare=Decimal(route.base_fare or 0),
            frequency_minutes=route.frequency_minutes or settings.DEFAULT_HEADWAY_MINUTES,
            capacity=route.capacity or 1,
            stop_ids=stop_ids,
            offsets=offsets,
            operating_windows={day: sorted(w) for day, w in windows.items()},
            peak_windows=[
                (peak.start_time, peak.end_time, Decimal(peak.multiplier))
                for peak in route.peak_hours if peak.is_active
            ],
        )


def next_departure(route: NetworkRoute, stop_index: int, ready: datetime) -> Optional[Tuple[datetime, datetime]]:
    """
    Earliest departure of the route from the stop at or after ``ready``.

    Runs leave the first stop every ``frequency_minutes`` from the start of each
    operating window up to and including its end. Returns (departure at stop,
    start of the run) or None when nothing runs today or tomorrow.
    """
    offset = timedelta(minutes=route.offsets[stop_index])
    headway = timedelta(minutes=route.frequency_minutes)
    earliest_run = ready - offset
    candidates = []

    for day_shift in (0, 1):
        service_date = earliest_run.date() + timedelta(days=day_shift)
        if route.operating_windows:
            windows = route.operating_windows.get(to_day_of_week(service_date), [])
        else:
            windows = ALL_DAY

        for start, end in windows:
            window_start = datetime.combine(service_date, start)
            window_end = datetime.combine(service_date, end)
            if window_end < earliest_run:
                continue
            if earliest_run <= window_start:
                run_start = window_start
            else:
                runs = math.ceil((earliest_run - window_start) / headway)
                run_start = window_start + runs * headway
            if run_start <= window_end:
                candidates.append(run_start)

        if candidates:
            break

    if not candidates:
        return None
    run_start = min(candidates)
    return run_start + offset, run_start

def is_peak(route: NetworkRoute, moment: datetime) -> Optional[Decimal]:
    """Peak multiplier in force at ``moment``, or None off-peak"""
    clock = moment.time()
    for start, end, multiplier in route.peak_windows:
        if start <= clock < end:
            return multiplier
    return None

def leg_fare(route: NetworkRoute, departure: datetime) -> Decimal:
    """Flat route fare, scaled by the peak multiplier at boarding time"""
    fare = route.base_fare
    multiplier = is_peak(route, departure)
    if multiplier is not None:
        fare = fare * multiplier
    return fare.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


class ItineraryPlanner:
    """Best-first itinerary search over the time-dependent network"""

    def __init__(
        self,
        graph: NetworkGraph,
        weights: ScoringWeights,
        transfer_buffer_minutes: int = 0,
        max_expansions: int = 5000
    ):
        self.graph = graph
        self.weights = weights
        self.transfer_buffer = timedelta(minutes=transfer_buffer_minutes)
        self.max_expansions = max_expansions

    def score(self, departure_time: datetime, legs: Tuple[PlannedLeg, ...]) -> float:
        """Blended score; grows monotonically as legs are appended"""
        if not legs:
            return 0.0
        minutes = (legs[-1].arrival - departure_time).total_seconds() / 60
        cost = float(sum(leg.cost for leg in legs))
        transfers = len(legs) - 1
        return (
            self.weights.per_minute * minutes
            + self.weights.per_point * cost
            + self.weights.per_transfer * transfers
        )

    def search(
        self,
        origin_id: str,
        destination_id: str,
        departure_time: datetime,
        max_transfers: int,
        max_results: int
    ) -> List[Tuple[PlannedLeg, ...]]:
        """Leg sequences from origin to destination, best score first"""
        max_legs = max_transfers + 1
        results: List[Tuple[PlannedLeg, ...]] = []
        counter = 0
        expansions = 0

        # Priority queue: (score, tiebreak, stop_id, ready_time, legs, visited stops)
        pq: List[Tuple[float, int, str, datetime, Tuple[PlannedLeg, ...], FrozenSet[str]]] = [
            (0.0, counter, origin_id, departure_time, (), frozenset([origin_id]))
        ]

        while pq and len(results) < max_results and expansions < self.max_expansions:
            _, _, stop_id, ready, legs, visited = heapq.heappop(pq)

            if stop_id == destination_id:
                results.append(legs)
                continue

            if len(legs) >= max_legs:
                continue

            expansions += 1
            last_route_id = legs[-1].route.route_id if legs else None
            board_after = ready + self.transfer_buffer if legs else ready

            for route, from_index in self.graph.get_boardings(stop_id):
                # Staying on the same route is a longer ride, not a transfer
                if route.route_id == last_route_id:
                    continue

                timing = next_departure(route, from_index, board_after)
                if timing is None:
                    continue
                departure, run_start = timing
                cost = leg_fare(route, departure)

                for to_index in range(from_index + 1, len(route.stop_ids)):
                    to_stop = route.stop_ids[to_index]
                    if to_stop in visited:
                        continue

                    arrival = departure + timedelta(
                        minutes=route.offsets[to_index] - route.offsets[from_index]
                    )
                    leg = PlannedLeg(route, from_index, to_index, departure, arrival, run_start, cost)
                    new_legs = legs + (leg,)
                    counter += 1
                    heapq.heappush(pq, (
                        self.score(departure_time, new_legs), counter, to_stop,
                        arrival, new_legs, visited | {to_stop}
                    ))

        logger.debug(
            "Itinerary search %s -> %s: %d results after %d expansions",
            origin_id, destination_id, len(results), expansions
        )
        return results


class RouteService:
    """High-level trip planning service"""

    def __init__(self, db: Session):
        self.db = db
        self.validator = RouteValidator(db)
        self._graph: Optional[NetworkGraph] = None

    @property
    def graph(self) -> NetworkGraph:
        if self._graph is None:
            self._graph = NetworkGraph.from_database(self.db)
        return self._graph

    def plan(
        self,
        origin_stop_id: str,
        destination_stop_id: str,
        departure_time: Optional[datetime] = None
    ) -> List[Itinerary]:
        """Plan itineraries with the default ranking and limits"""
        return self.plan_route(PlanRequest(
            start_stop_id=origin_stop_id,
            end_stop_id=destination_stop_id,
            departure_time=departure_time,
            max_transfers=settings.PLANNER_MAX_TRANSFERS,
            max_results=settings.PLANNER_MAX_RESULTS,
        ))

    def plan_route(self, request: PlanRequest) -> List[Itinerary]:
        """Plan ranked itineraries; raises InvalidStopError on bad stops"""
        self.validator.ensure_plannable(request)

        departure_time = request.departure_time or datetime.now()
        if departure_time.tzinfo:
            departure_time = departure_time.replace(tzinfo=None)
        departure_time = departure_time.replace(microsecond=0)

        planner = ItineraryPlanner(
            self.graph,
            get_scoring_profile(request.optimization),
            transfer_buffer_minutes=settings.TRANSFER_BUFFER_MINUTES,
            max_expansions=settings.PLANNER_MAX_EXPANSIONS,
        )
        paths = planner.search(
            request.start_stop_id,
            request.end_stop_id,
            departure_time,
            max_transfers=request.max_transfers,
            max_results=request.max_results,
        )

        return [self._construct_itinerary(path, departure_time) for path in paths]

    def _construct_itinerary(self, path: Tuple[PlannedLeg, ...], departure_time: datetime) -> Itinerary:
        """Construct an Itinerary from a planned leg sequence"""
        legs = [
            ItineraryLeg(
                route_id=leg.route.route_id,
                route_name=leg.route.route_name,
                from_stop_id=leg.from_stop_id,
                to_stop_id=leg.to_stop_id,
                scheduled_time=leg.departure,
                arrival_time=leg.arrival,
                cost=leg.cost,
            )
            for leg in path
        ]

        return Itinerary(
            legs=legs,
            total_time=minutes_between(departure_time, path[-1].arrival),
            total_cost=sum((leg.cost for leg in path), Decimal("0")),
            max_crowding=max(self.estimate_crowding(leg) for leg in path),
        )

    def estimate_crowding(self, leg: PlannedLeg) -> float:
        """Expected load on the leg's run: time-of-day baseline plus seats already booked"""
        route = leg.route
        baseline = (
            settings.PEAK_BASE_CROWDING if is_peak(route, leg.departure) is not None
            else settings.OFF_PEAK_BASE_CROWDING
        )

        run_end = leg.run_start + timedelta(minutes=route.run_duration)
        booked_legs = self.db.query(BookingLeg.from_stop_id, BookingLeg.scheduled_time).join(
            Booking, Booking.id == BookingLeg.booking_id
        ).filter(
            BookingLeg.route_id == route.route_id,
            Booking.status.in_(["confirmed", "completed"]),
            BookingLeg.scheduled_time >= leg.run_start,
            BookingLeg.scheduled_time <= run_end,
        ).all()

        # Count only riders on this run: boarding time minus stop offset is the run start
        booked = 0
        for from_stop_id, scheduled_time in booked_legs:
            for index in route.positions_of(from_stop_id):
                if scheduled_time - timedelta(minutes=route.offsets[index]) == leg.run_start:
                    booked += 1
                    break

        return round(min(1.0, baseline + booked / route.capacity), 3)

    def get_route_details(self, route_id: str) -> Optional[Route]:
        return self.db.query(Route).options(
            selectinload(Route.stops).selectinload(RouteStop.stop),
            selectinload(Route.operating_hours),
            selectinload(Route.peak_hours),
        ).filter(Route.id == route_id).first()

    def list_routes(self, active_only: bool = True) -> List[Route]:
        query = self.db.query(Route).options(
            selectinload(Route.stops).selectinload(RouteStop.stop),
            selectinload(Route.operating_hours),
            selectinload(Route.peak_hours),
        )
        if active_only:
            query = query.filter(Route.is_active == True)
        return query.order_by(Route.name).all()
