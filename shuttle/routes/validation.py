from typing import List, Optional, Sequence
from decimal import Decimal
import re

from sqlalchemy.orm import Session

from shuttle.exceptions import InvalidStopError, MalformedLegError
from shuttle.models import Stop, Route, RouteStop
from shuttle.routes.schemas import PlanRequest, RouteValidationError

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")

def is_well_formed_id(value: Optional[str]) -> bool:
    return isinstance(value, str) and bool(IDENTIFIER_PATTERN.match(value))


class RouteValidator:
    """Service for validating plan requests and booked legs against the network"""

    def __init__(self, db: Session):
        self.db = db

    def validate_plan_request(self, request: PlanRequest) -> List[RouteValidationError]:
        """Validate a trip planning request"""
        errors = []

        if request.start_stop_id == request.end_stop_id:
            errors.append(RouteValidationError(
                error_code="SAME_STOP",
                error_message="Origin and destination stops cannot be the same",
                field="end_stop_id"
            ))

        for field, stop_id, label in (
            ("start_stop_id", request.start_stop_id, "Origin"),
            ("end_stop_id", request.end_stop_id, "Destination"),
        ):
            stop = self.db.query(Stop).filter(Stop.id == stop_id).first() if is_well_formed_id(stop_id) else None
            if not stop:
                errors.append(RouteValidationError(
                    error_code="UNKNOWN_STOP",
                    error_message=f"{label} stop with ID {stop_id} not found",
                    field=field
                ))
            elif not stop.is_active:
                errors.append(RouteValidationError(
                    error_code="STOP_INACTIVE",
                    error_message=f"{label} stop '{stop.name}' is currently inactive",
                    field=field
                ))

        if request.max_transfers < 0:
            errors.append(RouteValidationError(
                error_code="INVALID_TRANSFERS",
                error_message="Maximum transfers cannot be negative",
                field="max_transfers"
            ))

        if request.max_results < 1:
            errors.append(RouteValidationError(
                error_code="INVALID_RESULT_LIMIT",
                error_message="At least one result must be requested",
                field="max_results"
            ))

        return errors

    def ensure_plannable(self, request: PlanRequest):
        """Raise InvalidStopError when the request cannot be planned"""
        errors = self.validate_plan_request(request)
        if errors:
            raise InvalidStopError("; ".join(error.error_message for error in errors))

    def validate_booking_legs(self, legs: Sequence, total_cost: Decimal, tolerance: Decimal):
        """
        Re-check booked legs against the current network.

        Legs are objects exposing ``route_id``, ``from_stop_id``, ``to_stop_id``,
        ``scheduled_time`` and ``cost``. A plan is only a snapshot, so routes or
        stops deactivated since planning make the booking fail here rather than
        persist. Each leg is re-priced and re-timed from the current timetable;
        the client's figures are never trusted.
        """
        if not legs:
            raise MalformedLegError("A booking needs at least one leg")

        for position, leg in enumerate(legs, start=1):
            for field in ("route_id", "from_stop_id", "to_stop_id"):
                if not is_well_formed_id(getattr(leg, field)):
                    raise MalformedLegError(f"Leg {position}: {field} is not a valid identifier")

            if leg.cost < 0:
                raise MalformedLegError(f"Leg {position}: cost cannot be negative")

            if position > 1 and leg.from_stop_id != legs[position - 2].to_stop_id:
                raise MalformedLegError(
                    f"Leg {position} departs from {leg.from_stop_id} but leg {position - 1} "
                    f"arrives at {legs[position - 2].to_stop_id}"
                )

            self._validate_leg_on_route(position, leg)

        legs_total = sum((Decimal(leg.cost) for leg in legs), Decimal("0"))
        if abs(Decimal(total_cost) - legs_total) > tolerance:
            raise MalformedLegError(
                f"Total cost {total_cost} does not match the sum of leg costs {legs_total}"
            )

    def _validate_leg_on_route(self, position: int, leg):
        route = self.db.query(Route).filter(Route.id == leg.route_id).first()
        if not route:
            raise MalformedLegError(f"Leg {position}: route {leg.route_id} not found")
        if not route.is_active:
            raise MalformedLegError(f"Leg {position}: route '{route.name}' is no longer running")

        stops = {
            stop.id: stop for stop in self.db.query(Stop).filter(
                Stop.id.in_([leg.from_stop_id, leg.to_stop_id])
            ).all()
        }
        for stop_id in (leg.from_stop_id, leg.to_stop_id):
            stop = stops.get(stop_id)
            if not stop:
                raise MalformedLegError(f"Leg {position}: stop {stop_id} not found")
            if not stop.is_active:
                raise MalformedLegError(f"Leg {position}: stop '{stop.name}' is currently inactive")

        orders = self.db.query(RouteStop.stop_id, RouteStop.stop_order).filter(
            RouteStop.route_id == route.id,
            RouteStop.stop_id.in_([leg.from_stop_id, leg.to_stop_id])
        ).all()
        from_orders = [order for stop_id, order in orders if stop_id == leg.from_stop_id]
        to_orders = [order for stop_id, order in orders if stop_id == leg.to_stop_id]

        if not from_orders or not to_orders:
            raise MalformedLegError(f"Leg {position}: route '{route.name}' does not serve both stops")
        if min(from_orders) >= max(to_orders):
            raise MalformedLegError(
                f"Leg {position}: route '{route.name}' does not run from "
                f"{leg.from_stop_id} to {leg.to_stop_id}"
            )

        self._validate_leg_schedule(position, leg, route)

    def _validate_leg_schedule(self, position: int, leg, route: Route):
        from shuttle.routes.service import NetworkGraph, leg_fare, next_departure

        network_route = NetworkGraph._to_network_route(route)
        if network_route is None:
            raise MalformedLegError(f"Leg {position}: route '{route.name}' is no longer running")

        scheduled = leg.scheduled_time
        to_positions = network_route.positions_of(leg.to_stop_id)
        boardings = [
            index for index in network_route.positions_of(leg.from_stop_id)
            if any(to_index > index for to_index in to_positions)
        ]
        on_timetable = False
        for index in boardings:
            timing = next_departure(network_route, index, scheduled)
            if timing is not None and timing[0] == scheduled:
                on_timetable = True
                break

        if not on_timetable:
            raise MalformedLegError(
                f"Leg {position}: route '{route.name}' has no departure from "
                f"{leg.from_stop_id} at {scheduled.isoformat()}"
            )

        fare = leg_fare(network_route, scheduled)
        if Decimal(str(leg.cost)) != fare:
            raise MalformedLegError(
                f"Leg {position}: cost {leg.cost} does not match the fare {fare} "
                f"for route '{route.name}'"
            )
