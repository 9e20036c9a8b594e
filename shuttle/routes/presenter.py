"""
Maps planner itineraries into display-ready options for the booking screen.

The planner's order is the display order; nothing here re-sorts. Stop names
come from the stop directory, and a stale directory degrades to showing the
raw stop identifier instead of dropping the option.
"""

from typing import Any, Dict, List, Mapping, Optional, Sequence, Union
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
import logging

from shuttle.exceptions import NotFoundError
from shuttle.routes.schemas import (
    DisplayOption, Itinerary, ItineraryLeg, TransferDetails, TransferPoint
)

logger = logging.getLogger(__name__)

LOW_OCCUPANCY_LIMIT = 0.33
MEDIUM_OCCUPANCY_LIMIT = 0.66

def occupancy_band(max_crowding: float) -> str:
    if max_crowding < LOW_OCCUPANCY_LIMIT:
        return "Low"
    if max_crowding < MEDIUM_OCCUPANCY_LIMIT:
        return "Medium"
    return "High"

def round_cost(value) -> int:
    """Whole points, halves rounded up"""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

def wait_minutes(arriving: ItineraryLeg, departing: ItineraryLeg) -> int:
    """Minutes spent at a transfer point; 0 when either time is unknown"""
    if arriving.arrival_time is None or departing.scheduled_time is None:
        return 0
    seconds = (departing.scheduled_time - arriving.arrival_time).total_seconds()
    return max(0, int(seconds // 60))

def _stop_name(stop_directory: Mapping[str, str], stop_id: str) -> str:
    name = stop_directory.get(stop_id)
    if not name:
        logger.debug("Stop %s missing from directory, showing raw id", stop_id)
        return stop_id
    return name

def present_itinerary(index: int, itinerary: Itinerary, stop_directory: Mapping[str, str]) -> DisplayOption:
    legs = itinerary.legs
    first_leg, last_leg = legs[0], legs[-1]
    transfers = len(legs) - 1

    transfer_details = None
    if transfers > 0:
        points = [
            TransferPoint(
                stop_id=arriving.to_stop_id,
                stop_name=_stop_name(stop_directory, arriving.to_stop_id),
                from_route=arriving.route_name or arriving.route_id,
                to_route=departing.route_name or departing.route_id,
                wait_time=wait_minutes(arriving, departing),
            )
            for arriving, departing in zip(legs, legs[1:])
        ]
        transfer_details = TransferDetails(
            transfer_stop=points[0].stop_name,
            wait_time=points[0].wait_time,
            total_duration=itinerary.total_time,
            points=points,
        )

    return DisplayOption(
        id=f"route_{index}",
        name=" + ".join(leg.route_name or leg.route_id for leg in legs),
        from_stop=_stop_name(stop_directory, first_leg.from_stop_id),
        to_stop=_stop_name(stop_directory, last_leg.to_stop_id),
        duration=itinerary.total_time,
        cost=round_cost(itinerary.total_cost),
        transfers=transfers,
        occupancy=occupancy_band(itinerary.max_crowding),
        type="Transfer" if transfers > 0 else "Direct",
        next_departure=first_leg.scheduled_time,
        transfer_details=transfer_details,
    )

def present(
    raw_itineraries: Sequence[Union[Itinerary, Mapping[str, Any]]],
    stop_directory: Mapping[str, str]
) -> List[DisplayOption]:
    """Display options in planner order, one per itinerary"""
    itineraries = [
        raw if isinstance(raw, Itinerary) else Itinerary.model_validate(raw)
        for raw in raw_itineraries
    ]
    return [
        present_itinerary(index, itinerary, stop_directory)
        for index, itinerary in enumerate(itineraries)
    ]


class ItinerarySelection:
    """Presented options for one search, with at most one selected"""

    def __init__(self, itineraries: Sequence[Itinerary], stop_directory: Mapping[str, str]):
        self.itineraries = [
            raw if isinstance(raw, Itinerary) else Itinerary.model_validate(raw)
            for raw in itineraries
        ]
        self.options = present(self.itineraries, stop_directory)
        self._selected_index: Optional[int] = None

    @property
    def selected(self) -> Optional[DisplayOption]:
        if self._selected_index is None:
            return None
        return self.options[self._selected_index]

    def select(self, option_id: str) -> DisplayOption:
        """Select an option, deselecting whichever was selected before"""
        for index, option in enumerate(self.options):
            if option.id == option_id:
                break
        else:
            raise NotFoundError(f"Route option {option_id} not found")

        if self._selected_index is not None:
            self.options[self._selected_index].selected = False
        self._selected_index = index
        option.selected = True
        return option

    def clear(self):
        if self._selected_index is not None:
            self.options[self._selected_index].selected = False
        self._selected_index = None

    def booking_request(self, student_id: str) -> Dict[str, Any]:
        """Confirmation request body for the selected option"""
        if self._selected_index is None:
            raise NotFoundError("No route option selected")

        itinerary = self.itineraries[self._selected_index]
        legs = []
        for leg in itinerary.legs:
            scheduled = (leg.scheduled_time or datetime.now()).replace(microsecond=0).isoformat()
            legs.append({
                "routeId": leg.route_id,
                "fromStopId": leg.from_stop_id,
                "toStopId": leg.to_stop_id,
                "scheduledTime": scheduled,
                "cost": float(leg.cost),
            })

        return {
            "studentId": student_id,
            "legs": legs,
            "totalCost": float(itinerary.total_cost),
        }
