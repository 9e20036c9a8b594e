"""
Trip Planning Module

This module answers "how do I get from stop A to stop B" for the shuttle network.
It includes:

- A time-dependent network built from active routes, their stop sequence,
  operating hours, headways and peak-hour fares
- Best-first itinerary search returning several ranked itineraries, each a
  chain of single-route legs joined at transfer stops
- Pluggable ranking profiles blending travel time, fare and transfers
- Crowding estimates from time of day and seats already booked
- A presenter turning itineraries into display options for the booking screen
- Leg feasibility checks reused at booking confirmation time

Key Components:
- service.py: network graph, timetable lookup, itinerary search, RouteService
- validation.py: plan request validation and booked-leg feasibility checks
- presenter.py: display mapping and single-selection state
- router.py: FastAPI endpoints for route directory and trip planning
- schemas.py: Pydantic models for itineraries, display options and routes
"""

from .router import router
from .service import RouteService, ItineraryPlanner, NetworkGraph, SCORING_PROFILES
from .validation import RouteValidator
from .presenter import present, ItinerarySelection
from .schemas import (
    PlanRequest, Itinerary, ItineraryLeg, DisplayOption, TransferDetails,
    ScoringWeights, RouteDetail
)

__all__ = [
    "router",
    "RouteService",
    "ItineraryPlanner",
    "NetworkGraph",
    "SCORING_PROFILES",
    "RouteValidator",
    "present",
    "ItinerarySelection",
    "PlanRequest",
    "Itinerary",
    "ItineraryLeg",
    "DisplayOption",
    "TransferDetails",
    "ScoringWeights",
    "RouteDetail"
]
