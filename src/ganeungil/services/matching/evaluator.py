"""Route compatibility: does a carrier's commute cover a request's segment?"""

from __future__ import annotations

import logging
from typing import Sequence

from ...data.station_repository import ReferenceSnapshot
from ...models.domain import DeliveryRequest, Route
from ..routes.validation import parse_departure_minutes
from .models import INCOMPATIBLE, Congestion, RouteEvaluation

logger = logging.getLogger(__name__)


def congestion_level(departure_time: str) -> Congestion | None:
    """Rush hours 07-09 and 17-19 are high, daytime is medium, the rest low."""
    minutes = parse_departure_minutes(departure_time)
    if minutes is None:
        return None
    hour = minutes // 60
    if 7 <= hour <= 9 or 17 <= hour <= 19:
        return "high"
    if 9 <= hour <= 17:
        return "medium"
    return "low"


def runs_on_day(route: Route, request: DeliveryRequest, weekday: int | None) -> bool:
    route_days = set(route.days_of_week)
    if not route_days:
        return False
    flexible = set(request.preferred_days)
    if weekday is None:
        return not flexible or bool(route_days & flexible)
    return weekday in route_days or bool(route_days & flexible)


class RouteEvaluator:
    """Evaluates routes against requests using a fixed reference snapshot.

    Missing stations or travel times never raise; they make the route
    incompatible so one bad record cannot produce a match or break the
    ranking of other carriers.
    """

    def __init__(self, reference: ReferenceSnapshot, max_detour_minutes: float = 10.0) -> None:
        self.reference = reference
        self.max_detour_minutes = max_detour_minutes

    def evaluate(self, request: DeliveryRequest, route: Route, weekday: int | None = None) -> RouteEvaluation:
        if not route.is_active:
            return INCOMPATIBLE
        if not runs_on_day(route, request, weekday):
            return INCOMPATIBLE

        pickup, dropoff = request.pickup_station_id, request.dropoff_station_id
        start, end = route.start_station_id, route.end_station_id
        if pickup == dropoff:
            return INCOMPATIBLE

        unknown = [sid for sid in (pickup, dropoff, start, end) if self.reference.station(sid) is None]
        if unknown:
            logger.warning(f"Route {route.route_id} not evaluated: unknown station(s) {unknown}")
            return INCOMPATIBLE

        to_pickup = self.reference.travel_minutes(start, pickup)
        to_dropoff = self.reference.travel_minutes(start, dropoff)
        segment = self.reference.travel_time(pickup, dropoff)
        from_dropoff = self.reference.travel_minutes(dropoff, end)
        direct = self.reference.travel_minutes(start, end)
        if None in (to_pickup, to_dropoff, from_dropoff, direct) or segment is None:
            logger.warning(
                f"Route {route.route_id} not evaluated: travel time missing for "
                f"{start}->{pickup}->{dropoff}->{end}"
            )
            return INCOMPATIBLE

        # pickup must come before drop-off in the direction of travel
        if to_pickup > to_dropoff:
            return INCOMPATIBLE

        detour = max(0.0, to_pickup + segment.minutes + from_dropoff - direct)
        if detour > self.max_detour_minutes:
            return INCOMPATIBLE

        coverage = "direct" if (pickup == start and dropoff == end) else "partial"
        return RouteEvaluation(
            compatible=True,
            detour_minutes=round(detour, 1),
            coverage_type=coverage,
            route_id=route.route_id,
            travel_minutes=segment.minutes,
            transfer_count=segment.transfer_count,
            has_express=segment.has_express,
            congestion=congestion_level(route.departure_time),
        )

    def best(self, request: DeliveryRequest, routes: Sequence[Route], weekday: int | None = None) -> RouteEvaluation:
        """Smallest-detour compatible evaluation across ``routes``; incompatible when none fits."""
        best = INCOMPATIBLE
        for route in routes:
            evaluation = self.evaluate(request, route, weekday)
            if not evaluation.compatible:
                continue
            if not best.compatible or evaluation.detour_minutes < best.detour_minutes:
                best = evaluation
        return best
