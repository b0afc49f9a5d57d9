"""Carrier candidate pool: active routes joined with carrier profiles."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Iterable

from ..config import settings
from ..models.domain import CarrierCandidate, DeliveryRequest, Route
from ..persistence.store import DocumentStore, where
from .cache import TTLCache
from .station_repository import ReferenceSnapshot

ROUTES_COLLECTION = "routes"
USERS_COLLECTION = "users"

logger = logging.getLogger(__name__)


def _touches_request(route: Route, request: DeliveryRequest, reference: ReferenceSnapshot) -> bool:
    """Cheap corridor test: the route shares an endpoint or a line with the request."""
    request_stations = {request.pickup_station_id, request.dropoff_station_id}
    if route.start_station_id in request_stations or route.end_station_id in request_stations:
        return True
    request_lines: set[str] = set()
    for station_id in request_stations:
        station = reference.station(station_id)
        if station:
            request_lines.update(station.lines)
    for station_id in (route.start_station_id, route.end_station_id):
        station = reference.station(station_id)
        if station and request_lines.intersection(station.lines):
            return True
    return False


def _completion_rate(profile: dict) -> float | None:
    if profile.get("completion_rate") is not None:
        return min(1.0, max(0.0, float(profile["completion_rate"])))
    accepted = int(profile.get("accepted_deliveries") or 0)
    if accepted <= 0:
        return None
    return min(1.0, int(profile.get("completed_deliveries") or 0) / accepted)


def candidate_from_profile(carrier_id: str, profile: dict | None, routes: Iterable[Route]) -> CarrierCandidate:
    profile = profile or {}
    return CarrierCandidate(
        carrier_id=carrier_id,
        name=str(profile.get("name") or carrier_id),
        routes=tuple(routes),
        average_rating=float(profile.get("rating") if profile.get("rating") is not None else 3.5),
        total_deliveries=int(profile.get("total_deliveries") or 0),
        recent_deliveries=int(profile.get("recent_deliveries") or 0),
        recent_penalties=int(profile.get("recent_penalties") or 0),
        completion_rate=_completion_rate(profile),
    )


class CarrierDirectory:
    """Reads carrier candidates fresh per attempt, behind a short TTL cache."""

    def __init__(self, store: DocumentStore, *, ttl_seconds: float | None = None) -> None:
        self.store = store
        self._cache = TTLCache(ttl_seconds if ttl_seconds is not None else settings.candidate_cache_ttl_seconds)

    async def active_routes(self) -> list[Route]:
        cached = self._cache.get("routes:active")
        if cached is not None:
            return cached

        routes: list[Route] = []
        for doc in await self.store.query(ROUTES_COLLECTION, [where("is_active", "==", True)]):
            try:
                routes.append(Route.from_document(doc.id, doc.data))
            except (KeyError, ValueError, TypeError) as exc:
                logger.warning(f"Skipping malformed route {doc.id}: {exc}")
        self._cache.set("routes:active", routes)
        return routes

    async def carrier_profile(self, carrier_id: str) -> dict | None:
        key = f"profile:{carrier_id}"
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        doc = await self.store.get(USERS_COLLECTION, carrier_id)
        profile = doc.data if doc else None
        if profile is not None:
            self._cache.set(key, profile)
        return profile

    async def fetch_candidates(
        self,
        request: DeliveryRequest,
        level: int,
        reference: ReferenceSnapshot,
    ) -> list[CarrierCandidate]:
        """Carriers with at least one active route worth scoring for ``request``.

        Level 0 keeps only routes touching the request's stations or lines;
        wider levels consider every active route.
        """
        routes = await self.active_routes()
        if level == 0:
            routes = [route for route in routes if _touches_request(route, request, reference)]

        by_carrier: dict[str, list[Route]] = defaultdict(list)
        for route in routes:
            if route.carrier_id == request.requester_id:
                continue  # nobody carries their own package
            by_carrier[route.carrier_id].append(route)

        candidates = []
        for carrier_id in sorted(by_carrier):
            profile = await self.carrier_profile(carrier_id)
            candidates.append(candidate_from_profile(carrier_id, profile, by_carrier[carrier_id]))
        logger.debug(f"Request {request.request_id}: {len(candidates)} candidates at search level {level}")
        return candidates

    def invalidate(self, pattern: str | None = None) -> int:
        return self._cache.clear(pattern)
