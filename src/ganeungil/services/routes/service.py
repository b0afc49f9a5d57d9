"""Carrier route registration and maintenance."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence

from ...data.carrier_repository import ROUTES_COLLECTION, CarrierDirectory
from ...data.station_repository import StationRepository
from ...errors import BusinessRuleError, RouteValidationError
from ...models.domain import Route, utcnow
from ...persistence.retry import with_retry
from ...persistence.store import DocumentStore, new_document_id, where
from ..matching.orchestrator import MATCHES_COLLECTION
from .validation import RouteLike, validate_route

UNKNOWN_STATION = "존재하지 않는 역입니다."

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _RouteDraft:
    start_station_id: Optional[str]
    end_station_id: Optional[str]
    departure_time: str
    days_of_week: Sequence[int]


class RouteService:
    def __init__(
        self,
        store: DocumentStore,
        *,
        stations: StationRepository | None = None,
        carriers: CarrierDirectory | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.stations = stations
        self.carriers = carriers
        self.clock = clock

    async def _check(self, draft: RouteLike) -> None:
        result = validate_route(draft)
        errors = list(result.errors)
        if result.is_valid and self.stations is not None:
            snapshot = await self.stations.snapshot()
            if any(snapshot.station(sid.strip()) is None for sid in (draft.start_station_id, draft.end_station_id)):
                errors.append(UNKNOWN_STATION)
        if errors:
            raise RouteValidationError(errors)

    def _routes_changed(self) -> None:
        if self.carriers is not None:
            self.carriers.invalidate("^routes:")

    async def get_route(self, route_id: str, owner_id: str) -> Route:
        document = await with_retry(lambda: self.store.get(ROUTES_COLLECTION, route_id), description=f"load route {route_id}")
        if document is None:
            raise BusinessRuleError("route_not_found", "경로를 찾을 수 없습니다.")
        route = Route.from_document(document.id, document.data)
        if route.carrier_id != owner_id:
            raise BusinessRuleError("not_route_owner", "본인의 경로만 수정할 수 있습니다.")
        return route

    async def create_route(self, owner_id: str, route_input: RouteLike) -> Route:
        await self._check(route_input)
        now = self.clock()
        route = Route(
            route_id=new_document_id(),
            carrier_id=owner_id,
            start_station_id=route_input.start_station_id.strip(),
            end_station_id=route_input.end_station_id.strip(),
            departure_time=route_input.departure_time,
            days_of_week=tuple(sorted(set(route_input.days_of_week))),
            created_at=now,
            updated_at=now,
        )
        await with_retry(
            lambda: self.store.create(ROUTES_COLLECTION, route.to_document(), doc_id=route.route_id),
            description=f"create route for {owner_id}",
        )
        self._routes_changed()
        logger.info(f"Route {route.route_id} registered by {owner_id}: {route.start_station_id} -> {route.end_station_id}")
        return route

    async def update_route(self, route_id: str, owner_id: str, changes: dict) -> Route:
        """Apply ``changes`` and re-validate the merged route before saving."""
        route = await self.get_route(route_id, owner_id)
        changes = {key: value for key, value in changes.items() if value is not None}
        draft = _RouteDraft(
            start_station_id=changes.get("start_station_id", route.start_station_id),
            end_station_id=changes.get("end_station_id", route.end_station_id),
            departure_time=changes.get("departure_time", route.departure_time),
            days_of_week=changes.get("days_of_week", route.days_of_week),
        )
        await self._check(draft)

        updated = replace(
            route,
            start_station_id=draft.start_station_id.strip(),
            end_station_id=draft.end_station_id.strip(),
            departure_time=draft.departure_time,
            days_of_week=tuple(sorted(set(draft.days_of_week))),
            is_active=bool(changes.get("is_active", route.is_active)),
            updated_at=self.clock(),
        )
        await with_retry(
            lambda: self.store.update(ROUTES_COLLECTION, route_id, updated.to_document()),
            description=f"update route {route_id}",
        )
        self._routes_changed()
        return updated

    async def deactivate_route(self, route_id: str, owner_id: str) -> Route:
        route = await self.get_route(route_id, owner_id)
        if not route.is_active:
            return route
        updated = replace(route, is_active=False, updated_at=self.clock())
        await with_retry(
            lambda: self.store.update(
                ROUTES_COLLECTION, route_id, {"is_active": False, "updated_at": updated.to_document()["updated_at"]}
            ),
            description=f"deactivate route {route_id}",
        )
        self._routes_changed()
        return updated

    async def delete_route(self, route_id: str, owner_id: str) -> bool:
        """Hard delete, or deactivate when match history references the route.

        Returns ``True`` when the document was removed.
        """
        await self.get_route(route_id, owner_id)
        referenced = await with_retry(
            lambda: self.store.query(MATCHES_COLLECTION, [where("details.route_id", "==", route_id)]),
            description=f"check references to route {route_id}",
        )
        if referenced:
            await self.deactivate_route(route_id, owner_id)
            logger.info(f"Route {route_id} is referenced by {len(referenced)} matches; deactivated instead of deleted")
            return False
        await with_retry(lambda: self.store.delete(ROUTES_COLLECTION, route_id), description=f"delete route {route_id}")
        self._routes_changed()
        return True

    async def list_routes(self, owner_id: str, active_only: bool = False) -> List[Route]:
        filters = [where("carrier_id", "==", owner_id)]
        if active_only:
            filters.append(where("is_active", "==", True))
        documents = await with_retry(
            lambda: self.store.query(ROUTES_COLLECTION, filters),
            description=f"list routes of {owner_id}",
        )
        routes = [Route.from_document(doc.id, doc.data) for doc in documents]
        return sorted(routes, key=lambda route: (route.departure_time, route.route_id))

    async def routes_by_day(self, owner_id: str) -> Dict[int, List[Route]]:
        """Active routes grouped by weekday (1=Mon .. 7=Sun); every day is present."""
        grouped: Dict[int, List[Route]] = {day: [] for day in range(1, 8)}
        for route in await self.list_routes(owner_id, active_only=True):
            for day in route.days_of_week:
                if day in grouped:
                    grouped[day].append(route)
        return grouped
