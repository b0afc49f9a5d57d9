import asyncio

import pytest

from ganeungil.data.carrier_repository import CarrierDirectory
from ganeungil.errors import BusinessRuleError, RouteValidationError
from ganeungil.persistence.store import InMemoryDocumentStore
from ganeungil.schemas.routes import RouteInput
from ganeungil.services.routes.service import UNKNOWN_STATION, RouteService


def _input(start="150", end="222", time="08:30", days=(1, 2, 3, 4, 5)) -> RouteInput:
    return RouteInput(start_station_id=start, end_station_id=end, departure_time=time, days_of_week=list(days))


def _service(store, station_repository, carriers=None) -> RouteService:
    return RouteService(store, stations=station_repository(store), carriers=carriers)


def test_create_and_list_routes(station_repository):
    async def scenario():
        store = InMemoryDocumentStore()
        service = _service(store, station_repository)

        evening = await service.create_route("carrier-1", _input("222", "150", "18:30"))
        morning = await service.create_route("carrier-1", _input(days=(5, 1, 3, 1)))
        await service.create_route("carrier-2", _input())

        routes = await service.list_routes("carrier-1")
        assert [route.route_id for route in routes] == [morning.route_id, evening.route_id]
        assert morning.days_of_week == (1, 3, 5)
        assert store.dump("routes")[morning.route_id]["is_active"] is True

    asyncio.run(scenario())


def test_invalid_route_is_rejected_with_every_error(station_repository):
    async def scenario():
        service = _service(InMemoryDocumentStore(), station_repository)

        with pytest.raises(RouteValidationError) as excinfo:
            await service.create_route("carrier-1", _input(start="150", end="150", days=()))

        assert excinfo.value.reason == "invalid_route"
        assert "출발역과 도착역이 같습니다." in excinfo.value.errors
        assert "최소 하루 이상 선택해야 합니다." in excinfo.value.errors

    asyncio.run(scenario())


def test_unknown_station_is_rejected(station_repository):
    async def scenario():
        service = _service(InMemoryDocumentStore(), station_repository)

        with pytest.raises(RouteValidationError) as excinfo:
            await service.create_route("carrier-1", _input(end="999"))

        assert excinfo.value.errors == [UNKNOWN_STATION]

    asyncio.run(scenario())


def test_update_revalidates_the_merged_route(station_repository):
    async def scenario():
        service = _service(InMemoryDocumentStore(), station_repository)
        route = await service.create_route("carrier-1", _input())

        updated = await service.update_route(route.route_id, "carrier-1", {"departure_time": "07:45", "days_of_week": None})
        assert updated.departure_time == "07:45"
        assert updated.days_of_week == (1, 2, 3, 4, 5)

        with pytest.raises(RouteValidationError):
            await service.update_route(route.route_id, "carrier-1", {"end_station_id": "150"})

    asyncio.run(scenario())


def test_only_the_owner_may_change_a_route(station_repository):
    async def scenario():
        service = _service(InMemoryDocumentStore(), station_repository)
        route = await service.create_route("carrier-1", _input())

        with pytest.raises(BusinessRuleError) as excinfo:
            await service.deactivate_route(route.route_id, "carrier-2")
        assert excinfo.value.reason == "not_route_owner"
        with pytest.raises(BusinessRuleError) as excinfo:
            await service.delete_route("missing", "carrier-1")
        assert excinfo.value.reason == "route_not_found"

    asyncio.run(scenario())


def test_delete_is_soft_when_matches_reference_the_route(station_repository):
    async def scenario():
        store = InMemoryDocumentStore()
        service = _service(store, station_repository)
        used = await service.create_route("carrier-1", _input())
        unused = await service.create_route("carrier-1", _input("152", "224"))
        await store.create("matches", {"request_id": "r1", "carrier_id": "carrier-1", "details": {"route_id": used.route_id}})

        assert await service.delete_route(used.route_id, "carrier-1") is False
        assert await service.delete_route(unused.route_id, "carrier-1") is True

        remaining = store.dump("routes")
        assert list(remaining) == [used.route_id]
        assert remaining[used.route_id]["is_active"] is False

    asyncio.run(scenario())


def test_routes_by_day_lists_active_routes_for_every_weekday(station_repository):
    async def scenario():
        service = _service(InMemoryDocumentStore(), station_repository)
        weekday = await service.create_route("carrier-1", _input())
        weekend = await service.create_route("carrier-1", _input("152", "224", "10:00", days=(6, 7)))
        retired = await service.create_route("carrier-1", _input("201", "223", days=(1,)))
        await service.deactivate_route(retired.route_id, "carrier-1")

        grouped = await service.routes_by_day("carrier-1")

        assert sorted(grouped) == [1, 2, 3, 4, 5, 6, 7]
        assert [route.route_id for route in grouped[1]] == [weekday.route_id]
        assert [route.route_id for route in grouped[7]] == [weekend.route_id]

    asyncio.run(scenario())


def test_route_changes_invalidate_the_candidate_cache(station_repository):
    async def scenario():
        store = InMemoryDocumentStore()
        carriers = CarrierDirectory(store, ttl_seconds=300)
        service = _service(store, station_repository, carriers)

        assert await carriers.active_routes() == []
        route = await service.create_route("carrier-1", _input())
        assert [r.route_id for r in await carriers.active_routes()] == [route.route_id]
        await service.deactivate_route(route.route_id, "carrier-1")
        assert await carriers.active_routes() == []

    asyncio.run(scenario())
