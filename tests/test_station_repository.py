import asyncio

from ganeungil.data.cache import TTLCache
from ganeungil.data.station_repository import STATIONS_COLLECTION, TRAVEL_TIMES_COLLECTION
from ganeungil.errors import StoreUnavailableError
from ganeungil.persistence.store import InMemoryDocumentStore


def test_reference_files_back_an_empty_store(station_repository):
    repository = station_repository(InMemoryDocumentStore())

    station = asyncio.run(repository.get_station("150"))
    travel = asyncio.run(repository.get_travel_time("222", "150"))

    assert station.name == "서울역"
    assert station.is_transfer is True
    assert len(asyncio.run(repository.list_stations())) == 14
    assert travel.minutes == 29
    assert travel.has_express is True


def test_same_station_is_a_zero_minute_trip(reference):
    assert reference.travel_minutes("150", "150") == 0
    assert reference.travel_minutes("999", "999") is None
    assert reference.station_by_name(" 서울역 ").station_id == "150"


def test_store_data_takes_precedence_over_files(station_repository):
    store = InMemoryDocumentStore(
        {
            STATIONS_COLLECTION: {"900": {"name": "가상역", "lines": ["9"], "latitude": 37.0, "longitude": 127.0}},
            TRAVEL_TIMES_COLLECTION: {},
        }
    )
    repository = station_repository(store)

    stations = asyncio.run(repository.list_stations())

    assert [station.station_id for station in stations] == ["900"]
    assert asyncio.run(repository.get_station("150")) is None


class BrokenStore(InMemoryDocumentStore):
    async def query(self, collection, filters=()):
        raise StoreUnavailableError("database offline")


def test_store_outage_falls_back_to_files(station_repository):
    repository = station_repository(BrokenStore())

    assert asyncio.run(repository.get_station("150")).name == "서울역"


def test_sync_copies_reference_data_once(station_repository):
    store = InMemoryDocumentStore()
    repository = station_repository(store)

    first = asyncio.run(repository.sync_reference_data_to_store())
    second = asyncio.run(repository.sync_reference_data_to_store())

    assert first == {"stations": 14, "travel_times": 50}
    assert second == {"stations": 0, "travel_times": 0}
    assert store.dump(STATIONS_COLLECTION)["150"]["name"] == "서울역"
    assert "150-222" in store.dump(TRAVEL_TIMES_COLLECTION)


def test_ttl_cache_expires_and_invalidates():
    now = [0.0]
    cache = TTLCache(10, clock=lambda: now[0])
    cache.set("routes:active", [1])
    cache.set("profile:c1", {"rating": 4.5})

    assert cache.get("routes:active") == [1]
    assert cache.clear("^routes:") == 1
    assert cache.get("routes:active") is None
    now[0] = 11
    assert cache.get("profile:c1") is None
    assert len(cache) == 0


def test_zero_ttl_disables_caching():
    cache = TTLCache(0)
    cache.set("snapshot", object())

    assert cache.get("snapshot") is None
