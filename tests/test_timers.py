import asyncio

from ganeungil.data.carrier_repository import CarrierDirectory
from ganeungil.models.domain import MatchStatus, RequestStatus
from ganeungil.persistence.store import InMemoryDocumentStore
from ganeungil.services.matching.notifications import RecordingNotificationSink
from ganeungil.services.matching.orchestrator import MatchingOrchestrator
from ganeungil.services.matching.policy import MatchingPolicy
from ganeungil.services.matching.timers import AsyncioMatchTimer


def test_timer_fires_once_after_the_delay():
    async def scenario():
        timer = AsyncioMatchTimer()
        fired = asyncio.Event()
        calls = []

        async def callback():
            calls.append("fired")
            fired.set()

        timer.schedule(0.01, callback)
        assert timer.pending_count == 1

        await asyncio.wait_for(fired.wait(), timeout=2)
        await asyncio.sleep(0.02)

        assert calls == ["fired"]
        assert timer.pending_count == 0
        await timer.close()

    asyncio.run(scenario())


def test_cancelled_and_closed_timers_never_fire():
    async def scenario():
        timer = AsyncioMatchTimer()
        calls = []

        async def callback():
            calls.append("fired")

        handle = timer.schedule(0.01, callback)
        handle.cancel()
        handle.cancel()
        timer.schedule(0.01, callback)
        await timer.close()
        await asyncio.sleep(0.05)

        assert calls == []
        assert timer.pending_count == 0

    asyncio.run(scenario())


def test_failing_callback_is_contained():
    async def scenario():
        timer = AsyncioMatchTimer()
        done = asyncio.Event()

        async def broken():
            raise RuntimeError("boom")

        async def healthy():
            done.set()

        timer.schedule(0.01, broken)
        timer.schedule(0.02, healthy)

        await asyncio.wait_for(done.wait(), timeout=2)
        await timer.close()

    asyncio.run(scenario())


def test_real_acceptance_windows_expire_until_the_request_fails(station_repository):
    async def scenario():
        route = {
            "start_station_id": "150",
            "end_station_id": "222",
            "departure_time": "08:30",
            "days_of_week": [1, 2, 3, 4, 5],
            "is_active": True,
        }
        store = InMemoryDocumentStore(
            {
                "routes": {f"route-{c}": dict(route, carrier_id=c) for c in ("carrier-a", "carrier-b")},
                "users": {"carrier-a": {"name": "A", "rating": 5.0}, "carrier-b": {"name": "B", "rating": 4.5}},
            }
        )
        timer = AsyncioMatchTimer()
        orchestrator = MatchingOrchestrator(
            store,
            station_repository(store),
            CarrierDirectory(store, ttl_seconds=0),
            timer,
            RecordingNotificationSink(),
            matching_policy=MatchingPolicy(acceptance_timeout_seconds=0.01, max_retries=3),
            weekday_provider=lambda: 1,
        )

        request = await orchestrator.create_request("requester-1", "150", "222")
        for _ in range(200):
            current, history = await orchestrator.matching_status(request.request_id, "requester-1")
            if current.status == RequestStatus.FAILED:
                break
            await asyncio.sleep(0.01)

        assert current.status == RequestStatus.FAILED
        assert current.retry_count == 3
        assert [(m.carrier_id, m.status) for m in history] == [
            ("carrier-a", MatchStatus.EXPIRED),
            ("carrier-b", MatchStatus.EXPIRED),
        ]
        assert orchestrator.open_windows == 0
        assert timer.pending_count == 0
        await orchestrator.shutdown()

    asyncio.run(scenario())
