from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from ganeungil.config import settings
from ganeungil.data.station_repository import (
    STATIONS_COLLECTION,
    TRAVEL_TIMES_COLLECTION,
    load_stations_file,
    load_travel_times_file,
)
from ganeungil.main import create_app
from ganeungil.persistence.store import InMemoryDocumentStore
from ganeungil.services.matching import notifications as events
from ganeungil.services.matching.notifications import RecordingNotificationSink
from ganeungil.services.matching.timers import ManualMatchTimer

DATA_DIR = Path(__file__).resolve().parents[1] / "data"
STATIONS_CSV = DATA_DIR / "stations.csv"
TRAVEL_TIMES_CSV = DATA_DIR / "travel_times.csv"

PREFIX = settings.api_prefix
EVERY_DAY = [1, 2, 3, 4, 5, 6, 7]


def _seeded_store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore(
        {
            STATIONS_COLLECTION: {station.station_id: station.to_document() for station in load_stations_file(STATIONS_CSV)},
            TRAVEL_TIMES_COLLECTION: {travel.key: travel.to_document() for travel in load_travel_times_file(TRAVEL_TIMES_CSV)},
            "users": {
                "carrier-1": {"name": "김길러", "rating": 4.95, "carrier_tier": "gold", "total_deliveries": 40},
                "carrier-2": {"name": "이길러", "rating": 4.2, "carrier_tier": "silver"},
            },
            "business_contracts": {"contract-1": {"company_name": "에이상사", "status": "active"}},
            "b2b_deliveries": {
                "d1": {
                    "carrier_id": "carrier-1",
                    "contract_id": "contract-1",
                    "status": "completed",
                    "completed_at": "2024-03-05T10:00:00+09:00",
                    "carrier_net": 8_000,
                    "fee_total": 10_000,
                }
            },
        }
    )


class Client:
    def __init__(self, client: TestClient, store: InMemoryDocumentStore, sink: RecordingNotificationSink) -> None:
        self.http = client
        self.store = store
        self.sink = sink

    def as_user(self, user_id: str) -> dict:
        return {"X-User-Id": user_id}


@pytest.fixture
def api():
    store = _seeded_store()
    sink = RecordingNotificationSink()
    app = create_app(store=store, timer=ManualMatchTimer(), notifier=sink)
    with TestClient(app) as client:
        yield Client(client, store, sink)


def _route_payload(start="150", end="222", time="08:30", days=EVERY_DAY) -> dict:
    return {"start_station_id": start, "end_station_id": end, "departure_time": time, "days_of_week": days}


def test_root_and_health(api):
    assert api.http.get("/").json()["status"] == "running"
    assert api.http.get(f"{PREFIX}/health").json() == {"status": "ok"}
    assert api.http.get(f"{PREFIX}/health/database").json()["store"] == "InMemoryDocumentStore"
    assert api.http.get(f"{PREFIX}/health/matching").json()["open_windows"] == 0


def test_station_endpoints(api):
    stations = api.http.get(f"{PREFIX}/stations").json()
    travel = api.http.get(f"{PREFIX}/stations/travel-time", params={"from_station_id": "222", "to_station_id": "150"})

    assert any(station["name"] == "서울역" for station in stations)
    assert travel.status_code == 200
    assert travel.json()["minutes"] == 29
    assert api.http.get(f"{PREFIX}/stations/travel-time", params={"from_station_id": "150", "to_station_id": "999"}).status_code == 404
    assert api.http.post(f"{PREFIX}/stations/sync").json() == {"status": "success", "stations": 0, "travel_times": 0}


def test_route_validation_endpoint_reports_every_problem(api):
    response = api.http.post(f"{PREFIX}/routes/validate", json=_route_payload(end="150", days=[]))

    body = response.json()
    assert response.status_code == 200
    assert body["isValid"] is False
    assert len(body["errors"]) == 2


def test_route_lifecycle(api):
    carrier = api.as_user("carrier-1")

    created = api.http.post(f"{PREFIX}/routes", json=_route_payload(), headers=carrier)
    assert created.status_code == 201
    route_id = created.json()["route_id"]

    invalid = api.http.post(f"{PREFIX}/routes", json=_route_payload(end="150"), headers=carrier)
    assert invalid.status_code == 400
    assert invalid.json()["detail"]["reason"] == "invalid_route"

    assert api.http.post(f"{PREFIX}/routes", json=_route_payload()).status_code == 422

    forbidden = api.http.patch(f"{PREFIX}/routes/{route_id}", json={"departure_time": "09:00"}, headers=api.as_user("carrier-2"))
    assert forbidden.status_code == 403

    patched = api.http.patch(f"{PREFIX}/routes/{route_id}", json={"departure_time": "09:00"}, headers=carrier)
    assert patched.json()["departure_time"] == "09:00"

    by_day = api.http.get(f"{PREFIX}/routes/by-day", headers=carrier).json()
    assert [entry["day_of_week"] for entry in by_day] == EVERY_DAY
    assert all(len(entry["routes"]) == 1 for entry in by_day)

    deleted = api.http.delete(f"{PREFIX}/routes/{route_id}", headers=carrier).json()
    assert deleted == {"route_id": route_id, "deleted": True, "deactivated": False}
    assert api.http.get(f"{PREFIX}/routes", headers=carrier).json() == []


def test_request_is_matched_and_accepted(api):
    api.http.post(f"{PREFIX}/routes", json=_route_payload(), headers=api.as_user("carrier-1"))
    requester = api.as_user("requester-1")

    created = api.http.post(
        f"{PREFIX}/requests",
        json={"pickup_station_id": "150", "dropoff_station_id": "222", "preferred_days": EVERY_DAY, "fee_total": 10_000},
        headers=requester,
    )
    assert created.status_code == 201
    request_id = created.json()["request_id"]
    assert created.json()["status"] == "matching"

    status = api.http.get(f"{PREFIX}/requests/{request_id}", headers=requester).json()
    pending = status["pending_match"]
    assert pending["carrier_id"] == "carrier-1"
    assert pending["details"]["coverage_type"] == "direct"
    assert api.http.get(f"{PREFIX}/health/matching").json()["open_windows"] == 1

    wrong = api.http.post(f"{PREFIX}/matches/{pending['match_id']}/accept", headers=api.as_user("carrier-2"))
    assert wrong.status_code == 403

    accepted = api.http.post(f"{PREFIX}/matches/{pending['match_id']}/accept", headers=api.as_user("carrier-1"))
    assert accepted.status_code == 200
    assert accepted.json()["status"] == "accepted"

    status = api.http.get(f"{PREFIX}/requests/{request_id}", headers=requester).json()
    assert status["request"]["status"] == "matched"
    assert status["request"]["carrier_id"] == "carrier-1"
    assert status["pending_match"] is None

    cancel = api.http.post(f"{PREFIX}/requests/{request_id}/cancel", headers=requester)
    assert cancel.status_code == 409
    assert [event.event_type for event in api.sink.events] == [events.MATCH_CREATED, events.MATCH_ACCEPTED]


def test_request_errors(api):
    requester = api.as_user("requester-1")

    same = api.http.post(f"{PREFIX}/requests", json={"pickup_station_id": "150", "dropoff_station_id": "150"}, headers=requester)
    assert same.status_code == 400
    assert same.json()["detail"]["reason"] == "same_station"

    assert api.http.get(f"{PREFIX}/requests/missing", headers=requester).status_code == 404
    assert api.http.post(f"{PREFIX}/matches/missing/reject", headers=requester).status_code == 404


def test_request_without_carriers_can_be_cancelled(api):
    requester = api.as_user("requester-1")
    request_id = api.http.post(
        f"{PREFIX}/requests",
        json={"pickup_station_id": "152", "dropoff_station_id": "211", "preferred_days": [6]},
        headers=requester,
    ).json()["request_id"]

    assert api.http.post(f"{PREFIX}/requests/{request_id}/cancel", headers=api.as_user("someone-else")).status_code == 403
    cancelled = api.http.post(f"{PREFIX}/requests/{request_id}/cancel", headers=requester)

    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "cancelled"


def test_batch_endpoints(api):
    settlements = api.http.post(f"{PREFIX}/batch/settlements", json={"year": 2024, "month": 3}).json()
    invoices = api.http.post(f"{PREFIX}/batch/tax-invoices", json={"year": 2024, "month": 3}).json()

    assert settlements["settlements_generated"] == 1
    assert settlements["processed"] == 2
    assert invoices["invoices_generated"] == 1
    assert invoices["total_amount"] == 11_000
    assert api.http.post(f"{PREFIX}/batch/settlements", json={"month": 13}).status_code == 422


def test_request_status_is_private_to_its_parties(api):
    api.http.post(f"{PREFIX}/routes", json=_route_payload(), headers=api.as_user("carrier-1"))
    created = api.http.post(
        f"{PREFIX}/requests",
        json={"pickup_station_id": "150", "dropoff_station_id": "222", "preferred_days": EVERY_DAY, "pickup_start_time": "08:40"},
        headers=api.as_user("requester-1"),
    ).json()
    request_id = created["request_id"]

    assert created["pickup_start_time"] == "08:40"
    assert api.http.get(f"{PREFIX}/requests/{request_id}", headers=api.as_user("carrier-1")).status_code == 200
    outsider = api.http.get(f"{PREFIX}/requests/{request_id}", headers=api.as_user("carrier-2"))
    assert outsider.status_code == 403
    assert outsider.json()["detail"]["reason"] == "not_request_owner"


def test_request_rejects_malformed_pickup_time(api):
    response = api.http.post(
        f"{PREFIX}/requests",
        json={"pickup_station_id": "150", "dropoff_station_id": "222", "pickup_start_time": "8:40"},
        headers=api.as_user("requester-1"),
    )

    assert response.status_code == 422
