from pathlib import Path

import pytest

from ganeungil.config import settings
from ganeungil.data.station_repository import (
    ReferenceSnapshot,
    StationRepository,
    load_stations_file,
    load_travel_times_file,
)

DATA_DIR = Path(__file__).resolve().parents[1] / "data"
STATIONS_CSV = DATA_DIR / "stations.csv"
TRAVEL_TIMES_CSV = DATA_DIR / "travel_times.csv"


@pytest.fixture
def reference() -> ReferenceSnapshot:
    return ReferenceSnapshot(load_stations_file(STATIONS_CSV), load_travel_times_file(TRAVEL_TIMES_CSV))


@pytest.fixture(autouse=True)
def no_store_backoff(monkeypatch: pytest.MonkeyPatch) -> None:
    # retries stay bounded but never sleep in tests
    monkeypatch.setattr(settings, "store_backoff_seconds", 0.0)


@pytest.fixture
def station_repository():
    """Factory binding a StationRepository to a store, falling back to the bundled CSV files."""

    def build(store):
        return StationRepository(store, ttl_seconds=0, stations_file=STATIONS_CSV, travel_times_file=TRAVEL_TIMES_CSV)

    return build
