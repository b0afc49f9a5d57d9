"""Station and travel-time reference data, store-first with a CSV fallback."""

from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import Iterable, Optional

from ..config import settings
from ..errors import StoreError
from ..models.domain import Station, TravelTime
from ..persistence.store import BatchOperation, DocumentStore
from .cache import TTLCache

STATIONS_COLLECTION = "config_stations"
TRAVEL_TIMES_COLLECTION = "config_travel_times"

logger = logging.getLogger(__name__)


def _parse_bool(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in {"1", "true", "yes", "y"}


def _coerce_float(value: Optional[str]) -> Optional[float]:
    if value is None or value.strip() == "":
        return None
    try:
        return float(value.replace(",", ""))
    except ValueError as exc:
        raise ValueError(f"Unable to parse float from value '{value}'") from exc


class ReferenceSnapshot:
    """Immutable, synchronous view of stations and travel times.

    Shared read-only between concurrent matching runs.
    """

    def __init__(self, stations: Iterable[Station], travel_times: Iterable[TravelTime]) -> None:
        self._stations = {station.station_id: station for station in stations}
        self._by_name = {station.name: station for station in self._stations.values()}
        self._travel_times = {travel.key: travel for travel in travel_times}

    def __len__(self) -> int:
        return len(self._stations)

    @property
    def stations(self) -> tuple[Station, ...]:
        return tuple(self._stations.values())

    def station(self, station_id: str) -> Station | None:
        return self._stations.get(station_id)

    def station_by_name(self, name: str) -> Station | None:
        return self._by_name.get(name.strip())

    def travel_time(self, from_station_id: str, to_station_id: str) -> TravelTime | None:
        """Direct lookup, then the reverse pair. Same station is a zero-minute trip."""
        if from_station_id == to_station_id:
            if from_station_id not in self._stations:
                return None
            return TravelTime(from_station_id=from_station_id, to_station_id=to_station_id, minutes=0.0)
        direct = self._travel_times.get(f"{from_station_id}-{to_station_id}")
        if direct is not None:
            return direct
        return self._travel_times.get(f"{to_station_id}-{from_station_id}")

    def travel_minutes(self, from_station_id: str, to_station_id: str) -> float | None:
        travel = self.travel_time(from_station_id, to_station_id)
        return travel.minutes if travel else None


def load_stations_file(source: Path | None = None) -> tuple[Station, ...]:
    """Load stations from the configured CSV file."""
    csv_path = source or settings.stations_file
    if not csv_path.exists():
        raise FileNotFoundError(f"Station file not found: {csv_path}")

    stations: list[Station] = []
    with csv_path.open(mode="r", encoding="utf-8-sig", newline="") as handle:
        reader = csv.DictReader(handle)
        if not reader.fieldnames:
            raise ValueError(f"Station file '{csv_path}' is missing a header row.")
        for row in reader:
            station_id = (row.get("station_id") or "").strip()
            name = (row.get("name") or "").strip()
            if not station_id or not name:
                continue
            stations.append(
                Station(
                    station_id=station_id,
                    name=name,
                    name_english=(row.get("name_english") or "").strip() or None,
                    lines=tuple(line.strip() for line in (row.get("lines") or "").split("|") if line.strip()),
                    latitude=_coerce_float(row.get("latitude")) or 0.0,
                    longitude=_coerce_float(row.get("longitude")) or 0.0,
                    is_transfer=_parse_bool(row.get("is_transfer")),
                )
            )
    return tuple(stations)


def load_travel_times_file(source: Path | None = None) -> tuple[TravelTime, ...]:
    """Load travel times from the configured CSV file."""
    csv_path = source or settings.travel_times_file
    if not csv_path.exists():
        raise FileNotFoundError(f"Travel time file not found: {csv_path}")

    travel_times: list[TravelTime] = []
    with csv_path.open(mode="r", encoding="utf-8-sig", newline="") as handle:
        reader = csv.DictReader(handle)
        if not reader.fieldnames:
            raise ValueError(f"Travel time file '{csv_path}' is missing a header row.")
        for row in reader:
            minutes = _coerce_float(row.get("minutes"))
            if minutes is None:
                continue  # a pair without a duration is no information
            travel_times.append(
                TravelTime(
                    from_station_id=(row.get("from_station_id") or "").strip(),
                    to_station_id=(row.get("to_station_id") or "").strip(),
                    minutes=minutes,
                    distance_m=_coerce_float(row.get("distance_m")) or 0.0,
                    has_express=_parse_bool(row.get("has_express")),
                    express_minutes=_coerce_float(row.get("express_minutes")),
                    transfer_count=int(_coerce_float(row.get("transfer_count")) or 0),
                )
            )
    return tuple(travel_times)


class StationRepository:
    """Read-only access to stations and travel times with explicit invalidation."""

    def __init__(
        self,
        store: DocumentStore,
        *,
        ttl_seconds: float | None = None,
        stations_file: Path | None = None,
        travel_times_file: Path | None = None,
    ) -> None:
        self.store = store
        self.stations_file = stations_file
        self.travel_times_file = travel_times_file
        self._cache = TTLCache(ttl_seconds if ttl_seconds is not None else settings.reference_cache_ttl_seconds)

    async def _load_from_store(self) -> ReferenceSnapshot | None:
        try:
            station_docs = await self.store.query(STATIONS_COLLECTION)
            if not station_docs:
                return None
            travel_docs = await self.store.query(TRAVEL_TIMES_COLLECTION)
        except StoreError as exc:
            logger.warning(f"Reference data query failed, falling back to files: {exc}")
            return None

        stations: list[Station] = []
        for doc in station_docs:
            try:
                stations.append(Station.from_document(doc.id, doc.data))
            except (KeyError, ValueError, TypeError) as exc:
                logger.warning(f"Skipping invalid station document {doc.id}: {exc}")
        travel_times: list[TravelTime] = []
        for doc in travel_docs:
            try:
                travel_times.append(TravelTime.from_document(doc.data))
            except (KeyError, ValueError, TypeError) as exc:
                logger.warning(f"Skipping invalid travel time document {doc.id}: {exc}")
        return ReferenceSnapshot(stations, travel_times)

    def _load_from_files(self) -> ReferenceSnapshot:
        return ReferenceSnapshot(
            load_stations_file(self.stations_file),
            load_travel_times_file(self.travel_times_file),
        )

    async def snapshot(self) -> ReferenceSnapshot:
        """Current reference data; store first, CSV files when the store is empty."""
        cached = self._cache.get("snapshot")
        if cached is not None:
            return cached

        snapshot = await self._load_from_store()
        if snapshot is None:
            snapshot = self._load_from_files()
            logger.info(f"Loaded {len(snapshot)} stations from reference files")
        self._cache.set("snapshot", snapshot)
        return snapshot

    async def get_station(self, station_id: str) -> Station | None:
        return (await self.snapshot()).station(station_id)

    async def get_station_by_name(self, name: str) -> Station | None:
        return (await self.snapshot()).station_by_name(name)

    async def list_stations(self) -> tuple[Station, ...]:
        return (await self.snapshot()).stations

    async def get_travel_time(self, from_station_id: str, to_station_id: str) -> TravelTime | None:
        return (await self.snapshot()).travel_time(from_station_id, to_station_id)

    def invalidate(self, pattern: str | None = None) -> int:
        return self._cache.clear(pattern)

    async def sync_reference_data_to_store(self) -> dict[str, int]:
        """Copy the CSV reference data into the store when the store has none."""
        existing = await self.store.query(STATIONS_COLLECTION)
        if existing:
            return {"stations": 0, "travel_times": 0}

        stations = load_stations_file(self.stations_file)
        travel_times = load_travel_times_file(self.travel_times_file)
        operations = [
            BatchOperation(kind="set", collection=STATIONS_COLLECTION, doc_id=station.station_id, data=station.to_document())
            for station in stations
        ]
        operations.extend(
            BatchOperation(kind="set", collection=TRAVEL_TIMES_COLLECTION, doc_id=travel.key, data=travel.to_document())
            for travel in travel_times
        )
        await self.store.atomic_batch(operations)
        self.invalidate()
        logger.info(f"Synced {len(stations)} stations and {len(travel_times)} travel times to the store")
        return {"stations": len(stations), "travel_times": len(travel_times)}
