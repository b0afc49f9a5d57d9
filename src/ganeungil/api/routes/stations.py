"""Station reference data endpoints."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from ...data.station_repository import StationRepository
from ...schemas.stations import StationModel, TravelTimeModel
from ..dependencies import get_stations, raise_http_error

router = APIRouter(prefix="/stations", tags=["stations"])


@router.get("", response_model=List[StationModel], status_code=status.HTTP_200_OK)
async def list_stations(stations: StationRepository = Depends(get_stations)) -> List[StationModel]:
    try:
        items = await stations.list_stations()
    except Exception as exc:
        raise_http_error(exc)
    return [StationModel(**station.to_document()) for station in items]


@router.get("/travel-time", response_model=TravelTimeModel, status_code=status.HTTP_200_OK)
async def get_travel_time(
    from_station_id: str,
    to_station_id: str,
    stations: StationRepository = Depends(get_stations),
) -> TravelTimeModel:
    try:
        travel = await stations.get_travel_time(from_station_id, to_station_id)
    except Exception as exc:
        raise_http_error(exc)
    if travel is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Travel time not available")
    return TravelTimeModel(**travel.to_document())


@router.post("/sync", status_code=status.HTTP_200_OK)
async def sync_reference_data(stations: StationRepository = Depends(get_stations)) -> dict:
    """Seed the store with the bundled reference files when it has none."""
    try:
        synced = await stations.sync_reference_data_to_store()
    except Exception as exc:
        raise_http_error(exc)
    return {"status": "success", **synced}


@router.post("/cache/invalidate", status_code=status.HTTP_200_OK)
def invalidate_cache(stations: StationRepository = Depends(get_stations)) -> dict:
    return {"invalidated": stations.invalidate()}
