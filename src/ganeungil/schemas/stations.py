"""Reference data schemas."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel


class StationModel(BaseModel):
    station_id: str
    name: str
    name_english: Optional[str] = None
    lines: List[str]
    latitude: float
    longitude: float
    is_transfer: bool = False


class TravelTimeModel(BaseModel):
    from_station_id: str
    to_station_id: str
    minutes: float
    distance_m: float = 0.0
    has_express: bool = False
    express_minutes: Optional[float] = None
    transfer_count: int = 0
