"""Carrier route request/response schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class RouteInput(BaseModel):
    """Route as entered by a carrier. Deliberately loose; ``validate_route`` judges it."""

    start_station_id: Optional[str] = None
    end_station_id: Optional[str] = None
    departure_time: str = ""
    days_of_week: List[int] = Field(default_factory=list, description="1=Mon .. 7=Sun")


class RouteUpdate(BaseModel):
    start_station_id: Optional[str] = None
    end_station_id: Optional[str] = None
    departure_time: Optional[str] = None
    days_of_week: Optional[List[int]] = None
    is_active: Optional[bool] = None


class RouteValidationModel(BaseModel):
    isValid: bool
    errors: List[str]
    warnings: List[str] = Field(default_factory=list)


class RouteModel(BaseModel):
    route_id: str
    carrier_id: str
    start_station_id: str
    end_station_id: str
    departure_time: str
    days_of_week: List[int]
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RoutesByDayModel(BaseModel):
    day_of_week: int
    routes: List[RouteModel]
