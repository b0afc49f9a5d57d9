"""Delivery request and match schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from ..models.domain import DeliveryRequest, Match, PackageSize, Urgency


class DeliveryRequestCreate(BaseModel):
    pickup_station_id: str = Field(..., min_length=1)
    dropoff_station_id: str = Field(..., min_length=1)
    urgency: Urgency = Urgency.NORMAL
    package_size: PackageSize = PackageSize.SMALL
    package_weight_kg: float = Field(default=1.0, gt=0, le=30)
    preferred_days: List[int] = Field(default_factory=list, description="Flexible window, 1=Mon .. 7=Sun")
    fee_total: int = Field(default=0, ge=0)
    pickup_start_time: Optional[str] = Field(
        default=None, pattern=r"^([01][0-9]|2[0-3]):[0-5][0-9]$", description="Earliest pickup, HH:MM"
    )


class DeliveryRequestModel(BaseModel):
    request_id: str
    requester_id: str
    pickup_station_id: str
    dropoff_station_id: str
    urgency: Urgency
    package_size: PackageSize
    package_weight_kg: float
    preferred_days: List[int]
    fee_total: int
    pickup_start_time: Optional[str] = None
    status: str
    retry_count: int
    search_level: int
    carrier_id: Optional[str] = None
    failure_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, request: DeliveryRequest) -> "DeliveryRequestModel":
        return cls(request_id=request.request_id, **request.to_document())


class MatchModel(BaseModel):
    match_id: str
    request_id: str
    carrier_id: str
    score: float
    attempt: int
    status: str
    created_at: Optional[datetime] = None
    decided_at: Optional[datetime] = None
    details: dict = Field(default_factory=dict)

    @classmethod
    def from_domain(cls, match: Match) -> "MatchModel":
        return cls(match_id=match.match_id, **match.to_document())


class MatchingStatusModel(BaseModel):
    request: DeliveryRequestModel
    matches: List[MatchModel]
    pending_match: Optional[MatchModel] = None
