"""Domain models for stations, routes, delivery requests, matches and payouts."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def from_iso(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


class Urgency(str, Enum):
    NORMAL = "normal"
    EXPRESS = "express"


class PackageSize(str, Enum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"


class RequestStatus(str, Enum):
    PENDING = "pending"
    MATCHING = "matching"
    MATCHED = "matched"
    IN_TRANSIT = "in_transit"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RequestStatus.COMPLETED, RequestStatus.FAILED, RequestStatus.CANCELLED)


class MatchStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"


class CarrierTier(str, Enum):
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"


@dataclass(slots=True, frozen=True)
class Station:
    """Subway station reference record."""

    station_id: str
    name: str
    lines: tuple[str, ...]
    latitude: float
    longitude: float
    name_english: Optional[str] = None
    is_transfer: bool = False

    @classmethod
    def from_document(cls, doc_id: str, data: dict) -> "Station":
        return cls(
            station_id=str(data.get("station_id") or doc_id),
            name=str(data["name"]),
            lines=tuple(str(line) for line in data.get("lines") or ()),
            latitude=float(data.get("latitude") or 0.0),
            longitude=float(data.get("longitude") or 0.0),
            name_english=data.get("name_english") or None,
            is_transfer=bool(data.get("is_transfer", False)),
        )

    def to_document(self) -> dict:
        return {
            "station_id": self.station_id,
            "name": self.name,
            "name_english": self.name_english,
            "lines": list(self.lines),
            "latitude": self.latitude,
            "longitude": self.longitude,
            "is_transfer": self.is_transfer,
        }


@dataclass(slots=True, frozen=True)
class TravelTime:
    """Estimated travel between an ordered pair of stations."""

    from_station_id: str
    to_station_id: str
    minutes: float
    distance_m: float = 0.0
    has_express: bool = False
    express_minutes: Optional[float] = None
    transfer_count: int = 0

    @property
    def key(self) -> str:
        return f"{self.from_station_id}-{self.to_station_id}"

    @classmethod
    def from_document(cls, data: dict) -> "TravelTime":
        express = data.get("express_minutes")
        return cls(
            from_station_id=str(data["from_station_id"]),
            to_station_id=str(data["to_station_id"]),
            minutes=float(data["minutes"]),
            distance_m=float(data.get("distance_m") or 0.0),
            has_express=bool(data.get("has_express", False)),
            express_minutes=float(express) if express not in (None, "") else None,
            transfer_count=int(data.get("transfer_count") or 0),
        )

    def to_document(self) -> dict:
        return {
            "from_station_id": self.from_station_id,
            "to_station_id": self.to_station_id,
            "minutes": self.minutes,
            "distance_m": self.distance_m,
            "has_express": self.has_express,
            "express_minutes": self.express_minutes,
            "transfer_count": self.transfer_count,
        }


@dataclass(slots=True, frozen=True)
class Route:
    """A carrier's recurring commute. Days use 1=Mon .. 7=Sun."""

    route_id: str
    carrier_id: str
    start_station_id: str
    end_station_id: str
    departure_time: str
    days_of_week: tuple[int, ...]
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc_id: str, data: dict) -> "Route":
        return cls(
            route_id=doc_id,
            carrier_id=str(data["carrier_id"]),
            start_station_id=str(data["start_station_id"]),
            end_station_id=str(data["end_station_id"]),
            departure_time=str(data.get("departure_time") or ""),
            days_of_week=tuple(int(day) for day in data.get("days_of_week") or ()),
            is_active=bool(data.get("is_active", True)),
            created_at=from_iso(data.get("created_at")),
            updated_at=from_iso(data.get("updated_at")),
        )

    def to_document(self) -> dict:
        return {
            "carrier_id": self.carrier_id,
            "start_station_id": self.start_station_id,
            "end_station_id": self.end_station_id,
            "departure_time": self.departure_time,
            "days_of_week": list(self.days_of_week),
            "is_active": self.is_active,
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
        }


@dataclass(slots=True)
class DeliveryRequest:
    """A requester's package delivery between two stations."""

    request_id: str
    requester_id: str
    pickup_station_id: str
    dropoff_station_id: str
    urgency: Urgency = Urgency.NORMAL
    package_size: PackageSize = PackageSize.SMALL
    package_weight_kg: float = 1.0
    preferred_days: tuple[int, ...] = ()
    fee_total: int = 0
    pickup_start_time: Optional[str] = None
    status: RequestStatus = RequestStatus.PENDING
    retry_count: int = 0
    search_level: int = 0
    carrier_id: Optional[str] = None
    failure_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc_id: str, data: dict) -> "DeliveryRequest":
        return cls(
            request_id=doc_id,
            requester_id=str(data["requester_id"]),
            pickup_station_id=str(data["pickup_station_id"]),
            dropoff_station_id=str(data["dropoff_station_id"]),
            urgency=Urgency(data.get("urgency") or Urgency.NORMAL.value),
            package_size=PackageSize(data.get("package_size") or PackageSize.SMALL.value),
            package_weight_kg=float(data.get("package_weight_kg") or 1.0),
            preferred_days=tuple(int(day) for day in data.get("preferred_days") or ()),
            fee_total=int(data.get("fee_total") or 0),
            pickup_start_time=data.get("pickup_start_time"),
            status=RequestStatus(data.get("status") or RequestStatus.PENDING.value),
            retry_count=int(data.get("retry_count") or 0),
            search_level=int(data.get("search_level") or 0),
            carrier_id=data.get("carrier_id"),
            failure_reason=data.get("failure_reason"),
            created_at=from_iso(data.get("created_at")),
            updated_at=from_iso(data.get("updated_at")),
        )

    def to_document(self) -> dict:
        return {
            "requester_id": self.requester_id,
            "pickup_station_id": self.pickup_station_id,
            "dropoff_station_id": self.dropoff_station_id,
            "urgency": self.urgency.value,
            "package_size": self.package_size.value,
            "package_weight_kg": self.package_weight_kg,
            "preferred_days": list(self.preferred_days),
            "fee_total": self.fee_total,
            "pickup_start_time": self.pickup_start_time,
            "status": self.status.value,
            "retry_count": self.retry_count,
            "search_level": self.search_level,
            "carrier_id": self.carrier_id,
            "failure_reason": self.failure_reason,
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
        }


@dataclass(slots=True, frozen=True)
class CarrierCandidate:
    """Read model of a carrier assembled for scoring; never persisted as-is."""

    carrier_id: str
    name: str
    routes: tuple[Route, ...] = ()
    average_rating: float = 3.5
    total_deliveries: int = 0
    recent_deliveries: int = 0
    recent_penalties: int = 0
    # completed / accepted deliveries; None until the carrier has any history
    completion_rate: Optional[float] = None


@dataclass(slots=True)
class Match:
    """Proposal of one request to one carrier inside an acceptance window."""

    match_id: str
    request_id: str
    carrier_id: str
    score: float
    attempt: int
    status: MatchStatus = MatchStatus.PENDING
    created_at: Optional[datetime] = None
    decided_at: Optional[datetime] = None
    details: dict = field(default_factory=dict)

    @classmethod
    def from_document(cls, doc_id: str, data: dict) -> "Match":
        return cls(
            match_id=doc_id,
            request_id=str(data["request_id"]),
            carrier_id=str(data["carrier_id"]),
            score=float(data.get("score") or 0.0),
            attempt=int(data.get("attempt") or 0),
            status=MatchStatus(data.get("status") or MatchStatus.PENDING.value),
            created_at=from_iso(data.get("created_at")),
            decided_at=from_iso(data.get("decided_at")),
            details=dict(data.get("details") or {}),
        )

    def to_document(self) -> dict:
        return {
            "request_id": self.request_id,
            "carrier_id": self.carrier_id,
            "score": self.score,
            "attempt": self.attempt,
            "status": self.status.value,
            "created_at": to_iso(self.created_at),
            "decided_at": to_iso(self.decided_at),
            "details": self.details,
        }


@dataclass(slots=True, frozen=True)
class SettlementEarnings:
    base: int
    tier_bonus: int
    activity_bonus: int
    quality_bonus: int
    bonus_total: int
    subtotal: int
    withholding_tax: int
    net_amount: int


@dataclass(slots=True, frozen=True)
class Settlement:
    """Monthly payout for one carrier."""

    carrier_id: str
    carrier_name: str
    tier: CarrierTier
    year: int
    month: int
    period_start: datetime
    period_end: datetime
    delivery_count: int
    earnings: SettlementEarnings
    bank_account: dict
    status: str = "pending"
    created_at: Optional[datetime] = None

    @property
    def period_key(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    def to_document(self) -> dict:
        earnings = self.earnings
        return {
            "carrier_id": self.carrier_id,
            "carrier_name": self.carrier_name,
            "tier": self.tier.value,
            "period": {
                "year": self.year,
                "month": self.month,
                "start": to_iso(self.period_start),
                "end": to_iso(self.period_end),
            },
            "period_key": self.period_key,
            "deliveries": {"total": self.delivery_count, "completed": self.delivery_count, "canceled": 0},
            "earnings": {
                "base": earnings.base,
                "tier_bonus": earnings.tier_bonus,
                "activity_bonus": earnings.activity_bonus,
                "quality_bonus": earnings.quality_bonus,
                "bonus_total": earnings.bonus_total,
                "subtotal": earnings.subtotal,
                "withholding_tax": earnings.withholding_tax,
                "net_amount": earnings.net_amount,
            },
            "bank_account": self.bank_account,
            "status": self.status,
            "transferred_at": None,
            "created_at": to_iso(self.created_at),
        }


@dataclass(slots=True, frozen=True)
class TaxInvoice:
    """Monthly VAT invoice issued to one business contract."""

    invoice_number: str
    contract_id: str
    company_id: Optional[str]
    issuer: dict
    recipient: dict
    year: int
    month: int
    period_start: datetime
    period_end: datetime
    delivery_count: int
    subtotal: int
    tax: int
    status: str = "issued"
    issued_at: Optional[datetime] = None

    @property
    def period_key(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    @property
    def total_amount(self) -> int:
        return self.subtotal + self.tax

    def to_document(self) -> dict:
        unit_price = round(self.subtotal / self.delivery_count) if self.delivery_count else 0
        return {
            "invoice_number": self.invoice_number,
            "contract_id": self.contract_id,
            "company_id": self.company_id,
            "issuer": self.issuer,
            "recipient": self.recipient,
            "period": {
                "year": self.year,
                "month": self.month,
                "start": to_iso(self.period_start),
                "end": to_iso(self.period_end),
            },
            "period_key": self.period_key,
            "items": [
                {
                    "description": "크라우드 배송 대행 수수료",
                    "quantity": self.delivery_count,
                    "unit_price": unit_price,
                    "amount": self.subtotal,
                    "supply": self.subtotal,
                    "tax": self.tax,
                }
            ],
            "totals": {"subtotal": self.subtotal, "tax": self.tax, "total_amount": self.total_amount},
            "status": self.status,
            "pdf_url": None,
            "sent_at": None,
            "issued_at": to_iso(self.issued_at),
            "created_at": to_iso(self.issued_at),
        }
