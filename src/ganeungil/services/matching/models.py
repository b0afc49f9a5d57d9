"""Matching domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Literal, Optional

from ...models.domain import CarrierCandidate

CoverageType = Literal["direct", "partial", "none"]
Congestion = Literal["low", "medium", "high"]


@dataclass(slots=True, frozen=True)
class RouteEvaluation:
    compatible: bool
    detour_minutes: float
    coverage_type: CoverageType
    route_id: Optional[str] = None
    travel_minutes: float = 0.0
    transfer_count: int = 0
    has_express: bool = False
    congestion: Optional[Congestion] = None


INCOMPATIBLE = RouteEvaluation(compatible=False, detour_minutes=0.0, coverage_type="none")


@dataclass(slots=True, frozen=True)
class ScoreBreakdown:
    carrier_id: str
    score: float
    base_score: float = 0.0
    rating_penalty: float = 0.0
    experience_bonus: float = 0.0
    schedule_penalty: float = 0.0
    reliability_penalty: float = 0.0
    evaluation: RouteEvaluation = INCOMPATIBLE
    reasons: List[str] = field(default_factory=list)

    def as_details(self) -> dict:
        evaluation = self.evaluation
        return {
            "base_score": self.base_score,
            "rating_penalty": self.rating_penalty,
            "experience_bonus": self.experience_bonus,
            "schedule_penalty": self.schedule_penalty,
            "reliability_penalty": self.reliability_penalty,
            "route_id": evaluation.route_id,
            "detour_minutes": evaluation.detour_minutes,
            "coverage_type": evaluation.coverage_type,
            "travel_minutes": evaluation.travel_minutes,
            "transfer_count": evaluation.transfer_count,
            "has_express": evaluation.has_express,
            "congestion": evaluation.congestion,
            "reasons": list(self.reasons),
        }


@dataclass(slots=True, frozen=True)
class ScoredCandidate:
    carrier: CarrierCandidate
    breakdown: ScoreBreakdown

    @property
    def carrier_id(self) -> str:
        return self.carrier.carrier_id

    @property
    def score(self) -> float:
        return self.breakdown.score
