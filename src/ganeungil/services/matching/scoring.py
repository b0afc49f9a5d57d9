"""Carrier scoring: how good a fit is a carrier for a delivery request?

The score is a pure function of the request, the carrier snapshot and the
reference data held by the evaluator:

    base    = max(min_base, 100 - penalty_per_minute * detour * urgency_multiplier)
    bonus   = log-scaled lifetime deliveries + linear recent deliveries (capped)
    penalty = distance from a perfect rating, steeper below the threshold
              + departure gap to the pickup time and uncovered preferred days
              + share of accepted deliveries never completed
    score   = clamp(compatibility_weight * base + bonus - penalty, 0, 100)

A carrier without a compatible route scores exactly 0.
"""

from __future__ import annotations

import math
from typing import Iterable, List

from ...models.domain import CarrierCandidate, DeliveryRequest, Route, Urgency
from ..routes.validation import parse_departure_minutes
from .evaluator import RouteEvaluator
from .models import ScoreBreakdown, ScoredCandidate
from .policy import ScoringPolicy, default_scoring_policy


class MatchScorer:
    def __init__(self, evaluator: RouteEvaluator, policy: ScoringPolicy | None = None) -> None:
        self.evaluator = evaluator
        self.policy = policy or default_scoring_policy()

    def score(self, request: DeliveryRequest, carrier: CarrierCandidate, weekday: int | None = None) -> float:
        return self.breakdown(request, carrier, weekday).score

    def breakdown(
        self,
        request: DeliveryRequest,
        carrier: CarrierCandidate,
        weekday: int | None = None,
    ) -> ScoreBreakdown:
        evaluation = self.evaluator.best(request, carrier.routes, weekday)
        if not evaluation.compatible:
            return ScoreBreakdown(carrier_id=carrier.carrier_id, score=0.0, evaluation=evaluation)

        policy = self.policy
        base = self._base_score(evaluation.detour_minutes, request.urgency)
        penalty = self._rating_penalty(carrier.average_rating)
        bonus = self._experience_bonus(carrier.total_deliveries, carrier.recent_deliveries)
        route = next((route for route in carrier.routes if route.route_id == evaluation.route_id), None)
        schedule = self._schedule_penalty(request, route)
        reliability = self._reliability_penalty(carrier.completion_rate)

        raw = policy.compatibility_weight * base + bonus - penalty - schedule - reliability
        score = round(min(100.0, max(0.0, raw)), 1)

        return ScoreBreakdown(
            carrier_id=carrier.carrier_id,
            score=score,
            base_score=round(base, 2),
            rating_penalty=round(penalty, 2),
            experience_bonus=round(bonus, 2),
            schedule_penalty=round(schedule, 2),
            reliability_penalty=round(reliability, 2),
            evaluation=evaluation,
            reasons=self._reasons(evaluation, carrier),
        )

    def _base_score(self, detour_minutes: float, urgency: Urgency) -> float:
        policy = self.policy
        multiplier = policy.express_detour_multiplier if urgency == Urgency.EXPRESS else 1.0
        return max(policy.min_base_score, 100.0 - policy.detour_penalty_per_minute * detour_minutes * multiplier)

    def _rating_penalty(self, rating: float) -> float:
        policy = self.policy
        rating = min(policy.perfect_rating, max(0.0, rating))
        penalty = (policy.perfect_rating - rating) * policy.rating_penalty_per_point
        if rating < policy.rating_threshold:
            penalty += (policy.rating_threshold - rating) * policy.below_threshold_penalty_per_point
        return penalty

    def _experience_bonus(self, total_deliveries: int, recent_deliveries: int) -> float:
        policy = self.policy
        total = max(0, total_deliveries)
        recent = max(0, recent_deliveries)
        lifetime = min(1.0, math.log1p(total) / math.log1p(policy.total_deliveries_saturation))
        activity = min(1.0, recent / policy.recent_deliveries_saturation)
        return (
            policy.total_deliveries_bonus_cap * lifetime
            + policy.recent_deliveries_bonus_cap * activity
        )

    def _schedule_penalty(self, request: DeliveryRequest, route: Route | None) -> float:
        if route is None:
            return 0.0
        policy = self.policy
        penalty = 0.0
        pickup = parse_departure_minutes(request.pickup_start_time) if request.pickup_start_time else None
        departure = parse_departure_minutes(route.departure_time)
        if pickup is not None and departure is not None:
            gap = abs(departure - pickup)
            gap = min(gap, 24 * 60 - gap)
            penalty += policy.time_mismatch_penalty_cap * min(1.0, gap / policy.time_mismatch_saturation_minutes)
        preferred = set(request.preferred_days)
        if preferred:
            uncovered = len(preferred - set(route.days_of_week)) / len(preferred)
            penalty += policy.day_mismatch_penalty_cap * uncovered
        return penalty

    def _reliability_penalty(self, completion_rate: float | None) -> float:
        # carriers without history are not penalised
        if completion_rate is None:
            return 0.0
        return self.policy.incomplete_penalty_cap * (1.0 - min(1.0, max(0.0, completion_rate)))

    def _reasons(self, evaluation, carrier: CarrierCandidate) -> List[str]:
        reasons: List[str] = []
        if evaluation.coverage_type == "direct":
            reasons.append("출퇴근 경로와 정확히 일치")
        elif evaluation.detour_minutes == 0:
            reasons.append("경로상에 위치")
        elif evaluation.detour_minutes <= 10:
            reasons.append(f"우회 {evaluation.detour_minutes:g}분")
        if carrier.average_rating >= 4.5:
            reasons.append(f"높은 평점 ({carrier.average_rating:.1f})")
        if carrier.total_deliveries >= 100:
            reasons.append(f"배송 경험 {carrier.total_deliveries}건")
        if carrier.completion_rate is not None and carrier.completion_rate >= 0.95:
            reasons.append(f"완료율 {carrier.completion_rate:.0%}")
        if evaluation.has_express:
            reasons.append("급행 이용 가능")
        if evaluation.transfer_count == 0:
            reasons.append("환승 없음")
        return reasons


def rank_candidates(scored: Iterable[ScoredCandidate]) -> List[ScoredCandidate]:
    """Drop zero scores; order by score, rating, fewer penalties, then carrier id."""
    eligible = [candidate for candidate in scored if candidate.score > 0]
    return sorted(
        eligible,
        key=lambda c: (
            -c.score,
            -c.carrier.average_rating,
            c.carrier.recent_penalties,
            c.carrier.carrier_id,
        ),
    )


def score_candidates(
    scorer: MatchScorer,
    request: DeliveryRequest,
    carriers: Iterable[CarrierCandidate],
    weekday: int | None = None,
) -> List[ScoredCandidate]:
    """Score and rank ``carriers`` for ``request``."""
    scored = [
        ScoredCandidate(carrier=carrier, breakdown=scorer.breakdown(request, carrier, weekday))
        for carrier in carriers
    ]
    return rank_candidates(scored)
