"""Tunable thresholds for scoring and for the matching retry loop.

No logic here beyond sanity checks, so coefficients can be tuned without
touching the algorithms.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ...config import settings


@dataclass(frozen=True)
class ScoringPolicy:
    # --- Route compatibility ---
    # Points lost per detour minute, and the floor any compatible route keeps.
    detour_penalty_per_minute: float = 2.0
    min_base_score: float = 40.0
    express_detour_multiplier: float = 2.0

    # Share of the final score driven by route compatibility; the rest is
    # reserved for the experience bonus.
    compatibility_weight: float = 0.9

    # --- Rating ---
    perfect_rating: float = 5.0
    rating_penalty_per_point: float = 3.0
    rating_threshold: float = 4.0
    below_threshold_penalty_per_point: float = 6.0

    # --- Experience ---
    # log-scaled on lifetime deliveries, linear on recent ones, both capped
    total_deliveries_bonus_cap: float = 6.0
    total_deliveries_saturation: int = 200
    recent_deliveries_bonus_cap: float = 4.0
    recent_deliveries_saturation: int = 20

    # --- Schedule ---
    # Departure far from the requested pickup time costs up to the cap,
    # reached at the saturation gap; uncovered preferred days cost a share of
    # their own cap.
    time_mismatch_penalty_cap: float = 6.0
    time_mismatch_saturation_minutes: int = 60
    day_mismatch_penalty_cap: float = 3.0

    # --- Reliability ---
    # Scaled by the share of accepted deliveries left unfinished.
    incomplete_penalty_cap: float = 5.0

    def validate(self) -> None:
        if self.detour_penalty_per_minute <= 0:
            raise ValueError("detour_penalty_per_minute must be > 0")
        if not 0 <= self.min_base_score <= 100:
            raise ValueError("min_base_score must be within [0, 100]")
        if not 0 < self.compatibility_weight <= 1:
            raise ValueError("compatibility_weight must be within (0, 1]")
        experience_room = 100 * (1 - self.compatibility_weight)
        if self.total_deliveries_bonus_cap + self.recent_deliveries_bonus_cap > experience_room + 1e-9:
            raise ValueError("experience bonus caps exceed the share left by compatibility_weight")
        if self.express_detour_multiplier < 1:
            raise ValueError("express_detour_multiplier must be >= 1")
        if min(self.time_mismatch_penalty_cap, self.day_mismatch_penalty_cap, self.incomplete_penalty_cap) < 0:
            raise ValueError("schedule and reliability penalty caps must be >= 0")
        if self.time_mismatch_saturation_minutes <= 0:
            raise ValueError("time_mismatch_saturation_minutes must be > 0")


@dataclass(frozen=True)
class MatchingPolicy:
    # Carrier acceptance window before the match expires.
    acceptance_timeout_seconds: float = 30.0

    # Re-matching attempts after the initial one; the request fails once
    # retry_count would exceed this value.
    max_retries: int = 3

    # Maximum detour accepted at each search widening level. The orchestrator
    # moves to the next level when the ranked list runs out.
    detour_limits_minutes: tuple[int, ...] = field(default_factory=lambda: (10, 20, 30, 45))

    def validate(self) -> None:
        if self.acceptance_timeout_seconds <= 0:
            raise ValueError("acceptance_timeout_seconds must be > 0")
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if not self.detour_limits_minutes:
            raise ValueError("at least one detour limit is required")
        if list(self.detour_limits_minutes) != sorted(self.detour_limits_minutes):
            raise ValueError("detour limits must widen (non-decreasing)")

    def detour_limit(self, level: int) -> int:
        return self.detour_limits_minutes[min(level, len(self.detour_limits_minutes) - 1)]

    @property
    def max_search_level(self) -> int:
        return len(self.detour_limits_minutes) - 1


def default_scoring_policy() -> ScoringPolicy:
    policy = ScoringPolicy()
    policy.validate()
    return policy


def default_matching_policy() -> MatchingPolicy:
    """Matching policy built from application settings."""
    policy = MatchingPolicy(
        acceptance_timeout_seconds=settings.matching_timeout_seconds,
        max_retries=settings.max_match_retries,
        detour_limits_minutes=tuple(settings.search_detour_limits) or (10,),
    )
    policy.validate()
    return policy
