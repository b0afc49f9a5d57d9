"""Route input validation. Pure: no I/O, no state between calls."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional, Protocol, Sequence

TIME_PATTERN = re.compile(r"([01][0-9]|2[0-3]):([0-5][0-9])")

MISSING_START = "출발역을 선택해주세요."
MISSING_END = "도착역을 선택해주세요."
SAME_STATION = "출발역과 도착역이 같습니다."
NO_DAYS = "최소 하루 이상 선택해야 합니다."
BAD_DAY = "요일은 1(월)부터 7(일) 사이여야 합니다."
BAD_TIME = "시간 형식이 올바르지 않습니다. (HH:MM)"

OFF_PEAK_WARNING = "러시아워 시간대가 아니면 매칭이 어려울 수 있습니다."
BEFORE_SERVICE_WARNING = "지하철 운행 시간 전입니다."
AFTER_SERVICE_WARNING = "지하철 운행이 종료될 시간입니다."
MIXED_DAYS_WARNING = "평일/주말 시간대를 다르게 설정하는 것을 권장합니다."


class RouteLike(Protocol):
    start_station_id: Optional[str]
    end_station_id: Optional[str]
    departure_time: str
    days_of_week: Sequence[int]


@dataclass(slots=True)
class RouteValidationResult:
    is_valid: bool
    errors: list[str]
    warnings: list[str] = field(default_factory=list)


def parse_departure_minutes(value: str | None) -> int | None:
    """``"08:30"`` -> 510; ``None`` when the value is not a valid 24h HH:MM."""
    match = TIME_PATTERN.fullmatch(value or "")
    if not match:
        return None
    return int(match.group(1)) * 60 + int(match.group(2))


def _is_day(value: object) -> bool:
    # bool is an int subclass; True must not pass as Monday
    return isinstance(value, int) and not isinstance(value, bool) and 1 <= value <= 7


def _time_warnings(minutes: int) -> list[str]:
    warnings: list[str] = []
    morning_rush = 7 * 60 <= minutes <= 9 * 60
    evening_rush = 18 * 60 <= minutes <= 20 * 60
    if not morning_rush and not evening_rush:
        warnings.append(OFF_PEAK_WARNING)
    if minutes < 5 * 60:
        warnings.append(BEFORE_SERVICE_WARNING)
    if minutes > 23 * 60:
        warnings.append(AFTER_SERVICE_WARNING)
    return warnings


def validate_route(route: RouteLike) -> RouteValidationResult:
    """Check every route rule and report all violations at once."""
    errors: list[str] = []

    start = (route.start_station_id or "").strip()
    end = (route.end_station_id or "").strip()
    if not start:
        errors.append(MISSING_START)
    if not end:
        errors.append(MISSING_END)
    if start and end and start == end:
        errors.append(SAME_STATION)

    days = list(route.days_of_week or [])
    if not days:
        errors.append(NO_DAYS)
    elif any(not _is_day(day) for day in days):
        errors.append(BAD_DAY)

    minutes = parse_departure_minutes(route.departure_time)
    if minutes is None:
        errors.append(BAD_TIME)

    warnings: list[str] = []
    if minutes is not None:
        warnings.extend(_time_warnings(minutes))
    weekdays = [day for day in days if _is_day(day)]
    if any(day <= 5 for day in weekdays) and any(day >= 6 for day in weekdays):
        warnings.append(MIXED_DAYS_WARNING)

    return RouteValidationResult(is_valid=not errors, errors=errors, warnings=warnings)
