"""Exception taxonomy shared by services and the API layer."""

from __future__ import annotations

from typing import Sequence


class GaneungilError(Exception):
    """Base class for all application errors."""


class BusinessRuleError(GaneungilError):
    """A request the caller is not allowed to make, with a machine-readable reason."""

    def __init__(self, reason: str, message: str | None = None) -> None:
        self.reason = reason
        self.message = message or reason
        super().__init__(self.message)


class RouteValidationError(BusinessRuleError):
    """Route input failed validation; ``errors`` holds every violated rule."""

    def __init__(self, errors: Sequence[str]) -> None:
        self.errors = list(errors)
        super().__init__("invalid_route", "경로가 유효하지 않습니다.")


class StoreError(GaneungilError):
    """The backing document store failed to complete an operation."""


class StoreUnavailableError(StoreError):
    """Transient store failure (network, timeout); safe to retry."""


class BatchCommitError(StoreError):
    """An atomic batch was rejected as a whole; nothing was written."""


class MatchingFailedError(GaneungilError):
    """Matching could not proceed because the store kept failing."""

    def __init__(self, request_id: str, message: str) -> None:
        self.request_id = request_id
        super().__init__(message)
