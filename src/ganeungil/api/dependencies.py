"""Request-scoped dependencies and error mapping shared by the routers."""

from __future__ import annotations

import logging
from typing import NoReturn

from fastapi import Header, HTTPException, Request, status

from ..data.station_repository import StationRepository
from ..errors import BusinessRuleError, MatchingFailedError, RouteValidationError, StoreError
from ..persistence.store import DocumentStore
from ..services.matching.orchestrator import MatchingOrchestrator
from ..services.routes.service import RouteService

logger = logging.getLogger(__name__)

_NOT_FOUND = {"route_not_found", "request_not_found", "match_not_found"}
_FORBIDDEN = {"not_route_owner", "not_request_owner", "not_match_carrier"}
_CONFLICT = {"match_not_pending", "match_already_accepted", "request_already_resolved"}


def current_user_id(x_user_id: str = Header(..., alias="X-User-Id", min_length=1)) -> str:
    """Caller identity, passed explicitly into every service call."""
    return x_user_id


def get_store(request: Request) -> DocumentStore:
    return request.app.state.store


def get_stations(request: Request) -> StationRepository:
    return request.app.state.stations


def get_orchestrator(request: Request) -> MatchingOrchestrator:
    return request.app.state.orchestrator


def get_route_service(request: Request) -> RouteService:
    return request.app.state.route_service


def raise_http_error(exc: Exception) -> NoReturn:
    """Translate a service error into the matching HTTP response."""
    if isinstance(exc, RouteValidationError):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"reason": exc.reason, "message": exc.message, "errors": exc.errors},
        ) from exc
    if isinstance(exc, BusinessRuleError):
        if exc.reason in _NOT_FOUND:
            code = status.HTTP_404_NOT_FOUND
        elif exc.reason in _FORBIDDEN:
            code = status.HTTP_403_FORBIDDEN
        elif exc.reason in _CONFLICT:
            code = status.HTTP_409_CONFLICT
        else:
            code = status.HTTP_400_BAD_REQUEST
        raise HTTPException(status_code=code, detail={"reason": exc.reason, "message": exc.message}) from exc
    if isinstance(exc, (StoreError, MatchingFailedError)):
        logger.error(f"Store failure surfaced to client: {exc}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    logger.exception("Unexpected error while handling request")
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error") from exc
