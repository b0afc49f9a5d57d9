"""Carrier commute route endpoints."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query, status

from ...models.domain import Route
from ...schemas.routes import RouteInput, RouteModel, RoutesByDayModel, RouteUpdate, RouteValidationModel
from ...services.routes.service import RouteService
from ...services.routes.validation import validate_route
from ..dependencies import current_user_id, get_route_service, raise_http_error

router = APIRouter(prefix="/routes", tags=["routes"])


def _route_model(route: Route) -> RouteModel:
    return RouteModel(route_id=route.route_id, **route.to_document())


@router.post("/validate", response_model=RouteValidationModel, status_code=status.HTTP_200_OK)
def validate(payload: RouteInput) -> RouteValidationModel:
    """Dry-run validation so clients can show every problem inline."""
    result = validate_route(payload)
    return RouteValidationModel(isValid=result.is_valid, errors=result.errors, warnings=result.warnings)


@router.post("", response_model=RouteModel, status_code=status.HTTP_201_CREATED)
async def create_route(
    payload: RouteInput,
    user_id: str = Depends(current_user_id),
    service: RouteService = Depends(get_route_service),
) -> RouteModel:
    try:
        route = await service.create_route(user_id, payload)
    except Exception as exc:
        raise_http_error(exc)
    return _route_model(route)


@router.get("", response_model=List[RouteModel], status_code=status.HTTP_200_OK)
async def list_routes(
    active_only: bool = Query(default=False),
    user_id: str = Depends(current_user_id),
    service: RouteService = Depends(get_route_service),
) -> List[RouteModel]:
    try:
        routes = await service.list_routes(user_id, active_only=active_only)
    except Exception as exc:
        raise_http_error(exc)
    return [_route_model(route) for route in routes]


@router.get("/by-day", response_model=List[RoutesByDayModel], status_code=status.HTTP_200_OK)
async def routes_by_day(
    user_id: str = Depends(current_user_id),
    service: RouteService = Depends(get_route_service),
) -> List[RoutesByDayModel]:
    try:
        grouped = await service.routes_by_day(user_id)
    except Exception as exc:
        raise_http_error(exc)
    return [
        RoutesByDayModel(day_of_week=day, routes=[_route_model(route) for route in routes])
        for day, routes in sorted(grouped.items())
    ]


@router.patch("/{route_id}", response_model=RouteModel, status_code=status.HTTP_200_OK)
async def update_route(
    route_id: str,
    payload: RouteUpdate,
    user_id: str = Depends(current_user_id),
    service: RouteService = Depends(get_route_service),
) -> RouteModel:
    try:
        route = await service.update_route(route_id, user_id, payload.model_dump(exclude_unset=True))
    except Exception as exc:
        raise_http_error(exc)
    return _route_model(route)


@router.post("/{route_id}/deactivate", response_model=RouteModel, status_code=status.HTTP_200_OK)
async def deactivate_route(
    route_id: str,
    user_id: str = Depends(current_user_id),
    service: RouteService = Depends(get_route_service),
) -> RouteModel:
    try:
        route = await service.deactivate_route(route_id, user_id)
    except Exception as exc:
        raise_http_error(exc)
    return _route_model(route)


@router.delete("/{route_id}", status_code=status.HTTP_200_OK)
async def delete_route(
    route_id: str,
    user_id: str = Depends(current_user_id),
    service: RouteService = Depends(get_route_service),
) -> dict:
    try:
        deleted = await service.delete_route(route_id, user_id)
    except Exception as exc:
        raise_http_error(exc)
    return {"route_id": route_id, "deleted": deleted, "deactivated": not deleted}
