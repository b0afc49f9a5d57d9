"""Delivery request endpoints for requesters."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ...models.domain import MatchStatus
from ...schemas.matching import DeliveryRequestCreate, DeliveryRequestModel, MatchingStatusModel, MatchModel
from ...services.matching.orchestrator import MatchingOrchestrator
from ..dependencies import current_user_id, get_orchestrator, raise_http_error

router = APIRouter(prefix="/requests", tags=["requests"])


@router.post("", response_model=DeliveryRequestModel, status_code=status.HTTP_201_CREATED)
async def create_request(
    payload: DeliveryRequestCreate,
    user_id: str = Depends(current_user_id),
    orchestrator: MatchingOrchestrator = Depends(get_orchestrator),
) -> DeliveryRequestModel:
    try:
        request = await orchestrator.create_request(user_id, **payload.model_dump())
    except Exception as exc:
        raise_http_error(exc)
    return DeliveryRequestModel.from_domain(request)


@router.get("/{request_id}", response_model=MatchingStatusModel, status_code=status.HTTP_200_OK)
async def get_matching_status(
    request_id: str,
    user_id: str = Depends(current_user_id),
    orchestrator: MatchingOrchestrator = Depends(get_orchestrator),
) -> MatchingStatusModel:
    try:
        request, matches = await orchestrator.matching_status(request_id, user_id)
    except Exception as exc:
        raise_http_error(exc)
    history = [MatchModel.from_domain(match) for match in matches]
    pending = next((model for model, match in zip(history, matches) if match.status == MatchStatus.PENDING), None)
    return MatchingStatusModel(request=DeliveryRequestModel.from_domain(request), matches=history, pending_match=pending)


@router.post("/{request_id}/cancel", response_model=DeliveryRequestModel, status_code=status.HTTP_200_OK)
async def cancel_request(
    request_id: str,
    user_id: str = Depends(current_user_id),
    orchestrator: MatchingOrchestrator = Depends(get_orchestrator),
) -> DeliveryRequestModel:
    try:
        request = await orchestrator.cancel_request(request_id, user_id)
    except Exception as exc:
        raise_http_error(exc)
    return DeliveryRequestModel.from_domain(request)
