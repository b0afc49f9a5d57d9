"""Carrier responses to match proposals."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ...schemas.matching import MatchModel
from ...services.matching.orchestrator import MatchingOrchestrator
from ..dependencies import current_user_id, get_orchestrator, raise_http_error

router = APIRouter(prefix="/matches", tags=["matches"])


@router.post("/{match_id}/accept", response_model=MatchModel, status_code=status.HTTP_200_OK)
async def accept_match(
    match_id: str,
    user_id: str = Depends(current_user_id),
    orchestrator: MatchingOrchestrator = Depends(get_orchestrator),
) -> MatchModel:
    try:
        match = await orchestrator.accept_match(match_id, user_id)
    except Exception as exc:
        raise_http_error(exc)
    return MatchModel.from_domain(match)


@router.post("/{match_id}/reject", response_model=MatchModel, status_code=status.HTTP_200_OK)
async def reject_match(
    match_id: str,
    user_id: str = Depends(current_user_id),
    orchestrator: MatchingOrchestrator = Depends(get_orchestrator),
) -> MatchModel:
    try:
        match = await orchestrator.reject_match(match_id, user_id)
    except Exception as exc:
        raise_http_error(exc)
    return MatchModel.from_domain(match)
