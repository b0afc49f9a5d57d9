"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Request, status

from ...db.supabase import get_supabase_client

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


@router.get("/health/database", status_code=status.HTTP_200_OK)
def check_database(request: Request) -> dict:
    """Report which document store backs the running app."""
    store = request.app.state.store
    client = get_supabase_client()
    return {
        "configured": client is not None,
        "store": type(store).__name__,
        "message": "Supabase connected" if client is not None else "Supabase not configured - using in-memory store",
    }


@router.get("/health/matching", status_code=status.HTTP_200_OK)
def check_matching(request: Request) -> dict:
    orchestrator = request.app.state.orchestrator
    return {"open_windows": orchestrator.open_windows, "timeout_seconds": orchestrator.policy.acceptance_timeout_seconds}
