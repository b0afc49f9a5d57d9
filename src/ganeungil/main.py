"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.routes import batch, carrier_routes, health, matches, requests, stations
from .config import settings
from .data.carrier_repository import CarrierDirectory
from .data.station_repository import StationRepository
from .persistence import DocumentStore, build_document_store
from .services.matching.notifications import LoggingNotificationSink, NotificationSink, WebhookNotificationSink
from .services.matching.orchestrator import MatchingOrchestrator
from .services.matching.timers import AsyncioMatchTimer, MatchTimer
from .services.routes.service import RouteService

logger = logging.getLogger(__name__)


def _build_notifier() -> NotificationSink:
    if settings.notification_webhook_url:
        return WebhookNotificationSink(settings.notification_webhook_url)
    return LoggingNotificationSink()


def create_app(
    store: DocumentStore | None = None,
    timer: MatchTimer | None = None,
    notifier: NotificationSink | None = None,
) -> FastAPI:
    """Build the app. Collaborators may be injected, e.g. an in-memory store in tests."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app_store = store or build_document_store()
        station_repository = StationRepository(app_store)
        carrier_directory = CarrierDirectory(app_store)
        sink = notifier or _build_notifier()
        orchestrator = MatchingOrchestrator(
            app_store,
            station_repository,
            carrier_directory,
            timer or AsyncioMatchTimer(),
            sink,
        )
        app.state.store = app_store
        app.state.stations = station_repository
        app.state.orchestrator = orchestrator
        app.state.route_service = RouteService(app_store, stations=station_repository, carriers=carrier_directory)
        logger.info(f"{settings.app_name} started with {type(app_store).__name__}")
        try:
            yield
        finally:
            await orchestrator.shutdown()
            await sink.aclose()

    app = FastAPI(title=settings.app_name, root_path="", lifespan=lifespan)
    if settings.frontend_allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.frontend_allowed_origins),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # Root endpoint for diagnostics
    @app.get("/")
    def root():
        return {
            "service": settings.app_name,
            "status": "running",
            "api_prefix": settings.api_prefix,
            "health": f"{settings.api_prefix}/health",
            "docs": "/docs",
        }

    app.include_router(health.router, prefix=settings.api_prefix)
    app.include_router(stations.router, prefix=settings.api_prefix)
    app.include_router(carrier_routes.router, prefix=settings.api_prefix)
    app.include_router(requests.router, prefix=settings.api_prefix)
    app.include_router(matches.router, prefix=settings.api_prefix)
    app.include_router(batch.router, prefix=settings.api_prefix)
    return app


app = create_app()
