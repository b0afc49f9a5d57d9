"""Notification hook for match and request events.

Sinks are fire-and-forget: a slow or failing sink never blocks or fails a
state transition.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

import httpx

from ...models.domain import to_iso, utcnow

logger = logging.getLogger(__name__)

MATCH_CREATED = "match_created"
MATCH_ACCEPTED = "match_accepted"
MATCH_REJECTED = "match_rejected"
MATCH_EXPIRED = "match_expired"
REQUEST_FAILED = "request_failed"
REQUEST_CANCELLED = "request_cancelled"


@dataclass(slots=True, frozen=True)
class NotificationEvent:
    event_type: str
    recipient_id: str
    request_id: str
    match_id: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> dict:
        return {
            "event_type": self.event_type,
            "recipient_id": self.recipient_id,
            "request_id": self.request_id,
            "match_id": self.match_id,
            "payload": self.payload,
            "emitted_at": to_iso(utcnow()),
        }


class NotificationSink(ABC):
    @abstractmethod
    def emit(self, event: NotificationEvent) -> None:
        """Hand ``event`` off without waiting for delivery."""

    async def aclose(self) -> None:
        return None


class LoggingNotificationSink(NotificationSink):
    def emit(self, event: NotificationEvent) -> None:
        logger.info(
            f"Notify {event.recipient_id}: {event.event_type} "
            f"(request={event.request_id}, match={event.match_id})"
        )


class RecordingNotificationSink(NotificationSink):
    """Keeps every event in memory."""

    def __init__(self) -> None:
        self.events: List[NotificationEvent] = []

    def emit(self, event: NotificationEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: str) -> List[NotificationEvent]:
        return [event for event in self.events if event.event_type == event_type]


class WebhookNotificationSink(NotificationSink):
    """POSTs each event as JSON to an external push sender."""

    def __init__(self, url: str, timeout: float = 5.0, client: httpx.AsyncClient | None = None) -> None:
        self.url = url
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout, connect=2.0))
        self._tasks: Set[asyncio.Task] = set()

    def emit(self, event: NotificationEvent) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"No running event loop; dropping {event.event_type} for {event.recipient_id}")
            return
        task = loop.create_task(self._post(event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _post(self, event: NotificationEvent) -> None:
        try:
            response = await self._client.post(self.url, json=event.to_json())
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning(f"Webhook delivery of {event.event_type} to {self.url} failed: {exc}")

    async def aclose(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self._client.aclose()
