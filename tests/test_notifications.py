import asyncio
import json
import logging

import httpx
import pytest

from ganeungil.services.matching import notifications as events
from ganeungil.services.matching.notifications import NotificationEvent, WebhookNotificationSink

WEBHOOK_URL = "https://push.example.com/events"


def _event(event_type: str = events.MATCH_CREATED) -> NotificationEvent:
    return NotificationEvent(event_type, "carrier-a", "req-1", "match-1", {"score": 95.2})


def _unreachable(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("push sender down", request=request)


def _sink(handler) -> WebhookNotificationSink:
    return WebhookNotificationSink(WEBHOOK_URL, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def test_webhook_posts_the_event_as_json():
    received = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append((request.method, str(request.url), json.loads(request.content)))
        return httpx.Response(202)

    async def scenario():
        sink = _sink(handler)
        sink.emit(_event())
        sink.emit(_event(events.MATCH_EXPIRED))
        await sink.aclose()

    asyncio.run(scenario())

    assert [(method, url) for method, url, _ in received] == [("POST", WEBHOOK_URL)] * 2
    body = next(body for _, _, body in received if body["event_type"] == events.MATCH_CREATED)
    assert body["recipient_id"] == "carrier-a"
    assert body["match_id"] == "match-1"
    assert body["payload"] == {"score": 95.2}
    assert body["emitted_at"]


@pytest.mark.parametrize(
    "handler",
    [lambda request: httpx.Response(500), _unreachable],
    ids=["server-error", "connect-error"],
)
def test_webhook_failures_are_logged_not_raised(handler, caplog: pytest.LogCaptureFixture):
    async def scenario():
        sink = _sink(handler)
        sink.emit(_event())
        await sink.aclose()

    with caplog.at_level(logging.WARNING):
        asyncio.run(scenario())

    assert "Webhook delivery of match_created" in caplog.text


def test_emit_without_running_loop_drops_the_event(caplog: pytest.LogCaptureFixture):
    calls = []
    sink = _sink(lambda request: calls.append(request) or httpx.Response(202))

    with caplog.at_level(logging.WARNING):
        sink.emit(_event())

    assert calls == []
    assert "dropping match_created" in caplog.text
