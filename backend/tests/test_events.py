import json
import logging

import httpx
import pytest

from creator_match.config import Settings
from creator_match.services import events


@pytest.fixture
def mock_http(monkeypatch):
    """Route every httpx.AsyncClient through a MockTransport and record requests."""
    sent = []
    responses = {"status": 200}
    real_client = httpx.AsyncClient

    def handler(request: httpx.Request) -> httpx.Response:
        sent.append(request)
        return httpx.Response(responses["status"], json={"ok": True})

    monkeypatch.setattr(
        httpx, "AsyncClient", lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs)
    )
    return sent, responses


async def test_logging_sink_logs_event(caplog):
    with caplog.at_level(logging.INFO, logger="creator_match.services.events"):
        await events.LoggingEventSink().publish(events.CREATOR_APPLIED, {"promotion_id": 3})
    assert "creator.applied" in caplog.text
    assert "'promotion_id': 3" in caplog.text


async def test_webhook_sink_posts_envelope(mock_http):
    sent, _ = mock_http
    sink = events.WebhookEventSink("http://hooks.test/events", timeout=2.0)

    await sink.publish(events.INSIGHTS_UPDATED, {"profile_id": 7, "score": 83})

    assert len(sent) == 1
    assert sent[0].method == "POST"
    assert str(sent[0].url) == "http://hooks.test/events"
    body = json.loads(sent[0].content)
    assert body["event"] == "insights.updated"
    assert body["payload"] == {"profile_id": 7, "score": 83}
    assert body["occurred_at"]


async def test_webhook_failure_is_logged_not_raised(mock_http, caplog):
    _, responses = mock_http
    responses["status"] = 500
    sink = events.WebhookEventSink("http://hooks.test/events")

    with caplog.at_level(logging.WARNING, logger="creator_match.services.events"):
        await sink.publish(events.APPLICATION_ACCEPTED, {"promotion_id": 1})

    assert "Failed to deliver event application.accepted" in caplog.text


def test_sink_selected_from_settings(monkeypatch):
    monkeypatch.setattr(events, "get_settings", lambda: Settings(event_webhook_url="http://hooks.test"))
    sink = events.get_event_sink()
    assert isinstance(sink, events.WebhookEventSink)
    assert sink.url == "http://hooks.test"

    monkeypatch.setattr(events, "get_settings", lambda: Settings(event_webhook_url=""))
    assert isinstance(events.get_event_sink(), events.LoggingEventSink)
