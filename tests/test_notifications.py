import asyncio
import json
from types import SimpleNamespace

import httpx
import pytest

from revshare.services.notification_service import (
    NotificationService,
    NotificationType,
    dispatch_pending,
    discard_pending,
    pending_notifications,
)

WEBHOOK = "http://hooks.test/revshare"


def _event(notification_type=NotificationType.DISBURSEMENT_PAID):
    return {"type": notification_type.value, "payload": {"amount": 1}, "occurred_at": "2026-03-01T08:00:00+00:00"}


def test_send_posts_event_to_webhook():
    received = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append((request.method, str(request.url), json.loads(request.content)))
        return httpx.Response(204)

    service = NotificationService(webhook_url=WEBHOOK, transport=httpx.MockTransport(handler))
    delivered = asyncio.run(service.send(_event()))

    assert delivered is True
    assert received == [("POST", WEBHOOK, _event())]


def _refuse(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("refused", request=request)


@pytest.mark.parametrize("handler", [lambda request: httpx.Response(500), _refuse])
def test_send_failures_are_reported_not_raised(handler):
    service = NotificationService(webhook_url=WEBHOOK, transport=httpx.MockTransport(handler))
    assert asyncio.run(service.send(_event())) is False


def test_send_without_webhook_drops_event():
    service = NotificationService(webhook_url="")
    assert asyncio.run(service.send(_event())) is False


def test_send_all_counts_deliveries():
    def handler(request: httpx.Request) -> httpx.Response:
        event = json.loads(request.content)
        return httpx.Response(200 if event["type"] == "disbursement.paid" else 502)

    service = NotificationService(webhook_url=WEBHOOK, transport=httpx.MockTransport(handler))
    delivered = asyncio.run(service.send_all([
        _event(NotificationType.DISBURSEMENT_PAID),
        _event(NotificationType.DISBURSEMENT_REJECTED),
    ]))
    assert delivered == 1


def test_enqueue_collects_events_on_the_session():
    session = SimpleNamespace(info={})
    service = NotificationService(session)
    service.enqueue(NotificationType.REVENUE_SHARE_RECORDED, {"transaction_id": "TRX-1"})
    service.enqueue("operator.attention", {"detail": "check"})

    events = pending_notifications(session)
    assert [e["type"] for e in events] == ["revenue_share.recorded", "operator.attention"]
    assert events[0]["payload"] == {"transaction_id": "TRX-1"}
    assert events[0]["occurred_at"]


def test_enqueue_needs_a_session():
    with pytest.raises(RuntimeError):
        NotificationService().enqueue(NotificationType.REVENUE_SHARE_RECORDED, {})


def test_dispatch_sends_pending_events_after_commit():
    session = SimpleNamespace(info={})
    NotificationService(session).enqueue(NotificationType.DISBURSEMENT_APPROVED, {"amount": 5})
    sent = []

    async def sender(events):
        sent.extend(events)

    async def scenario():
        task = dispatch_pending(session, sender=sender)
        await task
        return dispatch_pending(session, sender=sender)

    second = asyncio.run(scenario())
    assert [e["type"] for e in sent] == ["disbursement.approved"]
    assert second is None
    assert pending_notifications(session) == []


def test_discard_drops_events_of_rolled_back_work():
    session = SimpleNamespace(info={})
    service = NotificationService(session)
    service.enqueue(NotificationType.REVENUE_SHARE_REVERSED, {})
    service.enqueue(NotificationType.DISBURSEMENT_SUBMITTED, {})

    assert discard_pending(session) == 2
    assert discard_pending(session) == 0
    assert pending_notifications(session) == []
