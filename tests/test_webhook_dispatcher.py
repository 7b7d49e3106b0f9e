"""Webhook delivery against local receiver endpoints."""
from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from aiohttp import ClientSession, web

from conftest import SECRET
from integration_service.domain.webhooks import WEBHOOK_USER_AGENT
from integration_service.webhooks_dispatcher import WebhookDispatcher, verify_signature


def _receiver_app(received: list) -> web.Application:
    async def ok(request: web.Request) -> web.Response:
        received.append(
            {
                "path": request.path,
                "body": await request.read(),
                "signature": request.headers.get("X-Webhook-Signature"),
                "event": request.headers.get("X-Webhook-Event"),
                "user_agent": request.headers.get("User-Agent"),
                "content_type": request.headers.get("Content-Type"),
            }
        )
        return web.json_response({"ok": True})

    async def broken(request: web.Request) -> web.Response:
        received.append({"path": request.path})
        return web.Response(status=500, text="receiver exploded")

    async def slow(request: web.Request) -> web.Response:
        await asyncio.sleep(1)
        return web.json_response({"ok": True})

    app = web.Application()
    app.router.add_post("/ok", ok)
    app.router.add_post("/broken", broken)
    app.router.add_post("/slow", slow)
    return app


@pytest.fixture
async def receiver(aiohttp_server):
    received: list = []
    server = await aiohttp_server(_receiver_app(received))
    return server, received


@pytest.mark.asyncio
async def test_failing_subscriber_does_not_affect_others(receiver, webhook_repo, clock, no_sleep):
    server, received = receiver
    bad = webhook_repo.add(url=str(server.make_url("/broken")), retry_count=3)
    good = webhook_repo.add(url=str(server.make_url("/ok")), retry_count=3)

    async with ClientSession() as session:
        dispatcher = WebhookDispatcher(webhook_repo, session, clock=clock, sleep=no_sleep)
        report = await dispatcher.trigger("message.sent", {"id": 42, "message": "hi"})

    assert [r.subscription_id for r in report.results] == [bad.id, good.id]
    bad_result, good_result = report.results
    assert bad_result.success is False
    assert bad_result.attempts == 3
    assert bad_result.status == 500
    assert good_result.success is True
    assert good_result.attempts == 1
    assert len([r for r in received if r["path"] == "/broken"]) == 3
    assert no_sleep.calls == [0.1, 0.1]

    bad_row, good_row = webhook_repo.rows[bad.id], webhook_repo.rows[good.id]
    assert bad_row.last_triggered_at == clock.now()
    assert bad_row.last_failure_at == clock.now()
    assert bad_row.last_error == "HTTP 500: receiver exploded"
    assert good_row.last_success_at == clock.now()
    assert good_row.last_error is None


@pytest.mark.asyncio
async def test_delivery_is_signed_over_exact_body(receiver, webhook_repo, clock):
    server, received = receiver
    webhook_repo.add(url=str(server.make_url("/ok")), events=["recommendation.created"])

    async with ClientSession() as session:
        dispatcher = WebhookDispatcher(webhook_repo, session, clock=clock)
        await dispatcher.trigger("recommendation.created", {"id": 1, "trip_id": 2})

    delivery = received[0]
    assert delivery["event"] == "recommendation.created"
    assert delivery["user_agent"] == WEBHOOK_USER_AGENT
    assert delivery["content_type"] == "application/json"
    assert delivery["signature"].startswith("sha256=")
    assert verify_signature(SECRET, delivery["signature"], delivery["body"])

    payload = json.loads(delivery["body"])
    assert payload == {
        "event": "recommendation.created",
        "timestamp": clock.now().isoformat(),
        "data": {"id": 1, "trip_id": 2},
    }
    # The mapping form verifies too, since the body is canonical.
    assert verify_signature(SECRET, delivery["signature"], payload)


@pytest.mark.asyncio
async def test_only_matching_active_subscriptions_of_owner(receiver, webhook_repo, clock):
    server, received = receiver
    url = str(server.make_url("/ok"))
    webhook_repo.add(url=url, owner_id=1)
    webhook_repo.add(url=url, owner_id=2)
    webhook_repo.add(url=url, owner_id=1, is_active=False)
    webhook_repo.add(url=url, owner_id=1, events=["action.completed"])

    async with ClientSession() as session:
        dispatcher = WebhookDispatcher(webhook_repo, session, clock=clock)
        report = await dispatcher.trigger("message.sent", {"id": 1}, owner_id=1)

    assert [r.subscription_id for r in report.results] == [1]
    assert len(received) == 1


@pytest.mark.asyncio
async def test_zero_retry_count_still_attempts_once(receiver, webhook_repo, clock, no_sleep):
    server, received = receiver
    webhook_repo.add(url=str(server.make_url("/broken")), retry_count=0)

    async with ClientSession() as session:
        dispatcher = WebhookDispatcher(webhook_repo, session, clock=clock, sleep=no_sleep)
        report = await dispatcher.trigger("message.sent", {})

    assert report.results[0].attempts == 1
    assert len(received) == 1


@pytest.mark.asyncio
async def test_unreachable_subscriber_records_error(webhook_repo, clock, no_sleep):
    sub = webhook_repo.add(url="http://127.0.0.1:1/hook", retry_count=2)

    async with ClientSession() as session:
        dispatcher = WebhookDispatcher(webhook_repo, session, clock=clock, sleep=no_sleep)
        report = await dispatcher.trigger("message.sent", {})

    result = report.result_for(sub.id)
    assert result.success is False
    assert result.status is None
    assert result.attempts == 2
    assert webhook_repo.rows[sub.id].last_error


@pytest.mark.asyncio
async def test_delivery_budget_overrun_is_a_failure(receiver, webhook_repo, clock):
    server, _ = receiver
    sub = webhook_repo.add(url=str(server.make_url("/slow")))

    async with ClientSession() as session:
        dispatcher = WebhookDispatcher(webhook_repo, session, clock=clock, budget_seconds=0.1)
        report = await dispatcher.trigger("message.sent", {})

    assert report.failed == 1
    assert "budget" in webhook_repo.rows[sub.id].last_error


@pytest.mark.asyncio
async def test_no_subscribers_yields_empty_report(webhook_repo, clock):
    async with ClientSession() as session:
        dispatcher = WebhookDispatcher(webhook_repo, session, clock=clock)
        report = await dispatcher.trigger("session.started", {"id": 1})

    assert report.results == []
    assert report.delivered == report.failed == 0


@pytest.mark.asyncio
async def test_subscription_lookup_error_yields_empty_report(webhook_repo, clock):
    webhook_repo.list_active_matching = AsyncMock(side_effect=ConnectionError("db unavailable"))
    async with ClientSession() as session:
        dispatcher = WebhookDispatcher(webhook_repo, session, clock=clock)
        report = await dispatcher.trigger("message.sent", {"id": 1}, owner_id=1)

    assert report.event == "message.sent"
    assert report.results == []
