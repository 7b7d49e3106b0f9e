"""Agent webhook subscription endpoints."""
from __future__ import annotations

import json

import structlog
from aiohttp import web

from integration_service.api.utils import (
    parse_id,
    read_json,
    validate_subscription_input,
    validation_error_response,
)
from integration_service.core.exceptions import InvalidSubscriptionError, NotFoundError
from integration_service.domain.dto import WebhookCreateDTO, WebhookUpdateDTO
from integration_service.domain.webhooks import SIGNATURE_HEADER
from integration_service.services.dependencies import get_webhook_service, require_current_user

logger = structlog.get_logger(__name__)

routes = web.RouteTableDef()


@routes.get("/api/v1/agent-webhooks")
async def list_webhooks(request: web.Request):
    owner_id = await require_current_user(request)
    service = await get_webhook_service(request)
    items = await service.list_subscriptions(owner_id)
    return web.json_response({"data": [item.public_view() for item in items]})


@routes.post("/api/v1/agent-webhooks")
async def create_webhook(request: web.Request):
    owner_id = await require_current_user(request)
    body = await read_json(request)
    try:
        dto = validate_subscription_input(WebhookCreateDTO, body)
    except InvalidSubscriptionError as exc:
        return validation_error_response(exc)

    service = await get_webhook_service(request)
    sub = await service.create_subscription(owner_id, dto)
    return web.json_response(
        {"data": sub.public_view(), "message": "Webhook registered successfully"}, status=201
    )


@routes.get("/api/v1/agent-webhooks/{webhook_id}")
async def get_webhook(request: web.Request):
    owner_id = await require_current_user(request)
    webhook_id = parse_id(request.match_info["webhook_id"], "webhook_id")
    service = await get_webhook_service(request)
    try:
        sub = await service.get_subscription(owner_id, webhook_id)
    except NotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc
    return web.json_response({"data": sub.public_view()})


@routes.patch("/api/v1/agent-webhooks/{webhook_id}")
async def update_webhook(request: web.Request):
    owner_id = await require_current_user(request)
    webhook_id = parse_id(request.match_info["webhook_id"], "webhook_id")
    body = await read_json(request)
    try:
        dto = validate_subscription_input(WebhookUpdateDTO, body)
    except InvalidSubscriptionError as exc:
        return validation_error_response(exc)

    service = await get_webhook_service(request)
    try:
        sub = await service.update_subscription(owner_id, webhook_id, dto)
    except NotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc
    return web.json_response({"data": sub.public_view()})


@routes.delete("/api/v1/agent-webhooks/{webhook_id}")
async def delete_webhook(request: web.Request):
    owner_id = await require_current_user(request)
    webhook_id = parse_id(request.match_info["webhook_id"], "webhook_id")
    service = await get_webhook_service(request)
    try:
        await service.delete_subscription(owner_id, webhook_id)
    except NotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc
    return web.Response(status=204)


@routes.post("/api/v1/agent-webhooks/{webhook_id}/test")
async def test_webhook(request: web.Request):
    owner_id = await require_current_user(request)
    webhook_id = parse_id(request.match_info["webhook_id"], "webhook_id")
    service = await get_webhook_service(request)
    try:
        sub = await service.get_subscription(owner_id, webhook_id)
    except NotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc
    result = await service.send_test(sub)
    return web.json_response(
        {
            "message": "Test webhook sent. Check your endpoint logs.",
            "delivery": result.model_dump(mode="json"),
        }
    )


@routes.post("/api/v1/agent-webhooks/{webhook_id}/callback")
async def agent_callback(request: web.Request):
    """Inbound call from an agent, authenticated by the subscription secret."""
    webhook_id = parse_id(request.match_info["webhook_id"], "webhook_id")
    raw_body = await request.read()
    service = await get_webhook_service(request)
    try:
        sub = await service.get_subscription(None, webhook_id)
    except NotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc

    if not sub.is_active or not service.verify_incoming(
        sub, request.headers.get(SIGNATURE_HEADER), raw_body
    ):
        logger.warning("agent callback rejected", webhook_id=webhook_id)
        raise web.HTTPUnauthorized(text="Invalid webhook signature")

    try:
        payload = json.loads(raw_body) if raw_body else {}
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise web.HTTPBadRequest(text="Invalid JSON payload") from exc

    logger.info(
        "agent callback accepted",
        webhook_id=webhook_id,
        owner_id=sub.owner_id,
        callback_event=payload.get("event") if isinstance(payload, dict) else None,
    )
    return web.json_response({"status": "accepted"}, status=202)
