"""Shared dependency providers for aiohttp handlers."""
from __future__ import annotations

from typing import Awaitable, Callable, TypeVar

from aiohttp import web

from trip_common.db.pool import get_pool

from integration_service.integrations import INTEGRATIONS_KEY
from integration_service.repositories.webhooks import WebhookSubscriptionRepository
from integration_service.services.webhooks import WebhookService

TService = TypeVar("TService")

_WEBHOOK_SERVICE_KEY = "webhook_service"

USER_ID_HEADER = "X-User-Id"


async def require_current_user(request: web.Request) -> int:
    """Caller identity as forwarded by the API gateway."""
    user_header = request.headers.get(USER_ID_HEADER)
    if user_header is None:
        raise web.HTTPUnauthorized(reason=f"Header {USER_ID_HEADER} is required")
    try:
        return int(user_header)
    except ValueError as exc:
        raise web.HTTPBadRequest(text=f"Invalid {USER_ID_HEADER}") from exc


async def _get_or_create_service(
    request: web.Request,
    cache_key: str,
    builder: Callable[[web.Request], Awaitable[TService]],
) -> TService:
    service = request.get(cache_key)
    if service is None:
        service = request.app.get(cache_key)
    if service is None:
        service = await builder(request)
        request[cache_key] = service
    return service


async def get_webhook_service(request: web.Request) -> WebhookService:
    async def builder(req: web.Request) -> WebhookService:
        pool = await get_pool()
        return req.app[INTEGRATIONS_KEY].webhook_service(WebhookSubscriptionRepository(pool))

    return await _get_or_create_service(request, _WEBHOOK_SERVICE_KEY, builder)
