"""Agent webhook registry and event triggering."""
from __future__ import annotations

import secrets
import string
from typing import Any, List, Mapping

from integration_service.domain.dto import WebhookCreateDTO, WebhookUpdateDTO
from integration_service.domain.webhooks import (
    TEST_EVENT,
    DeliveryResult,
    DispatchReport,
    WebhookSubscription,
)
from integration_service.repositories.webhooks import WebhookSubscriptionRepository
from integration_service.webhooks_dispatcher import WebhookDispatcher, verify_signature

SECRET_LENGTH = 64
_SECRET_ALPHABET = string.ascii_letters + string.digits
TEST_MESSAGE = "This is a test webhook from TripPlanner"


def generate_secret(length: int = SECRET_LENGTH) -> str:
    return "".join(secrets.choice(_SECRET_ALPHABET) for _ in range(length))


class WebhookService:
    def __init__(self, repository: WebhookSubscriptionRepository, dispatcher: WebhookDispatcher):
        self._subscriptions = repository
        self._dispatcher = dispatcher

    async def create_subscription(
        self, owner_id: int, dto: WebhookCreateDTO
    ) -> WebhookSubscription:
        return await self._subscriptions.create(
            owner_id=owner_id,
            url=str(dto.url),
            events=dto.events,
            secret=generate_secret(),
            retry_count=dto.retry_count,
            timeout_seconds=dto.timeout_seconds,
        )

    async def list_subscriptions(self, owner_id: int) -> List[WebhookSubscription]:
        return await self._subscriptions.list_by_owner(owner_id)

    async def get_subscription(
        self, owner_id: int | None, subscription_id: int
    ) -> WebhookSubscription:
        return await self._subscriptions.get(owner_id, subscription_id)

    async def update_subscription(
        self, owner_id: int, subscription_id: int, dto: WebhookUpdateDTO
    ) -> WebhookSubscription:
        return await self._subscriptions.update(owner_id, subscription_id, dto.changes())

    async def delete_subscription(self, owner_id: int, subscription_id: int) -> None:
        await self._subscriptions.delete(owner_id, subscription_id)

    async def trigger(
        self, event: str, payload: Mapping[str, Any], owner_id: int | None = None
    ) -> DispatchReport:
        return await self._dispatcher.trigger(event, payload, owner_id)

    async def send_test(self, subscription: WebhookSubscription) -> DeliveryResult:
        return await self._dispatcher.deliver(
            subscription,
            TEST_EVENT,
            {"message": TEST_MESSAGE, "webhook_id": subscription.id},
        )

    @staticmethod
    def verify_incoming(
        subscription: WebhookSubscription,
        signature: str | None,
        payload: bytes | Mapping[str, Any],
    ) -> bool:
        return verify_signature(subscription.secret, signature, payload)
