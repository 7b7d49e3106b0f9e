"""Route domain events to webhook triggers and moderation jobs."""
from __future__ import annotations

from typing import Union

import structlog

from integration_service.domain.events import (
    ActionCompleted,
    ImageUploaded,
    MessageSent,
    RecommendationCreated,
)
from integration_service.domain.webhooks import DispatchReport
from integration_service.services.webhooks import WebhookService
from integration_service.workers.image_moderation import ImageModerationJob, ModerationScheduler

logger = structlog.get_logger(__name__)

WebhookEvent = Union[MessageSent, RecommendationCreated, ActionCompleted]


class DomainEventListener:
    def __init__(self, webhooks: WebhookService, scheduler: ModerationScheduler | None = None):
        self._webhooks = webhooks
        self._scheduler = scheduler

    async def on_webhook_event(self, event: WebhookEvent) -> DispatchReport:
        return await self._webhooks.trigger(
            event.event_name, event.webhook_payload(), owner_id=event.owner_id
        )

    def on_image_uploaded(self, event: ImageUploaded) -> ImageModerationJob | None:
        if self._scheduler is None:
            logger.info(
                "image moderation not scheduled, no scheduler configured",
                kind=event.kind.value,
                model_id=event.entity_id,
            )
            return None
        return self._scheduler.schedule(event.kind, event.entity_id, event.image_ref)

    async def handle(
        self, event: WebhookEvent | ImageUploaded
    ) -> DispatchReport | ImageModerationJob | None:
        if isinstance(event, ImageUploaded):
            return self.on_image_uploaded(event)
        return await self.on_webhook_event(event)
