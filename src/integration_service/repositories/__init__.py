"""Repository layer."""

from integration_service.repositories.moderation import ModerationTargetRepository
from integration_service.repositories.webhooks import WebhookSubscriptionRepository

__all__ = ["ModerationTargetRepository", "WebhookSubscriptionRepository"]
