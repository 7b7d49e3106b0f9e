"""Domain services exports."""

from integration_service.services.event_listeners import DomainEventListener
from integration_service.services.moderation import ModerationClassifier
from integration_service.services.moderation_pipeline import ModerationPipeline
from integration_service.services.token_provider import TokenProvider
from integration_service.services.webhooks import WebhookService

__all__ = [
    "DomainEventListener",
    "ModerationClassifier",
    "ModerationPipeline",
    "TokenProvider",
    "WebhookService",
]
