"""Error taxonomy of the integration layer."""
from __future__ import annotations

from typing import Any


class IntegrationServiceError(Exception):
    """Base error for the integration service."""


class ConfigurationDisabled(IntegrationServiceError):
    """A provider or feature is switched off or not configured.

    Always a silent skip for callers, never an error shown to end users.
    """

    def __init__(self, provider: str):
        super().__init__(f"{provider} integration is disabled")
        self.provider = provider


class AuthenticationFailure(IntegrationServiceError):
    """The OAuth2 token request was rejected or failed."""

    def __init__(self, provider: str, status: int | None, detail: str):
        super().__init__(f"{provider} token request failed ({status}): {detail}")
        self.provider = provider
        self.status = status
        self.detail = detail


class UpstreamApiError(IntegrationServiceError):
    """A provider rejected (or soft-failed) a call.

    ``status`` is ``None`` when no HTTP response was received at all.
    """

    def __init__(
        self,
        provider: str,
        *,
        status: int | None,
        message: str,
        context: str = "",
        errors: list[Any] | None = None,
    ):
        super().__init__(f"{provider} API error ({context}): {message}")
        self.provider = provider
        self.status = status
        self.message = message
        self.context = context
        self.errors = errors or []

    def as_log_fields(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "status": self.status,
            "message": self.message,
            "context": self.context,
        }


class StorageMissing(IntegrationServiceError):
    """A referenced local file does not exist in storage."""

    def __init__(self, path: str):
        super().__init__(f"File not found in storage: {path}")
        self.path = path


class EntityNotFound(IntegrationServiceError):
    """A moderation target could not be resolved, or vanished before its update."""

    def __init__(self, kind: str, entity_id: int):
        super().__init__(f"{kind} #{entity_id} not found")
        self.kind = kind
        self.entity_id = entity_id


class WebhookDeliveryFailure(IntegrationServiceError):
    """Every attempt at one webhook delivery failed.

    The dispatcher records it on the subscription and in the delivery result;
    it never escapes ``trigger()``.
    """

    def __init__(self, error: str, *, status: int | None = None):
        super().__init__(error)
        self.error = error
        self.status = status


class NotFoundError(IntegrationServiceError):
    """Raised by repositories when a requested row is missing."""


class InvalidSubscriptionError(IntegrationServiceError):
    """Raised when subscription input violates registry rules."""

    def __init__(self, errors: list[dict[str, Any]]):
        super().__init__("Validation failed")
        self.errors = errors
