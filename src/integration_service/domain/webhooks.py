"""Agent webhook domain primitives."""
from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

MIN_SECRET_LENGTH = 32

WEBHOOK_USER_AGENT = "TripPlanner-Webhook/1.0"
SIGNATURE_HEADER = "X-Webhook-Signature"
EVENT_HEADER = "X-Webhook-Event"

TEST_EVENT = "webhook.test"
SUBSCRIBABLE_EVENTS = frozenset(
    {
        "message.sent",
        "recommendation.created",
        "action.completed",
        "session.started",
        "session.ended",
    }
)


class WebhookSubscription(BaseModel):
    id: int
    owner_id: int
    url: str
    events: list[str] = Field(default_factory=list)
    secret: str = Field(min_length=MIN_SECRET_LENGTH)
    is_active: bool = True
    retry_count: int = 3
    timeout_seconds: int = 30
    last_triggered_at: datetime | None = None
    last_success_at: datetime | None = None
    last_failure_at: datetime | None = None
    last_error: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def should_receive(self, event: str) -> bool:
        return self.is_active and event in self.events

    def public_view(self) -> dict[str, Any]:
        """JSON representation for API responses (secret included only for its owner)."""
        return self.model_dump(mode="json")


class DeliveryResult(BaseModel):
    """Outcome of delivering one event to one subscription."""

    subscription_id: int
    url: str
    success: bool
    attempts: int = 0
    status: int | None = None
    error: str | None = None


class DispatchReport(BaseModel):
    """Per-subscription outcomes of a single trigger() call, in selection order."""

    event: str
    results: list[DeliveryResult] = Field(default_factory=list)

    @property
    def delivered(self) -> int:
        return sum(1 for result in self.results if result.success)

    @property
    def failed(self) -> int:
        return sum(1 for result in self.results if not result.success)

    def result_for(self, subscription_id: int) -> DeliveryResult | None:
        return next((r for r in self.results if r.subscription_id == subscription_id), None)
