"""Domain events raised by the CRUD side of the backend and consumed here."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from integration_service.domain.moderation import ModerationKind


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class MessageSent:
    message_id: int
    chat_session_id: int
    owner_id: int
    from_role: str
    message: str
    created_at: datetime

    event_name = "message.sent"

    def webhook_payload(self) -> dict[str, Any]:
        return {
            "id": self.message_id,
            "chat_session_id": self.chat_session_id,
            "from_role": self.from_role,
            "message": self.message,
            "created_at": _iso(self.created_at),
        }


@dataclass(frozen=True)
class RecommendationCreated:
    recommendation_id: int
    trip_id: int
    owner_id: int
    recommendation_type: str
    confidence_score: float | None
    created_at: datetime

    event_name = "recommendation.created"

    def webhook_payload(self) -> dict[str, Any]:
        return {
            "id": self.recommendation_id,
            "trip_id": self.trip_id,
            "recommendation_type": self.recommendation_type,
            "confidence_score": self.confidence_score,
            "created_at": _iso(self.created_at),
        }


@dataclass(frozen=True)
class ActionCompleted:
    action_id: int
    chat_session_id: int
    owner_id: int
    action_type: str
    status: str
    completed_at: datetime | None = None

    event_name = "action.completed"

    def webhook_payload(self) -> dict[str, Any]:
        return {
            "id": self.action_id,
            "chat_session_id": self.chat_session_id,
            "action_type": self.action_type,
            "status": self.status,
            "completed_at": _iso(self.completed_at),
        }


@dataclass(frozen=True)
class ImageUploaded:
    kind: ModerationKind
    entity_id: int
    image_ref: str
