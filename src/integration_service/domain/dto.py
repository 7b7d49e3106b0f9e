"""Request payloads accepted by the agent webhook API."""
from __future__ import annotations

from pydantic import BaseModel, Field, HttpUrl, field_validator

from integration_service.domain.webhooks import SUBSCRIBABLE_EVENTS


def _normalize_events(value: list[str]) -> list[str]:
    events = list(dict.fromkeys(e.strip() for e in value if e and e.strip()))
    if not events:
        raise ValueError("events must be a non-empty list")
    unknown = sorted(set(events) - SUBSCRIBABLE_EVENTS)
    if unknown:
        raise ValueError(f"unsupported events: {', '.join(unknown)}")
    return events


class WebhookCreateDTO(BaseModel):
    url: HttpUrl
    events: list[str] = Field(min_length=1)
    retry_count: int = Field(default=3, ge=0, le=5)
    timeout_seconds: int = Field(default=30, ge=5, le=60)

    @field_validator("events")
    @classmethod
    def check_events(cls, value: list[str]) -> list[str]:
        return _normalize_events(value)


class WebhookUpdateDTO(BaseModel):
    url: HttpUrl | None = None
    events: list[str] | None = None
    is_active: bool | None = None
    retry_count: int | None = Field(default=None, ge=0, le=5)
    timeout_seconds: int | None = Field(default=None, ge=5, le=60)

    @field_validator("events")
    @classmethod
    def check_events(cls, value: list[str] | None) -> list[str] | None:
        return None if value is None else _normalize_events(value)

    def changes(self) -> dict:
        data = self.model_dump(exclude_unset=True, exclude_none=True)
        if "url" in data:
            data["url"] = str(data["url"])
        return data
