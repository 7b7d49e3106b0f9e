"""Shared fixtures: a controllable clock and in-memory stand-ins for Postgres and storage."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from integration_service.core.exceptions import EntityNotFound, NotFoundError
from integration_service.domain.moderation import (
    TARGET_TYPES,
    ModerationKind,
    ModerationTarget,
)
from integration_service.domain.webhooks import WebhookSubscription

SECRET = "s" * 64


class FrozenClock:
    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


class InMemoryWebhookRepository:
    """Mirrors WebhookSubscriptionRepository over a dict."""

    def __init__(self) -> None:
        self.rows: dict[int, WebhookSubscription] = {}
        self._next_id = 1

    def add(self, **fields: Any) -> WebhookSubscription:
        data = {
            "id": self._next_id,
            "owner_id": 1,
            "url": "http://example.invalid/hook",
            "events": ["message.sent"],
            "secret": SECRET,
            "retry_count": 1,
            "timeout_seconds": 5,
        }
        data.update(fields)
        sub = WebhookSubscription.model_validate(data)
        self.rows[sub.id] = sub
        self._next_id = max(self._next_id, sub.id) + 1
        return sub

    async def create(self, *, owner_id, url, events, secret, retry_count, timeout_seconds):
        return self.add(
            owner_id=owner_id,
            url=url,
            events=events,
            secret=secret,
            retry_count=retry_count,
            timeout_seconds=timeout_seconds,
        )

    async def get(self, owner_id, subscription_id):
        sub = self.rows.get(subscription_id)
        if sub is None or (owner_id is not None and sub.owner_id != owner_id):
            raise NotFoundError("Webhook subscription not found")
        return sub

    async def list_by_owner(self, owner_id):
        return [s for s in reversed(list(self.rows.values())) if s.owner_id == owner_id]

    async def update(self, owner_id, subscription_id, changes):
        sub = await self.get(owner_id, subscription_id)
        updated = sub.model_copy(update=changes)
        self.rows[subscription_id] = updated
        return updated

    async def delete(self, owner_id, subscription_id):
        await self.get(owner_id, subscription_id)
        del self.rows[subscription_id]

    async def list_active_matching(self, event, owner_id=None):
        return [
            s
            for _, s in sorted(self.rows.items())
            if s.should_receive(event) and (owner_id is None or s.owner_id == owner_id)
        ]

    async def mark_triggered(self, subscription_id, at):
        self._patch(subscription_id, last_triggered_at=at)

    async def mark_success(self, subscription_id, at):
        self._patch(subscription_id, last_success_at=at, last_error=None)

    async def mark_failure(self, subscription_id, at, error):
        self._patch(subscription_id, last_failure_at=at, last_error=error)

    def _patch(self, subscription_id: int, **fields: Any) -> None:
        self.rows[subscription_id] = self.rows[subscription_id].model_copy(update=fields)


class InMemoryModerationRepository:
    def __init__(self) -> None:
        self.rows: dict[tuple[ModerationKind, int], ModerationTarget] = {}
        self.saves = 0

    def add(self, kind: ModerationKind, entity_id: int) -> ModerationTarget:
        target = TARGET_TYPES[kind](id=entity_id)
        self.rows[(kind, entity_id)] = target
        return target

    async def get(self, kind, entity_id):
        try:
            return self.rows[(kind, entity_id)]
        except KeyError:
            raise EntityNotFound(kind.value, entity_id) from None

    async def save_moderation(self, target):
        key = (target.kind, target.id)
        if key not in self.rows:
            raise EntityNotFound(target.kind.value, target.id)
        self.saves += 1
        self.rows[key] = target


class FakeStorage:
    def __init__(self, files: set[str] | None = None):
        self.files = set(files or ())

    async def exists(self, path: str) -> bool:
        return path in self.files

    def public_url(self, path: str) -> str:
        return f"http://cdn.test/storage/{path}"


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def webhook_repo() -> InMemoryWebhookRepository:
    return InMemoryWebhookRepository()


@pytest.fixture
def moderation_repo() -> InMemoryModerationRepository:
    return InMemoryModerationRepository()


@pytest.fixture
def no_sleep():
    calls: list[float] = []

    async def sleep(seconds: float) -> None:
        calls.append(seconds)

    sleep.calls = calls  # type: ignore[attr-defined]
    return sleep
