"""Agent webhook subscriptions and their delivery telemetry."""
from __future__ import annotations

from datetime import datetime
from typing import Any, List

from asyncpg import Pool, Record  # type: ignore[import-untyped]

from trip_common.db.repository import BaseRepository

from integration_service.core.exceptions import NotFoundError
from integration_service.domain.webhooks import WebhookSubscription

_UPDATABLE_COLUMNS = ("url", "events", "is_active", "retry_count", "timeout_seconds")


class WebhookSubscriptionRepository(BaseRepository):
    def __init__(self, pool: Pool):
        super().__init__(pool)

    @staticmethod
    def _to_model(record: Record) -> WebhookSubscription:
        return WebhookSubscription.model_validate(dict(record))

    async def create(
        self,
        *,
        owner_id: int,
        url: str,
        events: list[str],
        secret: str,
        retry_count: int,
        timeout_seconds: int,
    ) -> WebhookSubscription:
        record = await self._fetchrow(
            """
            INSERT INTO agent_webhooks
                (owner_id, url, events, secret, is_active, retry_count, timeout_seconds,
                 created_at, updated_at)
            VALUES ($1, $2, $3::text[], $4, true, $5, $6, now(), now())
            RETURNING *
            """,
            owner_id,
            url,
            events,
            secret,
            retry_count,
            timeout_seconds,
        )
        assert record is not None
        return self._to_model(record)

    async def get(self, owner_id: int | None, subscription_id: int) -> WebhookSubscription:
        """Fetch one subscription; ``owner_id=None`` skips the ownership filter."""
        record = await self._fetchrow(
            "SELECT * FROM agent_webhooks WHERE ($1::bigint IS NULL OR owner_id = $1) AND id = $2",
            owner_id,
            subscription_id,
        )
        if record is None:
            raise NotFoundError("Webhook subscription not found")
        return self._to_model(record)

    async def list_by_owner(self, owner_id: int) -> List[WebhookSubscription]:
        records = await self._fetch(
            "SELECT * FROM agent_webhooks WHERE owner_id = $1 ORDER BY created_at DESC, id DESC",
            owner_id,
        )
        return [self._to_model(r) for r in records]

    async def update(
        self, owner_id: int, subscription_id: int, changes: dict[str, Any]
    ) -> WebhookSubscription:
        columns = [c for c in _UPDATABLE_COLUMNS if c in changes]
        if not columns:
            return await self.get(owner_id, subscription_id)
        assignments = ", ".join(
            f"{column} = ${index}{'::text[]' if column == 'events' else ''}"
            for index, column in enumerate(columns, start=3)
        )
        record = await self._fetchrow(
            f"""
            UPDATE agent_webhooks
            SET {assignments}, updated_at = now()
            WHERE owner_id = $1 AND id = $2
            RETURNING *
            """,
            owner_id,
            subscription_id,
            *(changes[c] for c in columns),
        )
        if record is None:
            raise NotFoundError("Webhook subscription not found")
        return self._to_model(record)

    async def delete(self, owner_id: int, subscription_id: int) -> None:
        record = await self._fetchrow(
            """
            DELETE FROM agent_webhooks
            WHERE owner_id = $1 AND id = $2
            RETURNING id
            """,
            owner_id,
            subscription_id,
        )
        if record is None:
            raise NotFoundError("Webhook subscription not found")

    async def list_active_matching(
        self, event: str, owner_id: int | None = None
    ) -> List[WebhookSubscription]:
        records = await self._fetch(
            """
            SELECT *
            FROM agent_webhooks
            WHERE is_active = true
              AND $1 = ANY(events)
              AND ($2::bigint IS NULL OR owner_id = $2)
            ORDER BY id ASC
            """,
            event,
            owner_id,
        )
        return [self._to_model(r) for r in records]

    async def mark_triggered(self, subscription_id: int, at: datetime) -> None:
        await self._execute(
            "UPDATE agent_webhooks SET last_triggered_at = $2 WHERE id = $1",
            subscription_id,
            at,
        )

    async def mark_success(self, subscription_id: int, at: datetime) -> None:
        await self._execute(
            "UPDATE agent_webhooks SET last_success_at = $2, last_error = NULL WHERE id = $1",
            subscription_id,
            at,
        )

    async def mark_failure(self, subscription_id: int, at: datetime, error: str) -> None:
        await self._execute(
            "UPDATE agent_webhooks SET last_failure_at = $2, last_error = $3 WHERE id = $1",
            subscription_id,
            at,
            error,
        )
