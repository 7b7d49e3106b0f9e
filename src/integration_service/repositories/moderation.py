"""Moderation fields on reviews, comments and checkpoint images."""
from __future__ import annotations

import json

from asyncpg import Pool, Record  # type: ignore[import-untyped]

from trip_common.db.repository import BaseRepository

from integration_service.core.exceptions import EntityNotFound
from integration_service.domain.moderation import (
    TARGET_TYPES,
    ModerationKind,
    ModerationResult,
    ModerationTarget,
)


class ModerationTargetRepository(BaseRepository):
    def __init__(self, pool: Pool):
        super().__init__(pool)

    @staticmethod
    def _to_model(kind: ModerationKind, record: Record) -> ModerationTarget:
        payload = dict(record)
        raw = payload.get("moderation_results")
        if isinstance(raw, str):
            raw = json.loads(raw)
        payload["moderation_results"] = ModerationResult.model_validate(raw) if raw else None
        payload["is_flagged"] = bool(payload.get("is_flagged"))
        return TARGET_TYPES[kind].model_validate(payload)

    async def get(self, kind: ModerationKind, entity_id: int) -> ModerationTarget:
        table = TARGET_TYPES[kind].table
        record = await self._fetchrow(
            f"SELECT id, is_flagged, moderation_results FROM {table} WHERE id = $1",
            entity_id,
        )
        if record is None:
            raise EntityNotFound(kind.value, entity_id)
        return self._to_model(kind, record)

    async def save_moderation(self, target: ModerationTarget) -> None:
        """Write both moderation fields in one statement."""
        results = target.moderation_results
        status = await self._execute(
            f"""
            UPDATE {target.table}
            SET is_flagged = $2, moderation_results = $3::jsonb, updated_at = now()
            WHERE id = $1
            """,
            target.id,
            target.is_flagged,
            None if results is None else json.dumps(results.model_dump(mode="json")),
        )
        if self._affected_rows(status) == 0:
            raise EntityNotFound(target.kind.value, target.id)
