"""Job: classify an uploaded image and flag its owner entity."""
from __future__ import annotations

from dataclasses import dataclass, field

import structlog

from trip_common.jobs import JobQueue
from trip_common.retry import RetryPolicy

from integration_service.domain.moderation import ModerationKind, ModerationOutcome
from integration_service.services.moderation_pipeline import ModerationPipeline

logger = structlog.get_logger(__name__)

DEFAULT_POLICY = RetryPolicy(tries=3, backoff_seconds=5.0)


@dataclass
class ImageModerationJob:
    pipeline: ModerationPipeline
    kind: ModerationKind
    model_id: int
    image_ref: str
    retry_policy: RetryPolicy = field(default=DEFAULT_POLICY)

    @property
    def name(self) -> str:
        return f"image_moderation:{self.kind.value}:{self.model_id}"

    async def handle(self) -> ModerationOutcome:
        outcome = await self.pipeline.process(self.kind, self.model_id, self.image_ref)
        if not outcome.applied:
            logger.info(
                "image moderation job finished without changes",
                job=self.name,
                outcome=outcome.value,
            )
        return outcome

    async def failed(self, error: BaseException) -> None:
        # The entity keeps its previous moderation state.
        logger.error(
            "image moderation job failed permanently",
            kind=self.kind.value,
            model_id=self.model_id,
            image_ref=self.image_ref,
            error=str(error),
        )


class ModerationScheduler:
    """Enqueues moderation jobs for freshly uploaded images."""

    def __init__(
        self,
        queue: JobQueue,
        pipeline: ModerationPipeline,
        *,
        retry_policy: RetryPolicy = DEFAULT_POLICY,
    ):
        self._queue = queue
        self._pipeline = pipeline
        self._retry_policy = retry_policy

    def schedule(self, kind: ModerationKind, model_id: int, image_ref: str) -> ImageModerationJob:
        job = ImageModerationJob(
            pipeline=self._pipeline,
            kind=kind,
            model_id=model_id,
            image_ref=image_ref,
            retry_policy=self._retry_policy,
        )
        self._queue.enqueue(job)
        return job
