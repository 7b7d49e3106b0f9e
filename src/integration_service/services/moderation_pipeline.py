"""Apply classifier verdicts to moderated entities."""
from __future__ import annotations

import structlog

from integration_service.core.exceptions import EntityNotFound, StorageMissing
from integration_service.domain.moderation import (
    DEFAULT_THRESHOLD,
    ModerationKind,
    ModerationOutcome,
)
from integration_service.repositories.moderation import ModerationTargetRepository
from integration_service.services.moderation import ModerationClassifier

logger = structlog.get_logger(__name__)


class ModerationPipeline:
    """Classify one uploaded image and store the verdict on its owner.

    Reruns overwrite the stored verdict, so a job may safely be retried
    after a partial failure. Errors other than a disabled classifier, a
    missing local file or a missing entity propagate to the job runner.
    """

    def __init__(
        self,
        classifier: ModerationClassifier,
        repository: ModerationTargetRepository,
        *,
        threshold: float = DEFAULT_THRESHOLD,
    ):
        self._classifier = classifier
        self._repository = repository
        self._threshold = threshold

    async def process(
        self, kind: ModerationKind, model_id: int, image_ref: str
    ) -> ModerationOutcome:
        log = logger.bind(kind=kind.value, model_id=model_id, image_ref=image_ref)

        if not self._classifier.is_enabled:
            log.info("image moderation skipped, classifier disabled")
            return ModerationOutcome.SKIPPED_DISABLED

        try:
            result = await self._classifier.check_safety(image_ref, self._threshold)
        except StorageMissing:
            log.error("image moderation skipped, image not found in storage")
            return ModerationOutcome.SKIPPED_MISSING_IMAGE

        try:
            target = await self._repository.get(kind, model_id)
            moderated = target.apply_moderation(result)
            await self._repository.save_moderation(moderated)
        except EntityNotFound:
            log.warning("image moderation skipped, target not found")
            return ModerationOutcome.SKIPPED_NOT_FOUND

        log.info(
            "image moderation applied",
            safe=result.safe,
            reason=result.reason,
            adult=result.adult,
            porn=result.porn,
            sexy=result.sexy,
            normal=result.normal,
        )
        return ModerationOutcome.APPLIED_FLAGGED if moderated.is_flagged else ModerationOutcome.APPLIED_SAFE
