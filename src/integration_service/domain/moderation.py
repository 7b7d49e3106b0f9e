"""Image moderation primitives: verdicts, targets and job outcomes."""
from __future__ import annotations

from enum import Enum
from typing import ClassVar

from pydantic import BaseModel

DISABLED_REASON = "Content moderation disabled"
DEFAULT_THRESHOLD = 0.7


class ModerationKind(str, Enum):
    REVIEW = "review"
    COMMENT = "comment"
    CHECKPOINT_IMAGE = "checkpoint_image"


class ModerationResult(BaseModel):
    """Classifier verdict. Scores are ``None`` only when moderation did not run."""

    safe: bool
    reason: str
    adult: float | None = None
    porn: float | None = None
    sexy: float | None = None
    normal: float | None = None

    @classmethod
    def disabled(cls) -> "ModerationResult":
        return cls(safe=True, reason=DISABLED_REASON)

    @property
    def evaluated(self) -> bool:
        return self.normal is not None


class ModerationTarget(BaseModel):
    """An entity whose uploaded image is moderated.

    One subclass per :class:`ModerationKind`; the mapping is closed and lives
    in :data:`TARGET_TYPES`.
    """

    kind: ClassVar[ModerationKind]
    table: ClassVar[str]

    id: int
    is_flagged: bool = False
    moderation_results: ModerationResult | None = None

    def apply_moderation(self, result: ModerationResult) -> "ModerationTarget":
        """Return a copy carrying ``result``; both fields always change together."""
        return self.model_copy(
            update={"is_flagged": not result.safe, "moderation_results": result}
        )


class ReviewTarget(ModerationTarget):
    kind: ClassVar[ModerationKind] = ModerationKind.REVIEW
    table: ClassVar[str] = "reviews"


class CommentTarget(ModerationTarget):
    kind: ClassVar[ModerationKind] = ModerationKind.COMMENT
    table: ClassVar[str] = "comments"


class CheckpointImageTarget(ModerationTarget):
    kind: ClassVar[ModerationKind] = ModerationKind.CHECKPOINT_IMAGE
    table: ClassVar[str] = "checkpoint_images"


TARGET_TYPES: dict[ModerationKind, type[ModerationTarget]] = {
    ModerationKind.REVIEW: ReviewTarget,
    ModerationKind.COMMENT: CommentTarget,
    ModerationKind.CHECKPOINT_IMAGE: CheckpointImageTarget,
}


class ModerationOutcome(str, Enum):
    """Terminal states of one pipeline run (a failed run raises instead)."""

    APPLIED_FLAGGED = "applied_flagged"
    APPLIED_SAFE = "applied_safe"
    SKIPPED_DISABLED = "skipped_disabled"
    SKIPPED_MISSING_IMAGE = "skipped_missing_image"
    SKIPPED_NOT_FOUND = "skipped_not_found"

    @property
    def applied(self) -> bool:
        return self in (ModerationOutcome.APPLIED_FLAGGED, ModerationOutcome.APPLIED_SAFE)
