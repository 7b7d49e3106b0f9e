"""Background jobs for integration-service.

Jobs run on the in-process :class:`trip_common.jobs.JobQueue` started with
the application.
"""
from __future__ import annotations

from integration_service.workers.image_moderation import ImageModerationJob, ModerationScheduler

__all__ = ["ImageModerationJob", "ModerationScheduler"]
