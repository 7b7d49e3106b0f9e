"""Green-Eye image classifier gateway."""
from __future__ import annotations

import asyncio
import uuid
from posixpath import basename
from typing import Any
from urllib.parse import urlsplit

import structlog
from aiohttp import ClientError, ClientSession, ClientTimeout

from integration_service.core.clock import Clock, SystemClock
from integration_service.core.exceptions import StorageMissing, UpstreamApiError
from integration_service.domain.moderation import DEFAULT_THRESHOLD, ModerationResult
from integration_service.services.storage import Storage, is_external_url
from integration_service.settings import ClassifierConfig

logger = structlog.get_logger(__name__)

PROVIDER = "greeneye"
SECRET_HEADER = "X-GREEN-EYE-SECRET"
PASSED_REASON = "Content passed safety checks"

_CATEGORY_LABELS = (
    ("adult", "adult content"),
    ("porn", "pornographic content"),
    ("sexy", "sexually suggestive content"),
)


def _score(result: dict[str, Any], category: str, default: float) -> float:
    value = result.get(category)
    if isinstance(value, dict):
        value = value.get("confidence")
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def evaluate(result: dict[str, Any]) -> ModerationResult:
    """Turn raw classifier scores into a verdict.

    Content is safe when ``normal`` beats every unsafe category. A ``safe``
    flag from the provider is ignored.
    """
    scores = {name: _score(result, name, 0.0) for name, _ in _CATEGORY_LABELS}
    normal = _score(result, "normal", 1.0)
    worst = max(scores.values())
    safe = normal > worst

    if safe:
        reason = PASSED_REASON
    else:
        offending = [label for name, label in _CATEGORY_LABELS if scores[name] > normal]
        if not offending:
            # The worst category ties with normal.
            offending = [label for name, label in _CATEGORY_LABELS if scores[name] == worst]
        text = ", ".join(offending)
        reason = f"{text[0].upper()}{text[1:]} detected"

    return ModerationResult(safe=safe, reason=reason, normal=normal, **scores)


class ModerationClassifier:
    def __init__(
        self,
        session: ClientSession,
        config: ClassifierConfig,
        storage: Storage,
        clock: Clock | None = None,
    ):
        self._session = session
        self._config = config
        self._storage = storage
        self._clock = clock or SystemClock()

    @property
    def is_enabled(self) -> bool:
        return self._config.is_enabled

    async def resolve_image_url(self, image_ref: str) -> str:
        """Public URL for ``image_ref``; raises :class:`StorageMissing` for absent local files."""
        if is_external_url(image_ref):
            return image_ref
        if not await self._storage.exists(image_ref):
            raise StorageMissing(image_ref)
        return self._storage.public_url(image_ref)

    async def check_safety(
        self, image_ref: str, threshold: float = DEFAULT_THRESHOLD
    ) -> ModerationResult:
        if not self.is_enabled:
            return ModerationResult.disabled()
        image_url = await self.resolve_image_url(image_ref)
        verdict = evaluate(await self._analyze(image_url))
        logger.info(
            "green-eye verdict", image_ref=image_ref, safe=verdict.safe, threshold=threshold
        )
        return verdict

    async def _analyze(self, image_url: str) -> dict[str, Any]:
        request_id = f"greeneye_{uuid.uuid4().hex}"
        payload = {
            "version": "V1",
            "requestId": request_id,
            "timestamp": int(self._clock.now().timestamp() * 1000),
            "images": [{"name": basename(urlsplit(image_url).path) or "image", "url": image_url}],
        }
        logger.info("green-eye request", image_url=image_url, request_id=request_id)

        try:
            async with self._session.post(
                self._config.url,
                json=payload,
                headers={SECRET_HEADER: self._config.secret_key},
                timeout=ClientTimeout(total=self._config.timeout_seconds),
            ) as resp:
                status = resp.status
                if 200 <= status < 300:
                    body = await resp.json(content_type=None)
                else:
                    text = await resp.text()
        except (ClientError, asyncio.TimeoutError, ValueError) as exc:
            logger.error("green-eye request exception", request_id=request_id, error=str(exc))
            raise UpstreamApiError(
                PROVIDER, status=None, message=str(exc) or type(exc).__name__, context="Image Safety"
            ) from exc

        if not 200 <= status < 300:
            logger.error("green-eye api error", request_id=request_id, status=status, body=text[:2000])
            raise UpstreamApiError(PROVIDER, status=status, message=text[:2000], context="Image Safety")

        logger.info("green-eye response", request_id=request_id, status=status)
        body = body if isinstance(body, dict) else {}
        images = body.get("images")
        if isinstance(images, list) and images and isinstance(images[0], dict):
            result = images[0].get("result")
            if isinstance(result, dict):
                return result
        return body
