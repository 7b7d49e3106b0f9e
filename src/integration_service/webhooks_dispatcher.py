"""Signed webhook delivery to agent subscriptions.

Bodies are serialised once in canonical form (sorted keys, compact
separators, UTF-8) and the exact signed bytes are sent, so receivers can
verify ``X-Webhook-Signature`` over the raw request body.
"""
from __future__ import annotations

import asyncio
import hmac
import json
from dataclasses import dataclass
from hashlib import sha256
from typing import Any, Mapping

import structlog
from aiohttp import ClientError, ClientSession, ClientTimeout

from trip_common.retry import RetryPolicy, SleepFn, call_with_retry

from integration_service.core.clock import Clock, SystemClock
from integration_service.core.exceptions import WebhookDeliveryFailure
from integration_service.domain.webhooks import (
    EVENT_HEADER,
    SIGNATURE_HEADER,
    WEBHOOK_USER_AGENT,
    DeliveryResult,
    DispatchReport,
    WebhookSubscription,
)
from integration_service.repositories.webhooks import WebhookSubscriptionRepository

logger = structlog.get_logger(__name__)

SIGNATURE_PREFIX = "sha256="
MAX_ERROR_BODY = 2000


def canonical_body(payload: Mapping[str, Any]) -> bytes:
    return json.dumps(
        payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str
    ).encode("utf-8")


def sign_payload(secret: str, body: bytes) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(secret: str, signature: str | None, payload: bytes | Mapping[str, Any]) -> bool:
    """Constant-time check of ``signature`` against ``payload``.

    ``payload`` is either the raw body as received or a mapping, which is
    serialised canonically first.
    """
    if not signature:
        return False
    body = payload if isinstance(payload, (bytes, bytearray)) else canonical_body(payload)
    return hmac.compare_digest(sign_payload(secret, bytes(body)), signature.strip())


@dataclass(frozen=True)
class _Attempt:
    success: bool
    status: int | None = None
    error: str | None = None


class WebhookDispatcher:
    def __init__(
        self,
        repository: WebhookSubscriptionRepository,
        session: ClientSession,
        *,
        clock: Clock | None = None,
        retry_delay_seconds: float = 0.1,
        max_concurrency: int = 4,
        budget_seconds: float | None = 60.0,
        sleep: SleepFn = asyncio.sleep,
    ):
        self._repository = repository
        self._session = session
        self._clock = clock or SystemClock()
        self._retry_delay_seconds = retry_delay_seconds
        self._max_concurrency = max(max_concurrency, 1)
        self._budget_seconds = budget_seconds
        self._sleep = sleep

    async def trigger(
        self, event: str, payload: Mapping[str, Any], owner_id: int | None = None
    ) -> DispatchReport:
        """Deliver ``event`` to every active subscription listening to it.

        Delivery failures are recorded on the subscription and in the report;
        they never propagate to the caller.
        """
        try:
            subscriptions = await self._repository.list_active_matching(event, owner_id)
        except Exception:
            logger.exception(
                "webhook subscription lookup failed", webhook_event=event, owner_id=owner_id
            )
            return DispatchReport(event=event)
        if not subscriptions:
            return DispatchReport(event=event)

        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def bounded(subscription: WebhookSubscription) -> DeliveryResult:
            async with semaphore:
                return await self._dispatch_one(subscription, event, payload)

        results = await asyncio.gather(*(bounded(s) for s in subscriptions))
        report = DispatchReport(event=event, results=list(results))
        logger.info(
            "webhook event dispatched",
            webhook_event=event,
            owner_id=owner_id,
            delivered=report.delivered,
            failed=report.failed,
        )
        return report

    async def deliver(
        self, subscription: WebhookSubscription, event: str, payload: Mapping[str, Any]
    ) -> DeliveryResult:
        """Deliver ``event`` to one subscription regardless of its event list."""
        return await self._dispatch_one(subscription, event, payload)

    async def _dispatch_one(
        self, subscription: WebhookSubscription, event: str, data: Mapping[str, Any]
    ) -> DeliveryResult:
        log = logger.bind(webhook_id=subscription.id, webhook_event=event, url=subscription.url)
        try:
            await self._repository.mark_triggered(subscription.id, self._clock.now())
            body = canonical_body(
                {"event": event, "timestamp": self._clock.now().isoformat(), "data": dict(data)}
            )
            attempts = 0

            async def attempt() -> _Attempt:
                nonlocal attempts
                attempts += 1
                return await self._post(subscription, event, body)

            try:
                outcome = await self._deliver_within_budget(subscription, attempt)
            except WebhookDeliveryFailure as failure:
                await self._repository.mark_failure(subscription.id, self._clock.now(), failure.error)
                log.warning(
                    "webhook delivery failed", attempts=attempts, status=failure.status, error=failure.error
                )
                return DeliveryResult(
                    subscription_id=subscription.id,
                    url=subscription.url,
                    success=False,
                    attempts=attempts,
                    status=failure.status,
                    error=failure.error,
                )

            await self._repository.mark_success(subscription.id, self._clock.now())
            log.info("webhook delivered", attempts=attempts, status=outcome.status)
            return DeliveryResult(
                subscription_id=subscription.id,
                url=subscription.url,
                success=True,
                attempts=attempts,
                status=outcome.status,
            )
        except Exception as exc:
            log.exception("webhook dispatch crashed")
            return DeliveryResult(
                subscription_id=subscription.id,
                url=subscription.url,
                success=False,
                error=str(exc) or type(exc).__name__,
            )

    async def _deliver_within_budget(self, subscription: WebhookSubscription, attempt) -> _Attempt:
        if self._budget_seconds is None:
            return await self._with_retries(subscription, attempt)
        try:
            return await asyncio.wait_for(
                self._with_retries(subscription, attempt), self._budget_seconds
            )
        except asyncio.TimeoutError as exc:
            raise WebhookDeliveryFailure(
                f"Delivery budget of {self._budget_seconds}s exceeded"
            ) from exc

    async def _with_retries(self, subscription: WebhookSubscription, attempt) -> _Attempt:
        """Attempt until one succeeds; raises :class:`WebhookDeliveryFailure` with the last error."""
        policy = RetryPolicy(
            tries=max(subscription.retry_count, 1), backoff_seconds=self._retry_delay_seconds
        )
        outcome = await call_with_retry(
            attempt, policy, retry_if=lambda outcome: not outcome.success, sleep=self._sleep
        )
        if not outcome.success:
            raise WebhookDeliveryFailure(outcome.error or "Unknown error", status=outcome.status)
        return outcome

    async def _post(self, subscription: WebhookSubscription, event: str, body: bytes) -> _Attempt:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": WEBHOOK_USER_AGENT,
            EVENT_HEADER: event,
            SIGNATURE_HEADER: sign_payload(subscription.secret, body),
        }
        try:
            async with self._session.post(
                subscription.url,
                data=body,
                headers=headers,
                timeout=ClientTimeout(total=subscription.timeout_seconds),
            ) as resp:
                if 200 <= resp.status < 300:
                    return _Attempt(success=True, status=resp.status)
                text = await resp.text()
                return _Attempt(
                    success=False,
                    status=resp.status,
                    error=f"HTTP {resp.status}: {text[:MAX_ERROR_BODY]}",
                )
        except (ClientError, asyncio.TimeoutError) as exc:
            return _Attempt(success=False, error=str(exc) or type(exc).__name__)
