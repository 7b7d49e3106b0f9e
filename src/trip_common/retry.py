"""Bounded retry executor shared by HTTP clients and background jobs.

Usage::

    policy = RetryPolicy(tries=3, backoff_seconds=1.0)
    response = await call_with_retry(
        send_request,
        policy,
        retry_on=(aiohttp.ClientError, asyncio.TimeoutError),
        retry_if=lambda resp: resp.status >= 500,
    )

``tries`` counts every attempt including the first one, so ``tries=1``
disables retrying.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]
RetryHook = Callable[[int, "BaseException | None"], None]


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to attempt an operation and how long to wait in between."""

    tries: int = 1
    backoff_seconds: float = 0.0

    def __post_init__(self) -> None:
        if self.tries < 1:
            raise ValueError("tries must be >= 1")
        if self.backoff_seconds < 0:
            raise ValueError("backoff_seconds must be >= 0")

    @classmethod
    def from_millis(cls, tries: int, sleep_ms: int) -> "RetryPolicy":
        return cls(tries=max(tries, 1), backoff_seconds=max(sleep_ms, 0) / 1000.0)


async def call_with_retry(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    retry_if: Callable[[T], bool] | None = None,
    on_retry: RetryHook | None = None,
    sleep: SleepFn = asyncio.sleep,
) -> T:
    """Run ``fn`` up to ``policy.tries`` times.

    An exception listed in ``retry_on`` triggers another attempt; on the last
    attempt it is re-raised. A result for which ``retry_if`` returns true also
    triggers another attempt; on the last attempt that result is returned as
    is, so callers inspect it instead of catching an error.

    ``on_retry(attempt, error)`` is called before sleeping, with ``error``
    set to ``None`` when the retry was caused by a result.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            result = await fn()
        except retry_on as exc:
            if attempt >= policy.tries:
                raise
            logger.debug("retrying after error", attempt=attempt, tries=policy.tries, error=str(exc))
            if on_retry is not None:
                on_retry(attempt, exc)
            await sleep(policy.backoff_seconds)
            continue

        if retry_if is not None and attempt < policy.tries and retry_if(result):
            logger.debug("retrying after rejected result", attempt=attempt, tries=policy.tries)
            if on_retry is not None:
                on_retry(attempt, None)
            await sleep(policy.backoff_seconds)
            continue
        return result
